from fastapi import APIRouter

from studyplanner.services.llm_service import llm_available


router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "llm_configured": bool(llm_available())}
