from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from studyplanner.core.config import settings
from studyplanner.core.errors import StudyPlannerError
from studyplanner.schemas.common import ErrorOut
from studyplanner.api.routes.health import router as health_router
from studyplanner.api.routes.llm import router as llm_router
from studyplanner.api.routes.generate import router as generate_router
from studyplanner.api.routes.questions import router as questions_router
from studyplanner.api.routes.exams import router as exams_router
from studyplanner.api.routes.grade import router as grade_router
from studyplanner.api.routes.todos import router as todos_router
from studyplanner.db.base import Base
from studyplanner.db.session import engine


logger = logging.getLogger("studyplanner")


def error_body(request_id: str, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return ErrorOut(error=message, code=code, request_id=request_id, details=details or None).model_dump(
        exclude_none=True
    )


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


app = FastAPI(
    title=settings.APP_NAME,
    version="0.3.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = req_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    return response


@app.exception_handler(StudyPlannerError)
async def study_planner_exception_handler(request: Request, exc: StudyPlannerError):
    req_id = _request_id(request)
    logger.warning("request_id=%s %s %s: %s", req_id, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(req_id, exc.code, exc.message, exc.details),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(_request_id(request), "HTTP_ERROR", str(exc.detail)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid request: {where} {first.get('msg', '')}".strip() if first else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_body(
            _request_id(request),
            "VALIDATION_ERROR",
            message,
            {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    req_id = _request_id(request)
    logger.exception("request_id=%s unhandled error on %s", req_id, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body(req_id, "INTERNAL_ERROR", str(exc) or type(exc).__name__),
    )


@app.on_event("startup")
def bootstrap():
    logging.basicConfig(
        level=(settings.LOG_LEVEL or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)


app.include_router(health_router, prefix="/api")
app.include_router(llm_router, prefix="/api")
app.include_router(generate_router, prefix="/api")
app.include_router(questions_router, prefix="/api")
app.include_router(exams_router, prefix="/api")
app.include_router(grade_router, prefix="/api")
app.include_router(todos_router, prefix="/api")
