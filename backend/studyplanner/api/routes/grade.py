from __future__ import annotations

from fastapi import APIRouter

from studyplanner.schemas.grading import GradeRequest, GradingResult
from studyplanner.services.generation_service import grade_answer

router = APIRouter(tags=["grading"])


@router.post("/grade", response_model=GradingResult)
def grade(payload: GradeRequest):
    return grade_answer(payload)
