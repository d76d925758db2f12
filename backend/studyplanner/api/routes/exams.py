from __future__ import annotations

from fastapi import APIRouter

from studyplanner.schemas.exam import FullTest, FullTestRequest, QuickTest, QuickTestRequest
from studyplanner.services.generation_service import generate_full_test, generate_quick_test

router = APIRouter(tags=["exams"])


@router.post("/quick-test", response_model=QuickTest)
def quick_test(payload: QuickTestRequest):
    """Single-topic timed test: 20 MCQs (10 min) or 10 two-mark SAQs (20 min)."""
    return generate_quick_test(payload.topic, payload.testType)


@router.post("/test", response_model=FullTest)
def full_test(payload: FullTestRequest):
    """Syllabus-wide 50-mark paper: 10 MCQs, 2 short and 2 long questions."""
    return generate_full_test(payload.subject, payload.syllabusText)
