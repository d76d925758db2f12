from __future__ import annotations

from datetime import date
from pathlib import PurePath
from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile

from studyplanner.core.config import settings
from studyplanner.core.errors import ValidationError
from studyplanner.schemas.plan import GenerateResponse
from studyplanner.services.document_extractor import extract_syllabus
from studyplanner.services.generation_service import generate_schedule

router = APIRouter(tags=["generate"])


def _parse_end_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as e:
        raise ValidationError("End date must be an ISO date (YYYY-MM-DD).") from e


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
def generate(
    syllabusFile: Optional[UploadFile] = File(default=None),
    endDate: Optional[str] = Form(default=None),
    include_notes: bool = Query(default=False),
):
    """Syllabus upload -> week-by-week plan (optionally with notes and practice questions)."""
    if syllabusFile is None or not (endDate or "").strip():
        raise ValidationError("Syllabus file and end date are required.")
    deadline = _parse_end_date(endDate)

    # one byte past the cap is enough to reject it
    data = syllabusFile.file.read(settings.max_upload_bytes + 1)
    syllabus = extract_syllabus(data, content_type=syllabusFile.content_type, filename=syllabusFile.filename)
    source_name = PurePath(syllabusFile.filename or "").stem or "Syllabus"
    return generate_schedule(syllabus, deadline=deadline, include_notes=include_notes, source_name=source_name)
