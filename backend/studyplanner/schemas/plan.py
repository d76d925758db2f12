from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class WeekPlan(BaseModel):
    week: int = Field(ge=1)
    topic: str = Field(min_length=1)
    # Concept / sub-topic names, not "read chapter X" style actions.
    tasks: List[str] = Field(default_factory=list)


class SubjectPlan(BaseModel):
    subject_name: str = Field(min_length=1)
    weekly_plan: List[WeekPlan] = Field(min_length=1)

    @model_validator(mode="after")
    def _weeks_strictly_increasing(self):
        weeks = [w.week for w in self.weekly_plan]
        for prev, cur in zip(weeks, weeks[1:]):
            if cur <= prev:
                raise ValueError(
                    f"week numbers must be unique and increasing in '{self.subject_name}' (got {weeks})"
                )
        return self

    @property
    def last_week(self) -> int:
        return self.weekly_plan[-1].week


class StudyPlanOut(BaseModel):
    """What the model must produce for a schedule request."""

    schedule: List[SubjectPlan] = Field(min_length=1)
    # Only in the notes/questions bundle variant.
    studyNotes: Optional[Dict[str, str]] = None
    practiceQuestions: Optional[List[str]] = None
    # Only when the model transcribed an image syllabus.
    syllabusText: Optional[str] = None

    @property
    def topics(self) -> List[str]:
        return [w.topic for s in self.schedule for w in s.weekly_plan]


class GenerateResponse(BaseModel):
    schedule: List[SubjectPlan]
    studyNotes: Optional[Dict[str, str]] = None
    practiceQuestions: Optional[List[str]] = None
    syllabusText: str
