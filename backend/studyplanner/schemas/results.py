from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class Graded(BaseModel):
    status: Literal["graded"] = "graded"
    score: int = Field(ge=0)
    max_marks: int = Field(ge=1)
    feedback: str


class Ungraded(BaseModel):
    """A grading call that failed; shown as "ungraded", never counted as 0."""

    status: Literal["ungraded"] = "ungraded"
    max_marks: int = Field(ge=1)
    reason: str


SubjectiveResult = Annotated[Union[Graded, Ungraded], Field(discriminator="status")]


class ScoreSummary(BaseModel):
    objective: int
    subjective: int
    # objective + every score we actually have
    graded_total: int
    # None while any subjective answer is ungraded
    total: Optional[int]
    total_marks: int
    ungraded: int = 0

    @property
    def complete(self) -> bool:
        return self.total is not None


class TestHistoryEntry(BaseModel):
    __test__ = False  # not a pytest class

    id: int
    subject: str
    # None renders as "pending"
    score: Optional[int]
    total_marks: int
    date: str
    ungraded: int = 0
