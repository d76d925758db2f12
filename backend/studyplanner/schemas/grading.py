from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class GradeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question: str = Field(min_length=1)
    keywords: List[str]
    # May be blank: a blank answer is graded 0 without calling the model.
    userAnswer: str
    marks: int = Field(ge=1)


class GradingResult(BaseModel):
    score: int = Field(ge=0)
    feedback: str = Field(min_length=1)
