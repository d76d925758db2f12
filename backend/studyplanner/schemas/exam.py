from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from studyplanner.schemas.questions import MCQ, WrittenQuestion

TestType = Literal["MCQ", "SAQ"]


class QuickTestRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1)
    testType: TestType


class FullTestRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    subject: str = Field(min_length=1)
    syllabusText: str = Field(min_length=1)


class _TestBase(BaseModel):
    subject: str
    total_marks: int = Field(ge=1)
    time_limit_minutes: Optional[int] = Field(default=None, ge=1)


class McqQuickTest(_TestBase):
    test_type: Literal["MCQ"]
    mcqs: List[MCQ] = Field(min_length=1)

    @model_validator(mode="after")
    def _marks_add_up(self):
        # one mark per MCQ
        if len(self.mcqs) != self.total_marks:
            raise ValueError(f"{len(self.mcqs)} one-mark MCQs do not add up to total_marks={self.total_marks}")
        return self


class SaqQuickTest(_TestBase):
    test_type: Literal["SAQ"]
    short_questions: List[WrittenQuestion] = Field(min_length=1)

    @model_validator(mode="after")
    def _marks_add_up(self):
        got = sum(q.marks for q in self.short_questions)
        if got != self.total_marks:
            raise ValueError(f"short question marks sum to {got}, total_marks={self.total_marks}")
        return self


QuickTest = Annotated[Union[McqQuickTest, SaqQuickTest], Field(discriminator="test_type")]
quick_test_adapter: TypeAdapter = TypeAdapter(QuickTest)


class FullTest(_TestBase):
    test_type: Literal["mixed"] = "mixed"
    mcqs: List[MCQ] = Field(min_length=1)
    short_questions: List[WrittenQuestion] = Field(min_length=1)
    long_questions: List[WrittenQuestion] = Field(min_length=1)

    @model_validator(mode="after")
    def _marks_add_up(self):
        got = len(self.mcqs) + sum(q.marks for q in self.short_questions) + sum(q.marks for q in self.long_questions)
        if got != self.total_marks:
            raise ValueError(f"section marks sum to {got}, total_marks={self.total_marks}")
        return self
