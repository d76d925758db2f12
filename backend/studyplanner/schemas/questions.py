from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TopicRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1)
    # Ask for {question, marks, keywords} objects instead of bare strings.
    with_keywords: bool = False


class WrittenQuestion(BaseModel):
    question: str = Field(min_length=1)
    marks: int = Field(ge=1)
    # Rubric basis for /grade.
    keywords: List[str] = Field(min_length=1)


class MCQ(BaseModel):
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer: str

    @model_validator(mode="after")
    def _answer_is_an_option(self):
        if self.correct_answer not in self.options:
            raise ValueError(f"correct_answer {self.correct_answer!r} is not one of the options")
        return self


class PlainQuestionsOut(BaseModel):
    five_mark_questions: List[str] = Field(min_length=1)
    ten_mark_questions: List[str] = Field(min_length=1)


class KeywordQuestionsOut(BaseModel):
    five_mark_questions: List[WrittenQuestion] = Field(min_length=1)
    ten_mark_questions: List[WrittenQuestion] = Field(min_length=1)


class McqSetOut(BaseModel):
    mcqs: List[MCQ] = Field(min_length=1)
