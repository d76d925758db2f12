from __future__ import annotations

from typing import Union

from fastapi import APIRouter

from studyplanner.schemas.questions import KeywordQuestionsOut, McqSetOut, PlainQuestionsOut, TopicRequest
from studyplanner.services.generation_service import generate_topic_mcqs, generate_topic_questions

router = APIRouter(tags=["questions"])


@router.post("/questions", response_model=Union[KeywordQuestionsOut, PlainQuestionsOut])
def questions(payload: TopicRequest):
    return generate_topic_questions(payload.topic, with_keywords=payload.with_keywords)


@router.post("/mcqs", response_model=McqSetOut)
def mcqs(payload: TopicRequest):
    return generate_topic_mcqs(payload.topic)
