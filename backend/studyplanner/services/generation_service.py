from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as SchemaError

from studyplanner.core.config import settings
from studyplanner.core.errors import ExtractionEmpty, MalformedModelOutput, ValidationError
from studyplanner.schemas.exam import FullTest, McqQuickTest, SaqQuickTest, quick_test_adapter
from studyplanner.schemas.grading import GradeRequest, GradingResult
from studyplanner.schemas.plan import GenerateResponse, StudyPlanOut
from studyplanner.schemas.questions import KeywordQuestionsOut, McqSetOut, PlainQuestionsOut
from studyplanner.services import prompt_builder
from studyplanner.services.document_extractor import ExtractedSyllabus, truncate_for_prompt
from studyplanner.services.llm_service import chat_json, image_content_part
from studyplanner.services.prompt_builder import TaskKind


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _validate(model: Union[Type[M], TypeAdapter], data: Dict[str, Any], *, what: str):
    try:
        if isinstance(model, TypeAdapter):
            return model.validate_python(data)
        return model.model_validate(data)
    except SchemaError as e:
        logger.warning("%s failed schema validation: %s", what, e.errors()[:3])
        raise MalformedModelOutput(f"Model returned an invalid {what}: {e.error_count()} schema error(s).") from e


def _generate(prompt: str, *, image: Optional[ExtractedSyllabus] = None, temperature: Optional[float] = None) -> Dict[str, Any]:
    if image is not None and image.needs_model_ocr:
        content: Any = [{"type": "text", "text": prompt}, image_content_part(image.image, image.mime_type)]
        model = settings.OPENAI_VISION_MODEL or settings.OPENAI_CHAT_MODEL
    else:
        content = prompt
        model = settings.OPENAI_CHAT_MODEL
    return chat_json(
        messages=[{"role": "user", "content": content}],
        model=model,
        temperature=settings.GENERATION_TEMPERATURE if temperature is None else temperature,
        max_tokens=settings.GENERATION_MAX_TOKENS,
    )


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


def _wrap_flat_schedule(data: Dict[str, Any], subject_name: str) -> Dict[str, Any]:
    """Accept {"schedule": [WeekPlan, ...]} and wrap it into a single subject."""
    schedule = data.get("schedule")
    if isinstance(schedule, list) and schedule and isinstance(schedule[0], dict) and "week" in schedule[0]:
        data = dict(data)
        data["schedule"] = [{"subject_name": subject_name, "weekly_plan": schedule}]
    return data


def _check_deadline(plan: StudyPlanOut, *, today: date, deadline: date) -> None:
    max_weeks = prompt_builder.weeks_available(today, deadline)
    for subject in plan.schedule:
        if subject.last_week > max_weeks:
            raise MalformedModelOutput(
                f"Schedule for '{subject.subject_name}' runs to week {subject.last_week}, "
                f"past the deadline ({max_weeks} weeks available)."
            )


def _check_notes_bundle(plan: StudyPlanOut) -> None:
    if plan.studyNotes is None or plan.practiceQuestions is None:
        raise MalformedModelOutput("Model response is missing studyNotes or practiceQuestions.")
    topics = set(plan.topics)
    unknown = [k for k in plan.studyNotes if k not in topics]
    if unknown:
        raise MalformedModelOutput(f"studyNotes keys do not match any scheduled topic: {unknown[:3]}")
    if len(plan.practiceQuestions) != prompt_builder.NOTES_PRACTICE_QUESTIONS:
        raise MalformedModelOutput(
            f"Expected {prompt_builder.NOTES_PRACTICE_QUESTIONS} practice questions, got {len(plan.practiceQuestions)}."
        )


def generate_schedule(
    syllabus: ExtractedSyllabus,
    *,
    deadline: date,
    today: Optional[date] = None,
    include_notes: bool = False,
    source_name: str = "Syllabus",
) -> GenerateResponse:
    today = today or date.today()
    if deadline < today:
        raise ValidationError("End date must not be in the past.")

    ocr = syllabus.needs_model_ocr
    text = None if ocr else truncate_for_prompt(syllabus.text or "", settings.SYLLABUS_TEXT_MAX_CHARS)
    kind = TaskKind.NOTES_BUNDLE if include_notes else TaskKind.SCHEDULE
    prompt = prompt_builder.build_prompt(kind, syllabus_text=text, deadline=deadline, today=today, ocr=ocr)

    data = _wrap_flat_schedule(_generate(prompt, image=syllabus if ocr else None), source_name)
    plan = _validate(StudyPlanOut, data, what="schedule")
    _check_deadline(plan, today=today, deadline=deadline)
    if include_notes:
        _check_notes_bundle(plan)

    if ocr:
        syllabus_text = (plan.syllabusText or "").strip()
        if not syllabus_text:
            raise ExtractionEmpty("The model could not read any text from the syllabus image.")
    else:
        syllabus_text = syllabus.text or ""

    return GenerateResponse(
        schedule=plan.schedule,
        studyNotes=plan.studyNotes,
        practiceQuestions=plan.practiceQuestions,
        syllabusText=syllabus_text,
    )


# ---------------------------------------------------------------------------
# Questions / tests
# ---------------------------------------------------------------------------


def _pluralize_question_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Older prompt variant answered with a single question per mark band."""
    out = dict(data)
    for single, plural in (("five_mark_question", "five_mark_questions"), ("ten_mark_question", "ten_mark_questions")):
        if plural not in out and single in out:
            out[plural] = [out.pop(single)]
    return out


def generate_topic_questions(topic: str, *, with_keywords: bool = False) -> Union[PlainQuestionsOut, KeywordQuestionsOut]:
    prompt = prompt_builder.build_prompt(TaskKind.TOPIC_QUESTIONS, topic=topic, with_keywords=with_keywords)
    data = _pluralize_question_keys(_generate(prompt))
    model = KeywordQuestionsOut if with_keywords else PlainQuestionsOut
    return _validate(model, data, what="question set")


def generate_topic_mcqs(topic: str) -> McqSetOut:
    prompt = prompt_builder.build_prompt(TaskKind.TOPIC_MCQS, topic=topic)
    return _validate(McqSetOut, _generate(prompt), what="MCQ set")


def _check_section(what: str, questions: List[Any], count: int, marks: Optional[int] = None) -> None:
    if len(questions) != count:
        raise MalformedModelOutput(f"Model returned {len(questions)} {what}, expected {count}.")
    if marks is not None and any(q.marks != marks for q in questions):
        raise MalformedModelOutput(f"Every one of the {what} must be worth {marks} marks.")


def _check_total(test: Any, expected: int) -> None:
    if test.total_marks != expected:
        raise MalformedModelOutput(f"Test is worth {test.total_marks} marks, expected {expected}.")


def generate_quick_test(topic: str, test_type: str) -> Union[McqQuickTest, SaqQuickTest]:
    prompt = prompt_builder.build_prompt(TaskKind.QUICK_TEST, topic=topic, test_type=test_type)
    data = _generate(prompt)
    data.setdefault("test_type", test_type)
    test = _validate(quick_test_adapter, data, what="quick test")
    if test.test_type != test_type:
        raise MalformedModelOutput(f"Requested a {test_type} test, model returned {test.test_type}.")
    if test.test_type == "MCQ":
        _check_section("MCQs", test.mcqs, prompt_builder.QUICK_MCQ_COUNT)
    else:
        _check_section(
            "short questions", test.short_questions, prompt_builder.QUICK_SAQ_COUNT, prompt_builder.QUICK_SAQ_MARKS
        )
    _check_total(test, prompt_builder.QUICK_TOTAL_MARKS)
    return test


def generate_full_test(subject: str, syllabus_text: str) -> FullTest:
    text = truncate_for_prompt(syllabus_text, settings.FULL_TEST_TEXT_MAX_CHARS)
    prompt = prompt_builder.build_prompt(TaskKind.FULL_TEST, subject=subject, syllabus_text=text)
    test = _validate(FullTest, _generate(prompt), what="test")
    _check_section("MCQs", test.mcqs, prompt_builder.FULL_MCQ_COUNT)
    _check_section("short questions", test.short_questions, prompt_builder.FULL_SHORT_COUNT, prompt_builder.FULL_SHORT_MARKS)
    _check_section("long questions", test.long_questions, prompt_builder.FULL_LONG_COUNT, prompt_builder.FULL_LONG_MARKS)
    _check_total(test, prompt_builder.FULL_TOTAL_MARKS)
    return test


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedModelOutput("Grading score must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedModelOutput(f"Grading score is not a number: {value!r}") from e
    if not math.isfinite(number):
        raise MalformedModelOutput(f"Grading score is not a finite number: {value!r}")
    return int(round(number))


def _blank_answer_result(keywords: List[str]) -> GradingResult:
    missed = ", ".join(k for k in keywords if k)
    feedback = "No answer was given, so no marks were awarded."
    if missed:
        feedback += f" A good answer would cover: {missed}."
    return GradingResult(score=0, feedback=feedback)


def grade_answer(req: GradeRequest) -> GradingResult:
    """Grade one subjective answer. Blank answers score 0 without a model call."""
    if not req.userAnswer.strip():
        return _blank_answer_result(req.keywords)

    prompt = prompt_builder.build_prompt(
        TaskKind.GRADING,
        question=req.question,
        keywords=req.keywords,
        user_answer=req.userAnswer,
        marks=req.marks,
    )
    data = chat_json(
        messages=[{"role": "user", "content": prompt}],
        temperature=settings.GRADING_TEMPERATURE,
        max_tokens=settings.GRADING_MAX_TOKENS,
    )
    if "score" not in data:
        raise MalformedModelOutput("Grading response has no score.")

    score = max(0, min(int(req.marks), _coerce_score(data.get("score"))))
    feedback = " ".join(str(data.get("feedback") or "").split())
    if not feedback:
        feedback = "Answer graded against the essential keywords."
    return GradingResult(score=score, feedback=feedback)
