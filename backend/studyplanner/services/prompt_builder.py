"""Prompt strings for every generation/grading task.

Each builder is a pure function of its inputs and spells out the JSON
object the model has to return. Syllabus text is expected to be already
truncated by the caller.
"""

from __future__ import annotations

import json
import math
from datetime import date
from enum import Enum
from typing import Iterable, Optional


class TaskKind(str, Enum):
    SCHEDULE = "schedule"
    NOTES_BUNDLE = "notes_bundle"
    TOPIC_QUESTIONS = "topic_questions"
    TOPIC_MCQS = "topic_mcqs"
    QUICK_TEST = "quick_test"
    FULL_TEST = "full_test"
    GRADING = "grading"


QUICK_MCQ_COUNT = 20
QUICK_MCQ_MINUTES = 10
QUICK_SAQ_COUNT = 10
QUICK_SAQ_MARKS = 2
QUICK_SAQ_MINUTES = 20
QUICK_TOTAL_MARKS = 20

FULL_MCQ_COUNT = 10
FULL_SHORT_COUNT = 2
FULL_SHORT_MARKS = 5
FULL_LONG_COUNT = 2
FULL_LONG_MARKS = 15
FULL_TOTAL_MARKS = FULL_MCQ_COUNT + FULL_SHORT_COUNT * FULL_SHORT_MARKS + FULL_LONG_COUNT * FULL_LONG_MARKS

NOTES_PRACTICE_QUESTIONS = 10
TOPIC_MCQ_COUNT = 5


def weeks_available(today: date, deadline: date) -> int:
    """Number of study weeks from today up to and including the deadline day."""
    days = (deadline - today).days + 1
    return max(1, math.ceil(days / 7))


_SCHEDULE_RULES = """Rules for the schedule:
- Detect every distinct subject in the syllabus and produce one weekly plan per subject.
- Week numbers start at 1 and increase by one within each subject.
- The schedule MUST end by the deadline: use at most {max_weeks} weeks per subject.
- "tasks" lists the concepts or sub-topics to study that week, e.g. "Newton's second law".
  Do NOT write instructional actions such as "Read chapter 3", "Complete the assignment",
  "Review notes" or "Watch lecture"; keep only the concept names."""

_SCHEDULE_SCHEMA = {
    "schedule": [
        {
            "subject_name": "Physics",
            "weekly_plan": [
                {"week": 1, "topic": "Kinematics", "tasks": ["Displacement and velocity", "Uniform acceleration"]}
            ],
        }
    ]
}

_OCR_INSTRUCTION = """The syllabus is provided as an image. First transcribe all of its text
faithfully, then use that transcription as the syllabus content.
Include the transcription in the output under the key "syllabusText"."""


def _dates_block(deadline: date, today: date) -> str:
    return (
        f"Schedule Completion Deadline: {deadline.isoformat()}\n"
        f"Today's Date: {today.isoformat()}"
    )


def _syllabus_block(syllabus_text: Optional[str]) -> str:
    if syllabus_text is None:
        return "--- SYLLABUS ---\n(see the attached image)\n---"
    return f"--- SYLLABUS ---\n{syllabus_text}\n---"


def _schema_line(schema: dict) -> str:
    return "The output MUST be a single valid JSON object, with no text around it, shaped like:\n" + json.dumps(
        schema, indent=2, ensure_ascii=False
    )


def build_schedule_prompt(
    *,
    syllabus_text: Optional[str],
    deadline: date,
    today: date,
    ocr: bool = False,
) -> str:
    schema = dict(_SCHEDULE_SCHEMA)
    if ocr:
        schema["syllabusText"] = "full transcription of the syllabus image"
    parts = [
        "You are an expert academic planner. Generate a detailed, week-by-week study schedule from a syllabus.",
        _SCHEDULE_RULES.format(max_weeks=weeks_available(today, deadline)),
    ]
    if ocr:
        parts.append(_OCR_INSTRUCTION)
    parts += [_schema_line(schema), _syllabus_block(syllabus_text), _dates_block(deadline, today)]
    return "\n\n".join(parts)


def build_notes_bundle_prompt(
    *,
    syllabus_text: Optional[str],
    deadline: date,
    today: date,
    ocr: bool = False,
) -> str:
    schema = dict(_SCHEDULE_SCHEMA)
    schema["studyNotes"] = {"Kinematics": "Concise explanation of the topic ..."}
    schema["practiceQuestions"] = ["...", "..."]
    if ocr:
        schema["syllabusText"] = "full transcription of the syllabus image"
    parts = [
        "You are an expert academic planner and tutor. From the syllabus, build a study schedule, "
        "study notes for every scheduled topic, and syllabus-wide practice questions.",
        _SCHEDULE_RULES.format(max_weeks=weeks_available(today, deadline)),
        "Rules for the notes and questions:\n"
        '- "studyNotes" maps each topic to explanatory prose. Every key MUST exactly match the '
        '"topic" string of a week in the schedule.\n'
        f'- "practiceQuestions" holds exactly {NOTES_PRACTICE_QUESTIONS} questions covering the whole syllabus.',
    ]
    if ocr:
        parts.append(_OCR_INSTRUCTION)
    parts += [_schema_line(schema), _syllabus_block(syllabus_text), _dates_block(deadline, today)]
    return "\n\n".join(parts)


_SINGLE_TOPIC_GUARD = """IMPORTANT: The questions MUST relate ONLY to the single topic given below.
Do NOT write general questions for a mid-term or final exam, and IGNORE any other
topics, syllabus content or tasks such as "read the chapter"."""


def build_topic_questions_prompt(*, topic: str, with_keywords: bool = False) -> str:
    if with_keywords:
        item = {"question": "...", "marks": 5, "keywords": ["...", "...", "..."]}
        long_item = dict(item, marks=10)
        schema = {"five_mark_questions": [item, item], "ten_mark_questions": [long_item, long_item]}
        keyword_rule = (
            "For EACH question provide between 3 and 5 grading keywords that a good answer must contain."
        )
    else:
        schema = {"five_mark_questions": ["...", "..."], "ten_mark_questions": ["...", "..."]}
        keyword_rule = ""
    parts = [
        "You are an expert academic tutor creating practice questions for ONE specific topic ONLY.",
        _SINGLE_TOPIC_GUARD,
        f'The specific topic is: "{topic}"',
        "Based ONLY on this topic, generate:\n"
        "- Two distinct short-answer questions worth 5 marks each.\n"
        "- Two distinct long-answer, analytical questions worth 10 marks each.",
    ]
    if keyword_rule:
        parts.append(keyword_rule)
    parts.append(_schema_line(schema))
    return "\n\n".join(parts)


def build_topic_mcqs_prompt(*, topic: str, count: int = TOPIC_MCQ_COUNT) -> str:
    schema = {"mcqs": [{"question": "...", "options": ["...", "...", "...", "..."], "correct_answer": "..."}]}
    return "\n\n".join(
        [
            "You are an expert exam question creator, specializing in Multiple Choice Questions for ONE specific topic.",
            _SINGLE_TOPIC_GUARD,
            f'The specific topic is: "{topic}"',
            f"Generate {count} distinct MCQs based ONLY on this topic. Each question has exactly 4 options and "
            '"correct_answer" MUST be an exact copy of one of the options.',
            _schema_line(schema),
        ]
    )


def build_quick_test_prompt(*, topic: str, test_type: str) -> str:
    if test_type == "MCQ":
        schema = {
            "subject": topic,
            "total_marks": QUICK_TOTAL_MARKS,
            "time_limit_minutes": QUICK_MCQ_MINUTES,
            "test_type": "MCQ",
            "mcqs": [{"question": "...", "options": ["...", "...", "...", "..."], "correct_answer": "..."}],
        }
        body = (
            f'Generate a {QUICK_TOTAL_MARKS}-mark MCQ test on the topic: "{topic}".\n'
            f"The test MUST have exactly {QUICK_MCQ_COUNT} multiple-choice questions, each worth 1 mark, "
            "each with 4 options and a correct_answer copied exactly from its options.\n"
            f"- Total Marks: {QUICK_TOTAL_MARKS}\n- Time Limit: {QUICK_MCQ_MINUTES} minutes"
        )
    else:
        schema = {
            "subject": topic,
            "total_marks": QUICK_TOTAL_MARKS,
            "time_limit_minutes": QUICK_SAQ_MINUTES,
            "test_type": "SAQ",
            "short_questions": [{"question": "...", "marks": QUICK_SAQ_MARKS, "keywords": ["...", "..."]}],
        }
        body = (
            f'Generate a {QUICK_TOTAL_MARKS}-mark Short-Answer Question (SAQ) test on the topic: "{topic}".\n'
            f"The test MUST have exactly {QUICK_SAQ_COUNT} short-answer questions, each worth {QUICK_SAQ_MARKS} marks.\n"
            'For EACH question, provide an array of "keywords" for grading.\n'
            f"- Total Marks: {QUICK_TOTAL_MARKS}\n- Time Limit: {QUICK_SAQ_MINUTES} minutes"
        )
    return "\n\n".join(["You are an expert exam creator.", body, _schema_line(schema)])


def build_full_test_prompt(*, subject: str, syllabus_text: str) -> str:
    schema = {
        "subject": subject,
        "total_marks": FULL_TOTAL_MARKS,
        "test_type": "mixed",
        "mcqs": [{"question": "...", "options": ["A", "B", "C", "D"], "correct_answer": "C"}],
        "short_questions": [{"question": "...", "marks": FULL_SHORT_MARKS, "keywords": ["keyword1", "keyword2"]}],
        "long_questions": [
            {"question": "...", "marks": FULL_LONG_MARKS, "keywords": ["keyword1", "keyword2", "keyword3"]}
        ],
    }
    return "\n\n".join(
        [
            "You are a university professor creating a final exam. Generate a comprehensive "
            f'{FULL_TOTAL_MARKS}-mark exam paper for the subject of "{subject}". '
            "The exam MUST cover the entire syllabus provided for context.",
            "The exam structure MUST be:\n"
            f"1. Multiple Choice Questions: {FULL_MCQ_COUNT} questions, 1 mark each.\n"
            f"2. Short-Answer Questions: {FULL_SHORT_COUNT} questions, {FULL_SHORT_MARKS} marks each.\n"
            f"3. Long-Answer Questions: {FULL_LONG_COUNT} questions, {FULL_LONG_MARKS} marks each.",
            'CRUCIAL: every short-answer and long-answer question MUST carry an array of "keywords" '
            "that a good answer should contain. They are used for automated grading.",
            _schema_line(schema),
            f"--- SYLLABUS CONTEXT ---\n{syllabus_text}",
        ]
    )


def build_grading_prompt(*, question: str, keywords: Iterable[str], user_answer: str, marks: int) -> str:
    kw = ", ".join(k for k in keywords if k) or "(none given)"
    schema = _schema_line({"score": 0, "feedback": "..."})
    return f"""You are a fair and strict teaching assistant grading an exam answer against its essential keywords.

Original Question (worth {marks} marks): "{question}"
Essential Keywords: {kw}
Student's Answer: "{user_answer}"

Grading rubric (apply it deterministically):
- Full marks ({marks}) when the answer covers the keywords comprehensively and explains them correctly.
- About 70-90% of the marks when most keywords are covered with minor gaps.
- About 40-60% of the marks when roughly half of the keywords are covered or explanations are shallow.
- About 10-30% of the marks when only a few keywords appear with little explanation.
- 0 marks for an irrelevant, incorrect or blank answer.

The score MUST be an integer between 0 and {marks}.
The feedback MUST be brief, constructive, and name the keywords the answer missed.

{schema}"""


def build_prompt(kind: TaskKind, **kwargs) -> str:
    builders = {
        TaskKind.SCHEDULE: build_schedule_prompt,
        TaskKind.NOTES_BUNDLE: build_notes_bundle_prompt,
        TaskKind.TOPIC_QUESTIONS: build_topic_questions_prompt,
        TaskKind.TOPIC_MCQS: build_topic_mcqs_prompt,
        TaskKind.QUICK_TEST: build_quick_test_prompt,
        TaskKind.FULL_TEST: build_full_test_prompt,
        TaskKind.GRADING: build_grading_prompt,
    }
    return builders[TaskKind(kind)](**kwargs)
