from __future__ import annotations

import time
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from studyplanner.schemas.questions import MCQ
from studyplanner.schemas.results import Graded, ScoreSummary, SubjectiveResult, TestHistoryEntry


def _extract_answer(answers: Any, index: int) -> Any:
    # answers restored from JSON have string keys
    if isinstance(answers, Mapping):
        if index in answers:
            return answers[index]
        return answers.get(str(index))
    if isinstance(answers, (list, tuple)) and 0 <= index < len(answers):
        return answers[index]
    return None


def is_correct(mcq: MCQ, answer: Any) -> bool:
    """Exact, trimmed, case-sensitive match against the declared answer."""
    if not isinstance(answer, str) or not answer.strip():
        return False
    return answer.strip() == mcq.correct_answer.strip()


def score_mcqs(mcqs: Sequence[MCQ], answers: Any) -> int:
    """One point per correct MCQ; option order plays no part."""
    return sum(1 for i, mcq in enumerate(mcqs or []) if is_correct(mcq, _extract_answer(answers, i)))


def sum_subjective(results: Sequence[SubjectiveResult]) -> int:
    return sum(r.score for r in results or [] if isinstance(r, Graded))


def aggregate(
    *,
    mcqs: Sequence[MCQ] = (),
    mcq_answers: Any = None,
    subjective: Sequence[SubjectiveResult] = (),
    total_marks: int,
) -> ScoreSummary:
    objective = score_mcqs(mcqs, mcq_answers or {})
    subj = sum_subjective(subjective)
    ungraded = sum(1 for r in subjective or [] if not isinstance(r, Graded))
    graded_total = objective + subj
    return ScoreSummary(
        objective=objective,
        subjective=subj,
        graded_total=graded_total,
        total=None if ungraded else graded_total,
        total_marks=int(total_marks),
        ungraded=ungraded,
    )


def history_entry(
    subject: str,
    summary: ScoreSummary,
    *,
    entry_id: Optional[int] = None,
    on: Optional[date] = None,
) -> TestHistoryEntry:
    return TestHistoryEntry(
        id=entry_id if entry_id is not None else int(time.time() * 1000),
        subject=subject,
        score=summary.total,
        total_marks=summary.total_marks,
        date=(on or date.today()).isoformat(),
        ungraded=summary.ungraded,
    )
