"""End-to-end study flow: syllabus -> plan -> test -> graded results.

``StudyFlow`` is the only thing that moves ``AppState`` between states.
Every transition replaces the state object and writes it to the session
store. Cancelling a pending call writes back the step it started from.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from studyplanner.client.gateway_client import GatewayClient, GatewayError
from studyplanner.client.state import (
    Answers,
    AppState,
    FlowState,
    InvalidTransition,
    TRANSITIONS,
    TestResults,
    task_key,
)
from studyplanner.client import storage
from studyplanner.schemas.questions import WrittenQuestion
from studyplanner.schemas.results import Graded, SubjectiveResult, TestHistoryEntry, Ungraded
from studyplanner.services.score_aggregator import aggregate, history_entry

logger = logging.getLogger(__name__)

ANSWER_SECTIONS = ("mcqs", "short_questions", "long_questions")


class StudyFlow:
    def __init__(
        self,
        gateway: GatewayClient,
        *,
        session: storage.SessionStore,
        local: storage.SessionStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Optional[Callable[[], date]] = None,
    ):
        self.gateway = gateway
        self.session = session
        self.local = local
        self._sleep = sleep
        self._today = today or date.today
        loaded = storage.load_app_state(session)
        self.app = loaded.settled()
        if self.app is not loaded:
            logger.info("resuming from %s as %s", loaded.state.value, self.app.state.value)
            storage.save_app_state(session, self.app)
        self.remaining_seconds: Optional[int] = None
        self._submission: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def state(self) -> FlowState:
        return self.app.state

    def _require(self, target: FlowState) -> None:
        if target not in TRANSITIONS[self.app.state]:
            raise InvalidTransition(self.app.state, target)

    def _move(self, target: FlowState, **changes) -> AppState:
        self._require(target)
        self.app = self.app.model_copy(update={"state": target, **changes})
        storage.save_app_state(self.session, self.app)
        return self.app

    def _fail(self, err: GatewayError) -> AppState:
        logger.warning("flow error in %s: %s %s", self.app.state.value, err.code, err.message)
        return self._move(FlowState.ERROR, error=err.message)

    def _rollback(self, previous: AppState) -> None:
        logger.info("cancelled in %s, back to %s", self.app.state.value, previous.state.value)
        self.app = previous
        storage.save_app_state(self.session, self.app)

    # ---- syllabus -> plan ----

    async def submit_syllabus(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        end_date: date,
        include_notes: bool = False,
    ) -> AppState:
        previous = self.app
        self._move(FlowState.SUBMITTING, error=None)
        try:
            res = await self.gateway.generate(
                data,
                filename=filename,
                content_type=content_type,
                end_date=end_date,
                include_notes=include_notes,
            )
        except GatewayError as e:
            return self._fail(e)
        except asyncio.CancelledError:
            self._rollback(previous)
            raise
        if not res.schedule:
            return self._fail(GatewayError(200, "EMPTY_SCHEDULE", "The generated schedule is empty."))

        storage.clear_progress(self.local)
        return self._move(
            FlowState.PLAN_READY,
            plan=res.schedule,
            study_notes=res.studyNotes,
            practice_questions=res.practiceQuestions,
            syllabus_text=res.syllabusText,
            test_subject=None,
            test=None,
            answers=Answers(),
            results=None,
        )

    # ---- checklist ----

    def toggle_task(self, subject_index: int, week: int, task_index: int) -> bool:
        progress = storage.load_progress(self.local)
        key = task_key(subject_index, week, task_index)
        progress[key] = not progress.get(key, False)
        storage.save_progress(self.local, progress)
        return progress[key]

    def is_task_done(self, subject_index: int, week: int, task_index: int) -> bool:
        return storage.load_progress(self.local).get(task_key(subject_index, week, task_index), False)

    def progress(self) -> Tuple[int, int]:
        """(done, total) over the current plan's tasks."""
        flags = storage.load_progress(self.local)
        keys = [
            task_key(s, w.week, t)
            for s, subject in enumerate(self.app.plan or [])
            for w in subject.weekly_plan
            for t in range(len(w.tasks))
        ]
        return sum(1 for k in keys if flags.get(k)), len(keys)

    # ---- tests ----

    def _reset_test_tasks(self) -> None:
        self._cancel_timer()
        self._submission = None
        self.remaining_seconds = None

    async def request_quick_test(self, topic: str, test_type: str) -> AppState:
        self._require(FlowState.TEST_REQUESTED)
        self._reset_test_tasks()
        previous = self.app
        self._move(FlowState.TEST_REQUESTED, test_subject=f"{topic} ({test_type})", test=None, error=None)
        try:
            test = await self.gateway.quick_test(topic, test_type)
        except GatewayError as e:
            return self._fail(e)
        except asyncio.CancelledError:
            self._rollback(previous)
            raise
        return self._move(FlowState.TEST_READY, test=test, answers=Answers(), results=None)

    async def request_full_test(self, subject: str) -> AppState:
        if not self.app.syllabus_text:
            raise InvalidTransition(self.app.state, FlowState.TEST_REQUESTED)
        self._require(FlowState.TEST_REQUESTED)
        self._reset_test_tasks()
        previous = self.app
        self._move(FlowState.TEST_REQUESTED, test_subject=subject, test=None, error=None)
        try:
            test = await self.gateway.full_test(subject, self.app.syllabus_text)
        except GatewayError as e:
            return self._fail(e)
        except asyncio.CancelledError:
            self._rollback(previous)
            raise
        return self._move(FlowState.TEST_READY, test=test, answers=Answers(), results=None)

    def answer(self, section: str, index: int, value: str) -> AppState:
        if section not in ANSWER_SECTIONS:
            raise ValueError(f"unknown section {section!r}")
        if self.app.state not in (FlowState.TEST_READY, FlowState.ANSWERING):
            raise InvalidTransition(self.app.state, FlowState.ANSWERING)
        questions = getattr(self.app.test, section, None) or []
        if not 0 <= index < len(questions):
            raise IndexError(f"{section}[{index}] does not exist")

        answers = self.app.answers.model_copy(deep=True)
        getattr(answers, section)[index] = value
        if self.app.state == FlowState.ANSWERING:
            self.app = self.app.model_copy(update={"answers": answers})
            storage.save_app_state(self.session, self.app)
            return self.app
        return self._move(FlowState.ANSWERING, answers=answers)

    # ---- countdown ----

    def start_timer(self) -> Optional[asyncio.Task]:
        """Count down the test's time limit and submit at zero."""
        test = self.app.test
        if test is None or not test.time_limit_minutes or self._timer is not None:
            return self._timer
        self.remaining_seconds = test.time_limit_minutes * 60
        self._timer = asyncio.create_task(self._countdown())
        return self._timer

    async def _countdown(self) -> None:
        while self.remaining_seconds and self.remaining_seconds > 0:
            await self._sleep(1)
            self.remaining_seconds -= 1
        logger.info("time is up, submitting")
        await self.submit()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    # ---- submit + grade ----

    async def submit(self) -> AppState:
        """Submit the current test; later calls join the first one."""
        if self._submission is None:
            if self.app.state not in (FlowState.TEST_READY, FlowState.ANSWERING):
                raise InvalidTransition(self.app.state, FlowState.SUBMITTED)
            self._cancel_timer()
            self._submission = asyncio.ensure_future(self._submit_once())
        return await asyncio.shield(self._submission)

    async def _grade_one(self, q: WrittenQuestion, answer: str) -> SubjectiveResult:
        try:
            res = await self.gateway.grade(
                question=q.question, keywords=q.keywords, user_answer=answer or "", marks=q.marks
            )
        except GatewayError as e:
            logger.warning("grading failed for %r: %s", q.question[:60], e.message)
            return Ungraded(max_marks=q.marks, reason=e.message)
        return Graded(score=min(res.score, q.marks), max_marks=q.marks, feedback=res.feedback)

    async def _grade_section(self, questions: Sequence[WrittenQuestion], answers: dict) -> List[SubjectiveResult]:
        return list(await asyncio.gather(*(self._grade_one(q, answers.get(i, "")) for i, q in enumerate(questions))))

    async def _submit_once(self) -> AppState:
        previous = self.app
        self._move(FlowState.SUBMITTED)
        self._move(FlowState.GRADING)
        test = self.app.test
        answers = self.app.answers

        short_qs = getattr(test, "short_questions", None) or []
        long_qs = getattr(test, "long_questions", None) or []
        try:
            short, long_ = await asyncio.gather(
                self._grade_section(short_qs, answers.short_questions),
                self._grade_section(long_qs, answers.long_questions),
            )
        except asyncio.CancelledError:
            self._rollback(previous)
            raise

        summary = aggregate(
            mcqs=getattr(test, "mcqs", None) or [],
            mcq_answers=answers.mcqs,
            subjective=short + long_,
            total_marks=test.total_marks,
        )
        storage.prepend_history(
            self.local,
            history_entry(self.app.test_subject or test.subject, summary, on=self._today()),
        )
        return self._move(
            FlowState.RESULTS_READY,
            results=TestResults(short_questions=short, long_questions=long_, summary=summary),
        )

    def back_to_plan(self) -> AppState:
        return self._move(FlowState.PLAN_READY, test=None, answers=Answers(), results=None)

    def history(self) -> List[TestHistoryEntry]:
        return storage.load_history(self.local)

    async def close(self) -> None:
        """Drop in-flight work, as navigating away would."""
        pending = [t for t in (self._timer, self._submission) if t is not None and not t.done()]
        self._timer = None
        self._submission = None
        for t in pending:
            t.cancel()
        for t in pending:
            try:
                await t
            except asyncio.CancelledError:
                pass
