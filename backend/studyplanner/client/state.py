from __future__ import annotations

from enum import Enum
from typing import Annotated, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from studyplanner.schemas.exam import FullTest, McqQuickTest, SaqQuickTest
from studyplanner.schemas.plan import SubjectPlan
from studyplanner.schemas.results import ScoreSummary, SubjectiveResult


class FlowState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    PLAN_READY = "plan_ready"
    TEST_REQUESTED = "test_requested"
    TEST_READY = "test_ready"
    ANSWERING = "answering"
    SUBMITTED = "submitted"
    GRADING = "grading"
    RESULTS_READY = "results_ready"
    ERROR = "error"


TRANSITIONS: Dict[FlowState, frozenset] = {
    FlowState.IDLE: frozenset({FlowState.SUBMITTING, FlowState.TEST_REQUESTED}),
    FlowState.SUBMITTING: frozenset({FlowState.PLAN_READY, FlowState.ERROR}),
    FlowState.PLAN_READY: frozenset({FlowState.SUBMITTING, FlowState.TEST_REQUESTED}),
    FlowState.TEST_REQUESTED: frozenset({FlowState.TEST_READY, FlowState.ERROR}),
    FlowState.TEST_READY: frozenset({FlowState.ANSWERING, FlowState.SUBMITTED, FlowState.TEST_REQUESTED}),
    FlowState.ANSWERING: frozenset({FlowState.SUBMITTED, FlowState.TEST_REQUESTED}),
    FlowState.SUBMITTED: frozenset({FlowState.GRADING}),
    FlowState.GRADING: frozenset({FlowState.RESULTS_READY}),
    FlowState.RESULTS_READY: frozenset({FlowState.SUBMITTING, FlowState.TEST_REQUESTED, FlowState.PLAN_READY}),
    FlowState.ERROR: frozenset({FlowState.SUBMITTING, FlowState.TEST_REQUESTED, FlowState.IDLE}),
}


class InvalidTransition(RuntimeError):
    def __init__(self, current: FlowState, target: FlowState):
        super().__init__(f"cannot go from {current.value} to {target.value}")
        self.current = current
        self.target = target


AnyTest = Annotated[Union[McqQuickTest, SaqQuickTest, FullTest], Field(discriminator="test_type")]


class Answers(BaseModel):
    """Answers keyed by question index within each section."""

    mcqs: Dict[int, str] = Field(default_factory=dict)
    short_questions: Dict[int, str] = Field(default_factory=dict)
    long_questions: Dict[int, str] = Field(default_factory=dict)


class TestResults(BaseModel):
    __test__ = False  # not a pytest class

    short_questions: List[SubjectiveResult] = Field(default_factory=list)
    long_questions: List[SubjectiveResult] = Field(default_factory=list)
    summary: ScoreSummary


class AppState(BaseModel):
    """Everything one tab's flow carries from step to step.

    Written to the session store as a whole after every transition, so a
    reader never sees a half-applied step.
    """

    state: FlowState = FlowState.IDLE
    plan: Optional[List[SubjectPlan]] = None
    study_notes: Optional[Dict[str, str]] = None
    practice_questions: Optional[List[str]] = None
    syllabus_text: Optional[str] = None

    test_subject: Optional[str] = None
    test: Optional[AnyTest] = None
    answers: Answers = Field(default_factory=Answers)
    results: Optional[TestResults] = None

    error: Optional[str] = None

    def settled(self) -> "AppState":
        """Same state with any in-flight step rolled back to where it started.

        Nothing is in flight right after a load, so a saved in-flight state
        only means the previous owner was torn down mid-call.
        """
        if self.state in (FlowState.SUBMITTING, FlowState.TEST_REQUESTED):
            back = FlowState.PLAN_READY if self.plan else FlowState.IDLE
            return self.model_copy(update={"state": back, "test": None})
        if self.state in (FlowState.SUBMITTED, FlowState.GRADING):
            answers = self.answers
            answered = answers.mcqs or answers.short_questions or answers.long_questions
            back = FlowState.ANSWERING if answered else FlowState.TEST_READY
            return self.model_copy(update={"state": back, "results": None})
        return self


def task_key(subject_index: int, week: int, task_index: int) -> str:
    return f"subject-{subject_index}-week-{week}-task-{task_index}"

