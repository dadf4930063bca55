"""Attempt, response and score models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from .question import Question
from ..timeutil import remaining_seconds, utcnow


class AttemptStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.IN_PROGRESS


class Outcome(str, Enum):
    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"
    PARTIAL = "PARTIAL"
    UNANSWERED = "UNANSWERED"
    PENDING_MANUAL = "PENDING_MANUAL"


class TestQuestion(BaseModel):
    """A question placed at a position in a test, with its resolved marking."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    sequence_order: int = Field(ge=1)
    section: str | None = None
    marks: float = Field(ge=0)
    negative_marks: float = Field(default=0, ge=0)
    partial_marking: bool = False
    question: Question


class Answer(BaseModel):
    """The answer part of a response, as sent by autosave."""

    selected_options: list[str] = Field(default_factory=list)
    response_text: str = ""

    @field_validator("selected_options")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        # Ordered set semantics
        return list(dict.fromkeys(value))

    @property
    def is_empty(self) -> bool:
        return not self.selected_options and not self.response_text.strip()


class TestResponse(Answer):
    """A candidate's response to one test question."""

    test_question_id: str
    flagged_for_review: bool = False
    time_spent_seconds: int = Field(default=0, ge=0)


class AttemptQuestion(BaseModel):
    """A response shell together with the question it answers."""

    test_question: TestQuestion
    response: TestResponse


class TestAttempt(BaseModel):
    """One candidate's run through a test."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    test_id: str
    test_title: str = ""
    candidate_id: str
    attempt_number: int = 1
    duration_minutes: int
    started_at: datetime = Field(default_factory=utcnow)
    submitted_at: datetime | None = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    items: list[AttemptQuestion] = Field(default_factory=list)
    server_time: datetime | None = Field(
        default=None, description="Server clock when this snapshot was produced"
    )

    @property
    def responses(self) -> list[TestResponse]:
        return [item.response for item in self.items]

    def remaining_seconds(self, now: datetime) -> int:
        return remaining_seconds(self.started_at, self.duration_minutes, now)


class SubmitAttemptRequest(BaseModel):
    """Complete response set sent at final submission."""

    responses: list[TestResponse]
    auto_submitted: bool = False


class SaveResponseRequest(BaseModel):
    test_question_id: str
    answer: Answer


class QuestionScore(BaseModel):
    test_question_id: str | None = None
    sequence_order: int | None = None
    section: str | None = None
    awarded: float
    max_marks: float = 0
    outcome: Outcome


class SectionScore(BaseModel):
    section: str
    total: int
    score: float
    max_score: float
    correct: int
    incorrect: int
    unanswered: int


class AttemptSummary(BaseModel):
    """One row of a candidate's attempt history."""

    id: str
    test_id: str
    test_title: str = ""
    attempt_number: int
    status: AttemptStatus
    started_at: datetime
    submitted_at: datetime | None = None
    total_score: float | None = None
    max_score: float = 0
    percentage: float | None = None

    @computed_field
    @property
    def result_url(self) -> str | None:
        if not self.status.is_terminal:
            return None
        return f"/api/attempts/{self.id}/result"


class ScoreResult(BaseModel):
    """Final grading of an attempt. Written once, at submission."""

    attempt_id: str
    status: AttemptStatus
    submitted_at: datetime
    questions: list[QuestionScore]
    sections: list[SectionScore] = Field(default_factory=list)
    total_score: float
    max_score: float
    percentage: float
    correct_count: int
    incorrect_count: int
    partial_count: int
    unanswered_count: int
    pending_manual_count: int

    @property
    def questions_answered(self) -> int:
        return self.correct_count + self.incorrect_count + self.partial_count


class AttemptStats(BaseModel):
    """Counts shown in the pre-submit confirmation dialog."""

    answered: int
    flagged: int
    unanswered: int
    total: int
