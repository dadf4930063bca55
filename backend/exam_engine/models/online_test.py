"""Online test definition models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from .attempt import TestQuestion
from ..timeutil import utcnow


class TestStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class OnlineTestCreate(BaseModel):
    """Payload for building a test from a pattern and an ordered question list."""

    title: str = Field(min_length=1)
    description: str | None = None
    pattern_id: str | None = None
    question_ids: list[str] = Field(min_length=1)
    duration_minutes: int | None = Field(
        default=None, ge=1, description="Defaults to the pattern's total duration"
    )
    passing_marks: float | None = None
    max_attempts: int = Field(default=1, ge=1)
    start_at: datetime | None = None
    end_at: datetime | None = None


class OnlineTest(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    description: str | None = None
    pattern_id: str | None = None
    status: TestStatus = TestStatus.DRAFT
    duration_minutes: int
    total_marks: float
    total_questions: int
    passing_marks: float | None = None
    max_attempts: int = 1
    start_at: datetime | None = None
    end_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    questions: list[TestQuestion] = Field(default_factory=list)


class StartAttemptRequest(BaseModel):
    candidate_id: str


class LeaderboardEntry(BaseModel):
    rank: int
    candidate_id: str
    score: float
    percentage: float
    submitted_at: datetime | None


class TestAnalytics(BaseModel):
    test_id: str
    title: str
    total_marks: float
    passing_marks: float | None
    total_attempts: int
    completed_attempts: int
    average_score: float
    highest_score: float
    lowest_score: float
    pass_count: int
    fail_count: int
    leaderboard: list[LeaderboardEntry]
