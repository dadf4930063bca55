"""Test pattern models.

A pattern partitions a test's questions into scored sections. Question
numbers are 1-based and each section owns a contiguous range of them:

    Physics    Q1  - Q25   4 marks, -1
    Chemistry  Q26 - Q50   4 marks, -1
    Maths      Q51 - Q75   4 marks, -1

The totals on ``TestPattern`` are always derived from the sections.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from .question import QuestionType
from ..timeutil import utcnow

DEFAULT_QUESTION_TYPES = [QuestionType.SINGLE_CORRECT]


class PatternType(str, Enum):
    JEE_MAIN = "JEE_MAIN"
    JEE_ADVANCED = "JEE_ADVANCED"
    NEET = "NEET"
    CUSTOM = "CUSTOM"


class QuestionRange(BaseModel):
    """Inclusive 1-based question number range."""

    start: int = Field(ge=1)
    end: int = Field(ge=1)

    @property
    def count(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, number: int) -> bool:
        return self.start <= number <= self.end


class Section(BaseModel):
    """One contiguous block of questions sharing a marking scheme."""

    name: str
    subject_id: str | None = None
    subject_code: str | None = None
    subject_name: str | None = None
    question_count: int = 25
    question_range: QuestionRange | None = None
    marks_per_question: float = 4
    negative_marks: float = 0
    question_types: list[QuestionType] = Field(
        default_factory=lambda: list(DEFAULT_QUESTION_TYPES)
    )
    duration: int | None = Field(default=None, description="Informational, in minutes")
    partial_marking: bool = False

    @field_validator("question_types", mode="before")
    @classmethod
    def _default_question_types(cls, value):
        # An empty selection falls back to single-correct instead of failing
        if not value:
            return list(DEFAULT_QUESTION_TYPES)
        return value

    @property
    def total_marks(self) -> float:
        return self.question_count * self.marks_per_question


class ScoringRules(BaseModel):
    negative_marking_enabled: bool = True
    partial_marking: bool = False


class PatternBase(BaseModel):
    name: str
    description: str | None = None
    pattern_type: PatternType = PatternType.CUSTOM
    subject_id: str | None = None
    sections: list[Section] = Field(default_factory=list)
    scoring_rules: ScoringRules = Field(default_factory=ScoringRules)
    total_duration: int = 60

    @computed_field
    @property
    def total_questions(self) -> int:
        return sum(s.question_count for s in self.sections)

    @computed_field
    @property
    def total_marks(self) -> float:
        return sum(s.total_marks for s in self.sections)


class PatternCreate(PatternBase):
    """Payload for creating a pattern."""


class PatternUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    sections: list[Section] | None = None
    scoring_rules: ScoringRules | None = None
    total_duration: int | None = None
    is_active: bool | None = None


class TestPattern(PatternBase):
    """A stored pattern."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    is_default: bool = False
    is_active: bool = True
    created_by_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class SectionAssignment(BaseModel):
    """Marking scheme resolved for one question number at build time."""

    question_number: int
    question_id: str
    section: str
    marks: float
    negative_marks: float
    partial_marking: bool
