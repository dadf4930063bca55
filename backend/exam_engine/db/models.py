"""SQLAlchemy database models."""

import json
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from exam_engine.timeutil import utcnow


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class TestPatternDB(Base):
    """Test pattern database model."""

    __tablename__ = "test_patterns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern_type: Mapped[str] = mapped_column(String(30), default="CUSTOM", index=True)
    subject_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    sections: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    scoring_rules: Mapped[str] = mapped_column(Text, default="{}")  # JSON
    # Cached totals, rewritten on every save
    total_marks: Mapped[float] = mapped_column(Float, default=0.0)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    total_duration: Mapped[int] = mapped_column(Integer, default=60)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tests: Mapped[list["OnlineTestDB"]] = relationship(back_populates="pattern")

    def get_sections(self) -> list[dict]:
        return json.loads(self.sections)

    def set_sections(self, sections: list[dict]) -> None:
        self.sections = json.dumps(sections)

    def get_scoring_rules(self) -> dict:
        return json.loads(self.scoring_rules)

    def set_scoring_rules(self, rules: dict) -> None:
        self.scoring_rules = json.dumps(rules)


class QuestionDB(Base):
    """Question database model."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    options: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    matrix_columns: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    marks: Mapped[float] = mapped_column(Float, default=4.0)
    negative_marks: Mapped[float] = mapped_column(Float, default=0.0)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class OnlineTestDB(Base):
    """Online test database model."""

    __tablename__ = "online_tests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("test_patterns.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default="DRAFT", index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    total_marks: Mapped[float] = mapped_column(Float, default=0.0)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    passing_marks: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_attempts: Mapped[int] = mapped_column(Integer, default=1)
    start_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    pattern: Mapped["TestPatternDB | None"] = relationship(back_populates="tests")
    questions: Mapped[list["TestQuestionDB"]] = relationship(
        back_populates="test", order_by="TestQuestionDB.sequence_order"
    )
    attempts: Mapped[list["TestAttemptDB"]] = relationship(back_populates="test")


class TestQuestionDB(Base):
    """A question at a position inside a test."""

    __tablename__ = "test_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    test_id: Mapped[str] = mapped_column(String(36), ForeignKey("online_tests.id"), nullable=False)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"), nullable=False)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str | None] = mapped_column(String(200), nullable=True)
    marks: Mapped[float] = mapped_column(Float, default=4.0)
    negative_marks: Mapped[float] = mapped_column(Float, default=0.0)
    partial_marking: Mapped[bool] = mapped_column(Boolean, default=False)

    # Relationships
    test: Mapped["OnlineTestDB"] = relationship(back_populates="questions")
    question: Mapped["QuestionDB"] = relationship()


class TestAttemptDB(Base):
    """Test attempt database model."""

    __tablename__ = "test_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    test_id: Mapped[str] = mapped_column(String(36), ForeignKey("online_tests.id"), nullable=False)
    candidate_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(20), default="IN_PROGRESS", index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    total_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    result: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON ScoreResult

    # Relationships
    test: Mapped["OnlineTestDB"] = relationship(back_populates="attempts")
    responses: Mapped[list["TestResponseDB"]] = relationship(back_populates="attempt")


class TestResponseDB(Base):
    """One response shell per test question, created when the attempt starts."""

    __tablename__ = "test_responses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    attempt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("test_attempts.id"), nullable=False, index=True
    )
    test_question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("test_questions.id"), nullable=False
    )
    selected_options: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    response_text: Mapped[str] = mapped_column(Text, default="")
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    answered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    awarded: Mapped[float | None] = mapped_column(Float, nullable=True)
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Relationships
    attempt: Mapped["TestAttemptDB"] = relationship(back_populates="responses")
    test_question: Mapped["TestQuestionDB"] = relationship()

    def get_selected_options(self) -> list[str]:
        return json.loads(self.selected_options)

    def set_selected_options(self, options: list[str]) -> None:
        self.selected_options = json.dumps(options)
