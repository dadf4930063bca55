"""Pydantic models for the attempt engine."""

from .attempt import (
    Answer,
    AttemptQuestion,
    AttemptStats,
    AttemptStatus,
    AttemptSummary,
    Outcome,
    QuestionScore,
    SaveResponseRequest,
    ScoreResult,
    SectionScore,
    SubmitAttemptRequest,
    TestAttempt,
    TestQuestion,
    TestResponse,
)
from .online_test import OnlineTest, OnlineTestCreate, StartAttemptRequest, TestAnalytics, TestStatus
from .pattern import (
    PatternCreate,
    PatternType,
    PatternUpdate,
    QuestionRange,
    ScoringRules,
    Section,
    SectionAssignment,
    TestPattern,
)
from .question import (
    AnswerKey,
    AnswerKind,
    FreeTextKey,
    MatrixColumns,
    MatrixMatchKey,
    MultipleChoiceKey,
    NumericalKey,
    Question,
    QuestionCreate,
    QuestionOption,
    QuestionType,
    SingleChoiceKey,
)

__all__ = [
    "Answer",
    "AnswerKey",
    "AnswerKind",
    "AttemptQuestion",
    "AttemptStats",
    "AttemptStatus",
    "AttemptSummary",
    "FreeTextKey",
    "MatrixColumns",
    "MatrixMatchKey",
    "MultipleChoiceKey",
    "NumericalKey",
    "OnlineTest",
    "OnlineTestCreate",
    "Outcome",
    "PatternCreate",
    "PatternType",
    "PatternUpdate",
    "Question",
    "QuestionCreate",
    "QuestionOption",
    "QuestionRange",
    "QuestionScore",
    "QuestionType",
    "SaveResponseRequest",
    "ScoreResult",
    "ScoringRules",
    "Section",
    "SectionAssignment",
    "SectionScore",
    "SingleChoiceKey",
    "StartAttemptRequest",
    "SubmitAttemptRequest",
    "TestAnalytics",
    "TestAttempt",
    "TestPattern",
    "TestQuestion",
    "TestResponse",
    "TestStatus",
]
