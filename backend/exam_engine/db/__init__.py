"""Database layer for the attempt engine."""

from .database import Database, get_db
from .models import (
    Base,
    OnlineTestDB,
    QuestionDB,
    TestAttemptDB,
    TestPatternDB,
    TestQuestionDB,
    TestResponseDB,
)

__all__ = [
    "Database",
    "get_db",
    "Base",
    "OnlineTestDB",
    "QuestionDB",
    "TestAttemptDB",
    "TestPatternDB",
    "TestQuestionDB",
    "TestResponseDB",
]
