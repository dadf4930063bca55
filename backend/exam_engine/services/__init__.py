"""Business logic services."""

from .attempt import AttemptService
from .online_test import OnlineTestService
from .pattern import PatternEditor, PatternService, assign_sections, validate_pattern
from .question_bank import QuestionBankService
from .scoring import score, score_attempt, score_test_question

__all__ = [
    "AttemptService",
    "OnlineTestService",
    "PatternEditor",
    "PatternService",
    "QuestionBankService",
    "assign_sections",
    "score",
    "score_attempt",
    "score_test_question",
    "validate_pattern",
]
