"""Candidate client: local responses, countdown, autosave and submission."""

from .gateway import AttemptGateway, HttpAttemptGateway, LocalAttemptGateway
from .response_cache import QuestionStatus, ResponseCache
from .session import AttemptSession
from .timer import AttemptScheduler, Countdown, TimerLevel

__all__ = [
    "AttemptGateway",
    "AttemptScheduler",
    "AttemptSession",
    "Countdown",
    "HttpAttemptGateway",
    "LocalAttemptGateway",
    "QuestionStatus",
    "ResponseCache",
    "TimerLevel",
]
