"""API routers for the attempt engine."""

from .attempts import router as attempts_router
from .patterns import router as patterns_router
from .questions import router as questions_router
from .tests import router as tests_router

__all__ = [
    "attempts_router",
    "patterns_router",
    "questions_router",
    "tests_router",
]
