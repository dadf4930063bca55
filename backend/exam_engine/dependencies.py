"""FastAPI dependencies shared by the routers."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.config import Settings
from exam_engine.db import get_db
from exam_engine.services import AttemptService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_attempt_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AttemptService:
    """Attempt service bound to the app's grace window and clock."""
    return AttemptService(
        db,
        grace_seconds=settings.submission_grace_seconds,
        clock=request.app.state.clock,
    )
