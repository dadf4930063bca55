"""Online test API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.db import get_db
from exam_engine.dependencies import get_attempt_service
from exam_engine.models.attempt import TestAttempt
from exam_engine.models.online_test import (
    OnlineTest,
    OnlineTestCreate,
    StartAttemptRequest,
    TestAnalytics,
)
from exam_engine.services.attempt import AttemptService
from exam_engine.services.online_test import OnlineTestService

router = APIRouter(prefix="/api/tests", tags=["tests"])


@router.post("", response_model=OnlineTest, status_code=201)
async def create_test(
    data: OnlineTestCreate,
    db: AsyncSession = Depends(get_db),
):
    """Build a draft test from a pattern and an ordered list of questions.

    The number of questions must match the pattern's total; each question
    takes the marks of the section its position falls in.
    """
    service = OnlineTestService(db)
    return await service.create_test(data)


@router.get("/{test_id}", response_model=OnlineTest)
async def get_test(
    test_id: str,
    include_answers: bool = False,
    db: AsyncSession = Depends(get_db),
):
    service = OnlineTestService(db)
    return await service.get_test(test_id, include_answers=include_answers)


@router.post("/{test_id}/publish", response_model=OnlineTest)
async def publish_test(
    test_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = OnlineTestService(db)
    return await service.publish_test(test_id)


@router.post("/{test_id}/close", response_model=OnlineTest)
async def close_test(
    test_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = OnlineTestService(db)
    return await service.close_test(test_id)


@router.post("/{test_id}/attempts", response_model=TestAttempt, status_code=201)
async def start_attempt(
    test_id: str,
    request: StartAttemptRequest,
    service: AttemptService = Depends(get_attempt_service),
):
    """Start an attempt, or resume the candidate's unfinished one."""
    return await service.start_attempt(test_id, request.candidate_id)


@router.get("/{test_id}/analytics", response_model=TestAnalytics)
async def get_test_analytics(
    test_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = OnlineTestService(db)
    return await service.get_analytics(test_id)
