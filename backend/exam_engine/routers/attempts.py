"""Attempt API endpoints used by the candidate client."""

from fastapi import APIRouter, Depends

from exam_engine.dependencies import get_attempt_service
from exam_engine.models.attempt import (
    AttemptSummary,
    SaveResponseRequest,
    ScoreResult,
    SubmitAttemptRequest,
    TestAttempt,
)
from exam_engine.services.attempt import AttemptService

router = APIRouter(prefix="/api/attempts", tags=["attempts"])


@router.get("", response_model=list[AttemptSummary])
async def list_attempts(
    candidate_id: str,
    test_id: str | None = None,
    service: AttemptService = Depends(get_attempt_service),
):
    """A candidate's attempts, newest first, with result links for finished ones."""
    return await service.list_attempts(candidate_id, test_id=test_id)


@router.get("/{attempt_id}", response_model=TestAttempt)
async def get_attempt(
    attempt_id: str,
    service: AttemptService = Depends(get_attempt_service),
):
    """Open an attempt for answering.

    Returns 409 with a ``result_url`` once the attempt is submitted or expired.
    """
    return await service.open_attempt(attempt_id)


@router.post("/{attempt_id}/responses", status_code=204)
async def save_response(
    attempt_id: str,
    request: SaveResponseRequest,
    service: AttemptService = Depends(get_attempt_service),
):
    """Autosave one answer."""
    await service.save_response(attempt_id, request.test_question_id, request.answer)


@router.post("/{attempt_id}/submit", response_model=ScoreResult)
async def submit_attempt(
    attempt_id: str,
    request: SubmitAttemptRequest,
    service: AttemptService = Depends(get_attempt_service),
):
    """Grade and close the attempt. Repeating the call returns the same result."""
    return await service.submit_attempt(
        attempt_id, request.responses, auto_submitted=request.auto_submitted
    )


@router.get("/{attempt_id}/result", response_model=ScoreResult)
async def get_result(
    attempt_id: str,
    service: AttemptService = Depends(get_attempt_service),
):
    return await service.get_result(attempt_id)
