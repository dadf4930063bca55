"""How a candidate session talks to the attempt service."""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exam_engine.config import Settings
from exam_engine.errors import (
    AttemptClosed,
    InvalidStateError,
    NotFoundError,
    SubmissionFailure,
    SyncFailure,
)
from exam_engine.models.attempt import (
    Answer,
    SaveResponseRequest,
    ScoreResult,
    SubmitAttemptRequest,
    TestAttempt,
    TestResponse,
)
from exam_engine.services.attempt import AttemptService
from exam_engine.timeutil import utcnow


class AttemptGateway(Protocol):
    async def get_attempt(self, attempt_id: str) -> TestAttempt: ...

    async def save_response(self, attempt_id: str, test_question_id: str, answer: Answer) -> None: ...

    async def submit_attempt(
        self, attempt_id: str, responses: list[TestResponse], auto_submitted: bool = False
    ) -> ScoreResult: ...


class HttpAttemptGateway:
    """Gateway over the attempt HTTP API.

    Transport and server errors become ``SyncFailure`` for autosave and
    ``SubmissionFailure`` for submit; a closed attempt becomes
    ``AttemptClosed`` carrying the result location.
    """

    TIMEOUT: float = 10.0

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout or self.TIMEOUT,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpAttemptGateway":
        return cls(base_url=settings.api_base_url, timeout=settings.api_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpAttemptGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @staticmethod
    def _check_closed(attempt_id: str, response: httpx.Response) -> None:
        if response.status_code != 409:
            return
        body = response.json()
        if "result_url" in body:
            raise AttemptClosed(attempt_id, body.get("status", "closed"))

    async def get_attempt(self, attempt_id: str) -> TestAttempt:
        response = await self.client.get(f"/api/attempts/{attempt_id}")
        self._check_closed(attempt_id, response)
        if response.status_code == 404:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        response.raise_for_status()
        return TestAttempt.model_validate(response.json())

    async def save_response(self, attempt_id: str, test_question_id: str, answer: Answer) -> None:
        payload = SaveResponseRequest(test_question_id=test_question_id, answer=answer)
        try:
            response = await self.client.post(
                f"/api/attempts/{attempt_id}/responses",
                json=payload.model_dump(mode="json"),
            )
            self._check_closed(attempt_id, response)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SyncFailure(f"Autosave rejected with HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise SyncFailure(f"Autosave request failed: {e}") from e

    async def submit_attempt(
        self, attempt_id: str, responses: list[TestResponse], auto_submitted: bool = False
    ) -> ScoreResult:
        payload = SubmitAttemptRequest(responses=responses, auto_submitted=auto_submitted)
        try:
            response = await self.client.post(
                f"/api/attempts/{attempt_id}/submit",
                json=payload.model_dump(mode="json"),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SubmissionFailure(f"Submit rejected with HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise SubmissionFailure(f"Submit request failed: {e}") from e
        return ScoreResult.model_validate(response.json())


class LocalAttemptGateway:
    """In-process gateway calling ``AttemptService`` directly."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        grace_seconds: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.grace_seconds = grace_seconds
        self.clock = clock

    def _service(self, session: AsyncSession) -> AttemptService:
        return AttemptService(session, grace_seconds=self.grace_seconds, clock=self.clock)

    async def get_attempt(self, attempt_id: str) -> TestAttempt:
        async with self.session_factory() as session:
            return await self._service(session).open_attempt(attempt_id)

    async def save_response(self, attempt_id: str, test_question_id: str, answer: Answer) -> None:
        async with self.session_factory() as session:
            try:
                await self._service(session).save_response(attempt_id, test_question_id, answer)
            except AttemptClosed:
                raise
            except (InvalidStateError, SQLAlchemyError) as e:
                raise SyncFailure(str(e)) from e

    async def submit_attempt(
        self, attempt_id: str, responses: list[TestResponse], auto_submitted: bool = False
    ) -> ScoreResult:
        async with self.session_factory() as session:
            try:
                return await self._service(session).submit_attempt(
                    attempt_id, responses, auto_submitted=auto_submitted
                )
            except SQLAlchemyError as e:
                raise SubmissionFailure(f"Could not store submission: {e}") from e
