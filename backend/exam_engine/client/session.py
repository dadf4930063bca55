"""Candidate-side attempt session.

Holds the local response cache, tracks time per question, autosaves the
current answer on a timer and submits the whole response set once, either
on request or when the countdown reaches zero.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime

from exam_engine.config import Settings
from exam_engine.errors import AttemptClosed, InvalidStateError, SubmissionFailure, SyncFailure
from exam_engine.models.attempt import (
    Answer,
    AttemptQuestion,
    AttemptStats,
    AttemptStatus,
    ScoreResult,
    TestAttempt,
    TestResponse,
)
from exam_engine.timeutil import utcnow

from .gateway import AttemptGateway
from .response_cache import ResponseCache
from .timer import AttemptScheduler, Countdown, TimerLevel

logger = logging.getLogger(__name__)


class AttemptSession:
    """One candidate working through one attempt."""

    def __init__(
        self,
        gateway: AttemptGateway,
        attempt_id: str,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        settings = settings or Settings()
        self.gateway = gateway
        self.attempt_id = attempt_id
        self.settings = settings
        self.clock = clock
        self.monotonic = monotonic

        self.attempt: TestAttempt | None = None
        self.cache: ResponseCache | None = None
        self.countdown: Countdown | None = None
        self.current_index = 0
        self.result: ScoreResult | None = None
        self.closed = asyncio.Event()

        self._entered_at = 0.0
        self._saving = False
        self._submit_task: asyncio.Task | None = None

    # -- opening -------------------------------------------------------------

    async def open(self) -> TestAttempt:
        """Load the attempt and start on the first question.

        Raises ``AttemptClosed`` when the attempt is already submitted or
        expired; the caller should go to ``exc.result_url``.
        """
        try:
            attempt = await self.gateway.get_attempt(self.attempt_id)
        except AttemptClosed as e:
            logger.info(f"Attempt {self.attempt_id} is {e.status}; redirecting to {e.result_url}")
            self.closed.set()
            raise

        self.attempt = attempt
        self.cache = ResponseCache(attempt.items)
        self.countdown = Countdown.for_attempt(
            attempt,
            warning_seconds=self.settings.timer_warning_seconds,
            critical_seconds=self.settings.timer_critical_seconds,
            clock=self.clock,
        )
        self.current_index = 0
        self._entered_at = self.monotonic()
        logger.info(
            f"Opened attempt {attempt.id}: {len(attempt.items)} questions, "
            f"{self.countdown.display()} left"
        )
        return attempt

    def _require_open(self) -> ResponseCache:
        if self.cache is None:
            raise InvalidStateError("Session has not been opened")
        return self.cache

    def _require_editable(self) -> ResponseCache:
        """The cache, while answers may still change."""
        cache = self._require_open()
        if self.result is not None or self.closed.is_set():
            raise InvalidStateError(f"Attempt {self.attempt_id} is closed; answers are final")
        if self._submit_task is not None:
            raise InvalidStateError(f"Attempt {self.attempt_id} is being submitted")
        return cache

    # -- navigation ----------------------------------------------------------

    @property
    def items(self) -> list[AttemptQuestion]:
        return self.attempt.items if self.attempt else []

    @property
    def current(self) -> AttemptQuestion:
        self._require_open()
        return self.items[self.current_index]

    @property
    def current_id(self) -> str:
        return self.current.test_question.id

    def _flush_time(self) -> None:
        """Credit whole seconds spent on the current question."""
        now = self.monotonic()
        spent = int(now - self._entered_at)
        if spent > 0:
            self.cache.add_time(self.current_id, spent)
            self._entered_at += spent

    def navigate(self, index: int) -> AttemptQuestion:
        cache = self._require_open()
        if not 0 <= index < len(cache):
            raise IndexError(f"Question index {index} out of range")
        self._flush_time()
        self.current_index = index
        return self.current

    def next(self) -> AttemptQuestion:
        return self.navigate(min(self.current_index + 1, len(self.items) - 1))

    def previous(self) -> AttemptQuestion:
        return self.navigate(max(self.current_index - 1, 0))

    # -- answering -----------------------------------------------------------

    def select_option(self, option_id: str, test_question_id: str | None = None) -> TestResponse:
        return self._require_editable().select_option(test_question_id or self.current_id, option_id)

    def set_text(self, text: str, test_question_id: str | None = None) -> TestResponse:
        return self._require_editable().set_text(test_question_id or self.current_id, text)

    def toggle_flag(self, test_question_id: str | None = None) -> TestResponse:
        return self._require_editable().toggle_flag(test_question_id or self.current_id)

    def clear(self, test_question_id: str | None = None) -> TestResponse:
        return self._require_editable().clear(test_question_id or self.current_id)

    def confirmation_stats(self) -> AttemptStats:
        """Answered, flagged and unanswered counts for the submit dialog."""
        return self._require_open().stats()

    # -- timing --------------------------------------------------------------

    def remaining(self) -> int:
        self._require_open()
        return self.countdown.remaining()

    def timer_level(self) -> TimerLevel:
        self._require_open()
        return self.countdown.level()

    async def tick(self) -> None:
        """Check the countdown; at zero, submit automatically."""
        if self.closed.is_set() or self.countdown is None:
            return
        if self.countdown.expired and self._submit_task is None:
            logger.info(f"Time is up for attempt {self.attempt_id}; submitting")
            try:
                await self.submit(auto_submitted=True)
            except SubmissionFailure as e:
                # Next tick retries with the same local responses
                logger.error(f"Auto-submit of attempt {self.attempt_id} failed: {e}")

    # -- syncing -------------------------------------------------------------

    async def autosave_once(self) -> bool:
        """Sync the current answer if it has one.

        Returns ``True`` when a save was sent and accepted. Failures are
        logged and left for the next round.
        """
        if self.cache is None or self.closed.is_set() or self._submit_task is not None:
            return False
        if self._saving:
            logger.debug("Autosave still in flight; skipping")
            return False

        test_question_id = self.current_id
        response = self.cache.get(test_question_id)
        if response.is_empty:
            return False

        self._saving = True
        try:
            answer = Answer(
                selected_options=response.selected_options, response_text=response.response_text
            )
            await self.gateway.save_response(self.attempt_id, test_question_id, answer)
        except SyncFailure as e:
            logger.warning(f"Autosave for attempt {self.attempt_id} failed: {e}")
            return False
        except AttemptClosed as e:
            logger.info(f"Attempt {self.attempt_id} closed on the server ({e.status})")
            self.closed.set()
            return False
        finally:
            self._saving = False
        return True

    async def submit(self, auto_submitted: bool = False) -> ScoreResult:
        """Send the complete response set and return the result.

        Concurrent calls share one submission. If it fails the local
        responses are kept and a later call sends them again.
        """
        if self.result is not None:
            return self.result
        self._require_open()
        if self._submit_task is None:
            self._flush_time()
            self._submit_task = asyncio.create_task(self._submit(auto_submitted))
        task = self._submit_task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._submit_task is task:
                self._submit_task = None
            raise

    async def _submit(self, auto_submitted: bool) -> ScoreResult:
        result = await self.gateway.submit_attempt(
            self.attempt_id, self.cache.snapshot(), auto_submitted=auto_submitted
        )
        self.result = result
        self.attempt = self.attempt.model_copy(
            update={"status": result.status, "submitted_at": result.submitted_at}
        )
        self.closed.set()
        logger.info(
            f"Attempt {self.attempt_id} {result.status.value}: "
            f"{result.total_score}/{result.max_score}"
        )
        return result

    @property
    def status(self) -> AttemptStatus | None:
        return self.attempt.status if self.attempt else None

    # -- running -------------------------------------------------------------

    def scheduler(self) -> AttemptScheduler:
        return AttemptScheduler(
            on_tick=self.tick,
            on_autosave=self.autosave_once,
            tick_interval=self.settings.timer_tick_seconds,
            autosave_interval=self.settings.autosave_interval_seconds,
        )

    async def run(self) -> ScoreResult | None:
        """Drive the countdown and autosave until the attempt closes."""
        if self.cache is None:
            await self.open()
        async with self.scheduler():
            await self.closed.wait()
        return self.result
