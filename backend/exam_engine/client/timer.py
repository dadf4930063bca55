"""Countdown and the periodic tasks that drive an open attempt."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum

from exam_engine.models.attempt import TestAttempt
from exam_engine.timeutil import format_time, remaining_seconds, utcnow

logger = logging.getLogger(__name__)


class TimerLevel(str, Enum):
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    EXPIRED = "EXPIRED"


class Countdown:
    """Remaining time, always derived from the attempt's start time.

    Nothing is decremented: every read recomputes from ``started_at`` and
    the current time, so two fresh evaluations agree to within the time
    that passed between them. When the server's clock is known, the local
    clock is shifted by the observed offset before computing.
    """

    def __init__(
        self,
        started_at: datetime,
        duration_minutes: int,
        server_time: datetime | None = None,
        warning_seconds: int = 600,
        critical_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.started_at = started_at
        self.duration_minutes = duration_minutes
        self.warning_seconds = warning_seconds
        self.critical_seconds = critical_seconds
        self.clock = clock
        self.offset = server_time - clock() if server_time else timedelta(0)

    @classmethod
    def for_attempt(cls, attempt: TestAttempt, **kwargs) -> "Countdown":
        return cls(
            attempt.started_at,
            attempt.duration_minutes,
            server_time=attempt.server_time,
            **kwargs,
        )

    def now(self) -> datetime:
        """Local time corrected to the server's clock."""
        return self.clock() + self.offset

    def remaining(self) -> int:
        return remaining_seconds(self.started_at, self.duration_minutes, self.now())

    @property
    def expired(self) -> bool:
        return self.remaining() == 0

    def level(self, remaining: int | None = None) -> TimerLevel:
        if remaining is None:
            remaining = self.remaining()
        if remaining <= 0:
            return TimerLevel.EXPIRED
        if remaining <= self.critical_seconds:
            return TimerLevel.CRITICAL
        if remaining <= self.warning_seconds:
            return TimerLevel.WARNING
        return TimerLevel.NORMAL

    def display(self) -> str:
        return format_time(self.remaining())


class AttemptScheduler:
    """Runs the countdown tick and the autosave on fixed intervals.

    Use as ``async with scheduler:``; leaving the block cancels both tasks.
    A callback may call :meth:`stop` itself, e.g. once the attempt closes.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[None]],
        on_autosave: Callable[[], Awaitable[object]],
        tick_interval: float = 1.0,
        autosave_interval: float = 30.0,
    ):
        self.on_tick = on_tick
        self.on_autosave = on_autosave
        self.tick_interval = tick_interval
        self.autosave_interval = autosave_interval
        self._tasks: list[asyncio.Task] = []
        self._stopped = False

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self._tasks:
            raise RuntimeError("Scheduler already started")
        self._tasks = [
            asyncio.create_task(self._every(self.tick_interval, self.on_tick), name="attempt-tick"),
            asyncio.create_task(
                self._every(self.autosave_interval, self.on_autosave), name="attempt-autosave"
            ),
        ]

    async def stop(self) -> None:
        """Cancel both tasks and wait for them to finish."""
        self._stopped = True
        current = asyncio.current_task()
        others = [t for t in self._tasks if t is not current and not t.done()]
        for task in others:
            task.cancel()
        await asyncio.gather(*others, return_exceptions=True)

    async def _every(self, interval: float, callback: Callable[[], Awaitable[object]]) -> None:
        while not self._stopped:
            await asyncio.sleep(interval)
            if self._stopped:
                break
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Scheduled callback {callback!r} failed")

    async def __aenter__(self) -> "AttemptScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
