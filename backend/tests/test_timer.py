"""Tests for the countdown and the attempt scheduler."""

import asyncio
from datetime import datetime, timedelta

import pytest

from exam_engine.client.timer import AttemptScheduler, Countdown, TimerLevel
from exam_engine.timeutil import format_time, remaining_seconds, utcnow


class TestRemainingTime:
    def test_two_fresh_evaluations_agree(self):
        started_at = utcnow() - timedelta(minutes=55)

        first = Countdown(started_at, 60).remaining()
        second = Countdown(started_at, 60).remaining()

        assert 299 <= first <= 300
        assert abs(first - second) <= 1

    def test_never_negative(self):
        started_at = datetime(2026, 1, 1, 9, 0)
        assert remaining_seconds(started_at, 60, started_at + timedelta(hours=2)) == 0

    def test_derived_from_start_not_decremented(self):
        now = datetime(2026, 1, 1, 10, 0)
        countdown = Countdown(now - timedelta(minutes=10), 30, clock=lambda: now)
        assert countdown.remaining() == 20 * 60
        assert countdown.remaining() == 20 * 60

    def test_server_clock_offset_is_applied(self):
        local = datetime(2026, 1, 1, 10, 0)
        server = local + timedelta(minutes=2)
        started_at = server - timedelta(minutes=10)

        countdown = Countdown(started_at, 30, server_time=server, clock=lambda: local)

        assert countdown.now() == server
        assert countdown.remaining() == 20 * 60


class TestTimerLevel:
    @pytest.mark.parametrize(
        "remaining, level",
        [
            (3600, TimerLevel.NORMAL),
            (601, TimerLevel.NORMAL),
            (600, TimerLevel.WARNING),
            (301, TimerLevel.WARNING),
            (300, TimerLevel.CRITICAL),
            (1, TimerLevel.CRITICAL),
            (0, TimerLevel.EXPIRED),
        ],
    )
    def test_thresholds(self, remaining, level):
        countdown = Countdown(datetime(2026, 1, 1), 60, clock=lambda: datetime(2026, 1, 1))
        assert countdown.level(remaining) == level

    def test_expired_property(self):
        start = datetime(2026, 1, 1, 9, 0)
        countdown = Countdown(start, 1, clock=lambda: start + timedelta(seconds=61))
        assert countdown.expired
        assert countdown.level() == TimerLevel.EXPIRED


class TestFormatTime:
    @pytest.mark.parametrize(
        "seconds, text",
        [(0, "0:00"), (59, "0:59"), (600, "10:00"), (3599, "59:59"), (3600, "1:00:00"), (10805, "3:00:05")],
    )
    def test_format(self, seconds, text):
        assert format_time(seconds) == text

    def test_negative_clamps_to_zero(self):
        assert format_time(-5) == "0:00"


class TestAttemptScheduler:
    @pytest.mark.asyncio
    async def test_runs_both_callbacks_and_cancels_on_exit(self):
        ticks = []
        saves = []

        async def on_tick():
            ticks.append(1)

        async def on_autosave():
            saves.append(1)

        scheduler = AttemptScheduler(on_tick, on_autosave, tick_interval=0.01, autosave_interval=0.02)
        async with scheduler:
            await asyncio.sleep(0.1)
            assert scheduler.running

        assert not scheduler.running
        assert len(ticks) >= 2
        assert len(saves) >= 1

        count = len(ticks)
        await asyncio.sleep(0.05)
        assert len(ticks) == count

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_running(self):
        calls = []

        async def on_tick():
            calls.append(1)
            raise RuntimeError("boom")

        async def on_autosave():
            pass

        async with AttemptScheduler(on_tick, on_autosave, tick_interval=0.01, autosave_interval=1):
            await asyncio.sleep(0.1)

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_callback_may_stop_the_scheduler(self):
        calls = []
        scheduler = None

        async def on_tick():
            calls.append(1)
            await scheduler.stop()

        async def on_autosave():
            pass

        scheduler = AttemptScheduler(on_tick, on_autosave, tick_interval=0.01, autosave_interval=0.01)
        scheduler.start()
        await asyncio.sleep(0.1)

        assert calls == [1]
        assert not scheduler.running
        await scheduler.stop()
