"""Tests for the attempt state machine."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from exam_engine.db.models import TestResponseDB as ResponseRow
from exam_engine.errors import AttemptClosed, InvalidStateError, NotFoundError
from exam_engine.models import attempt as attempt_models
from exam_engine.models.attempt import Answer, AttemptStatus, Outcome
from exam_engine.services.attempt import AttemptService
from exam_engine.services.online_test import OnlineTestService


def full_responses(test, answers: dict[int, list[str]]):
    """Complete response set keyed by 1-based question number."""
    return [
        attempt_models.TestResponse(
            test_question_id=q.id,
            selected_options=answers.get(q.sequence_order, []),
        )
        for q in test.questions
    ]


class TestStartAttempt:
    @pytest.mark.asyncio
    async def test_start_creates_response_shells_without_keys(self, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")

        assert attempt.status == AttemptStatus.IN_PROGRESS
        assert attempt.started_at == clock.now
        assert attempt.server_time == clock.now
        assert attempt.duration_minutes == 60
        assert [i.test_question.sequence_order for i in attempt.items] == [1, 2, 3, 4]
        assert all(i.test_question.question.answer is None for i in attempt.items)
        assert all(i.response.is_empty for i in attempt.items)

    @pytest.mark.asyncio
    async def test_start_again_resumes(self, attempt_service, make_test, clock):
        test = await make_test()
        first = await attempt_service.start_attempt(test.id, "cand-1")
        clock.advance(minutes=5)
        second = await attempt_service.start_attempt(test.id, "cand-1")

        assert second.id == first.id
        assert second.remaining_seconds(clock.now) == 55 * 60

    @pytest.mark.asyncio
    async def test_unpublished_test_cannot_be_started(self, attempt_service, make_test):
        test = await make_test(publish=False)
        with pytest.raises(InvalidStateError):
            await attempt_service.start_attempt(test.id, "cand-1")

    @pytest.mark.asyncio
    async def test_unknown_test(self, attempt_service):
        with pytest.raises(NotFoundError):
            await attempt_service.start_attempt("missing", "cand-1")

    @pytest.mark.asyncio
    async def test_max_attempts(self, attempt_service, make_test):
        test = await make_test(max_attempts=2)
        for _ in range(2):
            attempt = await attempt_service.start_attempt(test.id, "cand-1")
            await attempt_service.submit_attempt(attempt.id, [])

        with pytest.raises(InvalidStateError, match="Maximum attempts"):
            await attempt_service.start_attempt(test.id, "cand-1")

    @pytest.mark.asyncio
    async def test_second_attempt_is_numbered(self, attempt_service, make_test):
        test = await make_test(max_attempts=2)
        first = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.submit_attempt(first.id, [])
        second = await attempt_service.start_attempt(test.id, "cand-1")

        assert second.id != first.id
        assert second.attempt_number == 2

    @pytest.mark.asyncio
    async def test_availability_window(self, attempt_service, make_test, clock):
        test = await make_test(
            start_at=clock.now + timedelta(hours=1),
            end_at=clock.now + timedelta(hours=3),
        )
        with pytest.raises(InvalidStateError, match="not started"):
            await attempt_service.start_attempt(test.id, "cand-1")

        clock.advance(hours=4)
        with pytest.raises(InvalidStateError, match="ended"):
            await attempt_service.start_attempt(test.id, "cand-1")

    @pytest.mark.asyncio
    async def test_closed_test_cannot_be_started(self, session, attempt_service, make_test):
        test = await make_test()
        await OnlineTestService(session).close_test(test.id)
        with pytest.raises(InvalidStateError):
            await attempt_service.start_attempt(test.id, "cand-1")


class TestSaveResponse:
    @pytest.mark.asyncio
    async def test_last_write_wins(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        q1 = test.questions[0].id

        await attempt_service.save_response(attempt.id, q1, Answer(selected_options=["a"]))
        await attempt_service.save_response(attempt.id, q1, Answer(selected_options=["b"]))

        reloaded = await attempt_service.get_attempt(attempt.id)
        assert reloaded.items[0].response.selected_options == ["b"]

    @pytest.mark.asyncio
    async def test_unknown_question(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        with pytest.raises(NotFoundError):
            await attempt_service.save_response(attempt.id, "other", Answer(selected_options=["a"]))

    @pytest.mark.asyncio
    async def test_terminal_attempt_rejects_writes(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.submit_attempt(attempt.id, [])

        with pytest.raises(InvalidStateError):
            await attempt_service.save_response(
                attempt.id, test.questions[0].id, Answer(selected_options=["a"])
            )

    @pytest.mark.asyncio
    async def test_rejected_after_time_is_up(self, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        clock.advance(minutes=62)

        with pytest.raises(InvalidStateError, match="Time is up"):
            await attempt_service.save_response(
                attempt.id, test.questions[0].id, Answer(selected_options=["a"])
            )


class TestSubmitAttempt:
    @pytest.mark.asyncio
    async def test_grades_with_section_marking(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        responses = full_responses(test, {1: ["b"], 2: ["c"], 3: ["a"]})
        responses[3].response_text = "9.8"

        result = await attempt_service.submit_attempt(attempt.id, responses)

        assert result.status == AttemptStatus.SUBMITTED
        assert [q.awarded for q in result.questions] == [4, -1, 2, 4]
        assert result.total_score == 9
        assert result.max_score == 16
        assert result.percentage == 56.25

    @pytest.mark.asyncio
    async def test_huge_numeric_answer_is_graded(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        responses = full_responses(test, {1: ["b"]})
        responses[3].response_text = "1e999999999"

        result = await attempt_service.submit_attempt(attempt.id, responses)

        assert result.status == AttemptStatus.SUBMITTED
        assert result.questions[3].outcome == Outcome.INCORRECT
        assert result.total_score == 2

    @pytest.mark.asyncio
    async def test_huge_autosaved_answer_does_not_block_expiry(
        self, attempt_service, make_test, clock
    ):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.save_response(
            attempt.id, test.questions[3].id, Answer(response_text="-1E+999999999")
        )
        clock.advance(minutes=62)

        assert await attempt_service.expire_overdue_attempts() == 1
        result = await attempt_service.get_result(attempt.id)
        assert result.status == AttemptStatus.EXPIRED
        assert result.total_score == -2

    @pytest.mark.asyncio
    async def test_submit_is_idempotent(self, session, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        first = await attempt_service.submit_attempt(
            attempt.id, full_responses(test, {1: ["b"]})
        )

        clock.advance(minutes=1)
        second = await attempt_service.submit_attempt(
            attempt.id, full_responses(test, {1: ["a"], 2: ["a"]}), auto_submitted=True
        )

        assert second == first
        rows = (
            await session.execute(select(ResponseRow).where(ResponseRow.attempt_id == attempt.id))
        ).scalars().all()
        stored = {r.test_question_id: r for r in rows}
        assert stored[test.questions[0].id].get_selected_options() == ["b"]
        assert stored[test.questions[1].id].get_selected_options() == []
        assert stored[test.questions[0].id].outcome == Outcome.CORRECT.value

    @pytest.mark.asyncio
    async def test_autosaved_answers_kept_when_not_resent(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.save_response(
            attempt.id, test.questions[1].id, Answer(selected_options=["a"])
        )

        result = await attempt_service.submit_attempt(attempt.id, full_responses(test, {1: ["b"]})[:1])
        assert result.correct_count == 2

    @pytest.mark.asyncio
    async def test_auto_submit_marks_expired(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        result = await attempt_service.submit_attempt(attempt.id, [], auto_submitted=True)

        assert result.status == AttemptStatus.EXPIRED
        assert result.unanswered_count == 4

    @pytest.mark.asyncio
    async def test_late_submit_within_grace_is_accepted(self, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        clock.advance(minutes=60, seconds=30)

        result = await attempt_service.submit_attempt(attempt.id, full_responses(test, {1: ["b"]}))
        assert result.status == AttemptStatus.SUBMITTED
        assert result.total_score == 4

    @pytest.mark.asyncio
    async def test_result_before_submit_is_refused(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        with pytest.raises(InvalidStateError):
            await attempt_service.get_result(attempt.id)

    @pytest.mark.asyncio
    async def test_result_matches_submission(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        submitted = await attempt_service.submit_attempt(attempt.id, full_responses(test, {2: ["a"]}))

        assert await attempt_service.get_result(attempt.id) == submitted


class TestTerminalAttempts:
    @pytest.mark.asyncio
    async def test_open_refuses_terminal_attempt(self, attempt_service, make_test):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.submit_attempt(attempt.id, [])

        with pytest.raises(AttemptClosed) as exc_info:
            await attempt_service.open_attempt(attempt.id)
        assert exc_info.value.result_url == f"/api/attempts/{attempt.id}/result"
        assert exc_info.value.status == "SUBMITTED"

    @pytest.mark.asyncio
    async def test_overdue_attempt_expires_on_fetch(self, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.save_response(
            attempt.id, test.questions[0].id, Answer(selected_options=["b"])
        )
        clock.advance(minutes=61, seconds=1)

        fetched = await attempt_service.get_attempt(attempt.id)
        assert fetched.status == AttemptStatus.EXPIRED
        result = await attempt_service.get_result(attempt.id)
        assert result.total_score == 4
        assert result.status == AttemptStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expire_overdue_attempts(self, session, clock, make_test):
        test = await make_test(max_attempts=1)
        service = AttemptService(session, grace_seconds=60, clock=clock)
        stale = await service.start_attempt(test.id, "cand-1")
        clock.advance(minutes=30)
        fresh = await service.start_attempt(test.id, "cand-2")
        clock.advance(minutes=31, seconds=30)

        assert await service.expire_overdue_attempts() == 1
        assert (await service.get_attempt(stale.id)).status == AttemptStatus.EXPIRED
        assert (await service.get_attempt(fresh.id)).status == AttemptStatus.IN_PROGRESS


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_leaderboard_and_pass_counts(self, session, attempt_service, make_test):
        test = await make_test(passing_marks=5)
        scores = {"cand-1": {1: ["b"], 2: ["a"]}, "cand-2": {1: ["b"]}, "cand-3": {1: ["c"]}}
        for candidate, answers in scores.items():
            attempt = await attempt_service.start_attempt(test.id, candidate)
            await attempt_service.submit_attempt(attempt.id, full_responses(test, answers))
        await attempt_service.start_attempt(test.id, "cand-4")

        analytics = await OnlineTestService(session).get_analytics(test.id)

        assert analytics.total_attempts == 4
        assert analytics.completed_attempts == 3
        assert analytics.highest_score == 8
        assert analytics.lowest_score == -1
        assert analytics.average_score == pytest.approx(11 / 3)
        assert analytics.pass_count == 1
        assert analytics.fail_count == 2
        assert [e.candidate_id for e in analytics.leaderboard] == ["cand-1", "cand-2", "cand-3"]
        assert analytics.leaderboard[0].rank == 1


class TestListAttempts:
    @pytest.mark.asyncio
    async def test_newest_first_with_result_links(self, attempt_service, make_test):
        test = await make_test(max_attempts=2)
        first = await attempt_service.start_attempt(test.id, "cand-1")
        await attempt_service.submit_attempt(first.id, full_responses(test, {1: ["b"]}))
        second = await attempt_service.start_attempt(test.id, "cand-1")
        other = await make_test()
        await attempt_service.start_attempt(other.id, "cand-1")
        await attempt_service.start_attempt(test.id, "cand-2")

        history = await attempt_service.list_attempts("cand-1", test_id=test.id)

        assert [a.id for a in history] == [second.id, first.id]
        assert history[0].status == AttemptStatus.IN_PROGRESS
        assert history[0].result_url is None
        assert history[1].status == AttemptStatus.SUBMITTED
        assert history[1].total_score == 4
        assert history[1].max_score == 16
        assert history[1].result_url == f"/api/attempts/{first.id}/result"
        assert len(await attempt_service.list_attempts("cand-1")) == 3

    @pytest.mark.asyncio
    async def test_overdue_attempt_is_listed_as_expired(self, attempt_service, make_test, clock):
        test = await make_test()
        attempt = await attempt_service.start_attempt(test.id, "cand-1")
        clock.advance(minutes=62)

        (summary,) = await attempt_service.list_attempts("cand-1")

        assert summary.id == attempt.id
        assert summary.status == AttemptStatus.EXPIRED
        assert summary.total_score == 0

    @pytest.mark.asyncio
    async def test_unknown_candidate_has_no_attempts(self, attempt_service):
        assert await attempt_service.list_attempts("nobody") == []
