"""Attempt lifecycle: start, autosave, submit and expiry.

An attempt moves IN_PROGRESS -> SUBMITTED or IN_PROGRESS -> EXPIRED and never
back. Grading happens exactly once, on that transition; the stored result is
returned unchanged for every later submit or result request.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from exam_engine.db.models import OnlineTestDB, TestAttemptDB, TestQuestionDB, TestResponseDB
from exam_engine.errors import AttemptClosed, InvalidStateError, NotFoundError
from exam_engine.models.attempt import (
    Answer,
    AttemptQuestion,
    AttemptStatus,
    AttemptSummary,
    ScoreResult,
    TestAttempt,
    TestResponse,
)
from exam_engine.models.online_test import TestStatus
from exam_engine.timeutil import utcnow

from .online_test import OnlineTestService
from .scoring import score_attempt

logger = logging.getLogger(__name__)


class AttemptService:
    """Service for candidate attempts."""

    def __init__(
        self,
        db: AsyncSession,
        grace_seconds: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.grace_seconds = grace_seconds
        self.clock = clock
        self.tests = OnlineTestService(db)

    # -- loading -------------------------------------------------------------

    async def _get_db_attempt(self, attempt_id: str) -> TestAttemptDB:
        result = await self.db.execute(
            select(TestAttemptDB)
            .where(TestAttemptDB.id == attempt_id)
            .options(
                selectinload(TestAttemptDB.test),
                selectinload(TestAttemptDB.responses)
                .selectinload(TestResponseDB.test_question)
                .selectinload(TestQuestionDB.question),
            )
            .execution_options(populate_existing=True)
        )
        db_attempt = result.scalar_one_or_none()
        if not db_attempt:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        return db_attempt

    def _deadline(self, db_attempt: TestAttemptDB) -> datetime:
        return db_attempt.started_at + timedelta(minutes=db_attempt.test.duration_minutes)

    def _is_overdue(self, db_attempt: TestAttemptDB, now: datetime) -> bool:
        """Past the deadline plus the grace window for in-flight submits."""
        return now > self._deadline(db_attempt) + timedelta(seconds=self.grace_seconds)

    # -- state machine -------------------------------------------------------

    async def start_attempt(self, test_id: str, candidate_id: str) -> TestAttempt:
        """Start an attempt, or resume the candidate's unfinished one."""
        result = await self.db.execute(
            select(OnlineTestDB)
            .where(OnlineTestDB.id == test_id)
            .options(selectinload(OnlineTestDB.questions))
        )
        db_test = result.scalar_one_or_none()
        if not db_test:
            raise NotFoundError(f"Test {test_id} not found")
        if db_test.status != TestStatus.PUBLISHED.value:
            raise InvalidStateError("Test is not available")

        result = await self.db.execute(
            select(TestAttemptDB)
            .where(TestAttemptDB.test_id == test_id)
            .where(TestAttemptDB.candidate_id == candidate_id)
        )
        previous = result.scalars().all()

        for db_attempt in previous:
            if db_attempt.status == AttemptStatus.IN_PROGRESS.value:
                resumed = await self.get_attempt(db_attempt.id)
                if resumed.status == AttemptStatus.IN_PROGRESS:
                    logger.info(f"Resuming attempt {resumed.id} for candidate {candidate_id}")
                    return resumed

        finished = sum(1 for a in previous if a.status != AttemptStatus.IN_PROGRESS.value)
        if finished >= db_test.max_attempts:
            raise InvalidStateError("Maximum attempts reached")

        now = self.clock()
        if db_test.start_at and now < db_test.start_at:
            raise InvalidStateError("Test has not started yet")
        if db_test.end_at and now > db_test.end_at:
            raise InvalidStateError("Test has ended")

        db_attempt = TestAttemptDB(
            test_id=test_id,
            candidate_id=candidate_id,
            attempt_number=finished + 1,
            status=AttemptStatus.IN_PROGRESS.value,
            started_at=now,
            responses=[TestResponseDB(test_question_id=tq.id) for tq in db_test.questions],
        )
        self.db.add(db_attempt)
        await self.db.commit()
        logger.info(
            f"Candidate {candidate_id} started attempt {db_attempt.attempt_number} "
            f"of test {test_id} ({len(db_test.questions)} questions)"
        )
        return await self.get_attempt(db_attempt.id)

    async def get_attempt(self, attempt_id: str) -> TestAttempt:
        """Current snapshot of an attempt, with answer keys stripped.

        An attempt found past its deadline is expired and graded here, so a
        candidate who never came back still ends up with a result.
        """
        db_attempt = await self._get_db_attempt(attempt_id)
        if db_attempt.status == AttemptStatus.IN_PROGRESS.value and self._is_overdue(
            db_attempt, self.clock()
        ):
            await self._finalize(db_attempt, [], AttemptStatus.EXPIRED)
        return self._db_to_model(db_attempt)

    async def open_attempt(self, attempt_id: str) -> TestAttempt:
        """Like :meth:`get_attempt`, but refuses attempts that are already over."""
        attempt = await self.get_attempt(attempt_id)
        if attempt.status.is_terminal:
            raise AttemptClosed(attempt.id, attempt.status.value)
        return attempt

    async def save_response(self, attempt_id: str, test_question_id: str, answer: Answer) -> None:
        """Autosave one answer. The last write wins."""
        db_attempt = await self._get_db_attempt(attempt_id)
        if db_attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise AttemptClosed(db_attempt.id, db_attempt.status)
        if self._is_overdue(db_attempt, self.clock()):
            raise InvalidStateError(f"Time is up for attempt {attempt_id}")

        db_response = next(
            (r for r in db_attempt.responses if r.test_question_id == test_question_id), None
        )
        if not db_response:
            raise NotFoundError(f"Question {test_question_id} is not part of attempt {attempt_id}")

        db_response.set_selected_options(answer.selected_options)
        db_response.response_text = answer.response_text
        db_response.answered_at = self.clock()
        await self.db.commit()

    async def submit_attempt(
        self,
        attempt_id: str,
        responses: list[TestResponse],
        auto_submitted: bool = False,
    ) -> ScoreResult:
        """Grade and close the attempt.

        Submitting an attempt that is already closed returns the stored
        result without grading again.
        """
        db_attempt = await self._get_db_attempt(attempt_id)
        if db_attempt.status != AttemptStatus.IN_PROGRESS.value:
            logger.info(f"Attempt {attempt_id} already {db_attempt.status}; returning stored result")
            return self._stored_result(db_attempt)

        expired = auto_submitted or self._is_overdue(db_attempt, self.clock())
        status = AttemptStatus.EXPIRED if expired else AttemptStatus.SUBMITTED
        return await self._finalize(db_attempt, responses, status)

    async def get_result(self, attempt_id: str) -> ScoreResult:
        db_attempt = await self._get_db_attempt(attempt_id)
        if db_attempt.status == AttemptStatus.IN_PROGRESS.value:
            if not self._is_overdue(db_attempt, self.clock()):
                raise InvalidStateError(f"Attempt {attempt_id} has not been submitted")
            return await self._finalize(db_attempt, [], AttemptStatus.EXPIRED)
        return self._stored_result(db_attempt)

    async def list_attempts(
        self, candidate_id: str, test_id: str | None = None
    ) -> list[AttemptSummary]:
        """A candidate's attempts, newest first.

        Overdue attempts are expired on the way so the history never shows a
        stale IN_PROGRESS row.
        """
        query = select(TestAttemptDB.id).where(TestAttemptDB.candidate_id == candidate_id)
        if test_id:
            query = query.where(TestAttemptDB.test_id == test_id)
        query = query.order_by(
            TestAttemptDB.started_at.desc(), TestAttemptDB.attempt_number.desc()
        )
        result = await self.db.execute(query)

        summaries = []
        for attempt_id in result.scalars().all():
            db_attempt = await self._get_db_attempt(attempt_id)
            if db_attempt.status == AttemptStatus.IN_PROGRESS.value and self._is_overdue(
                db_attempt, self.clock()
            ):
                await self._finalize(db_attempt, [], AttemptStatus.EXPIRED)
                db_attempt = await self._get_db_attempt(attempt_id)
            summaries.append(self._summary(db_attempt))
        return summaries

    async def expire_overdue_attempts(self) -> int:
        """Expire and grade every in-progress attempt past its deadline."""
        result = await self.db.execute(
            select(TestAttemptDB.id).where(TestAttemptDB.status == AttemptStatus.IN_PROGRESS.value)
        )
        expired = 0
        for attempt_id in result.scalars().all():
            db_attempt = await self._get_db_attempt(attempt_id)
            if self._is_overdue(db_attempt, self.clock()):
                await self._finalize(db_attempt, [], AttemptStatus.EXPIRED)
                expired += 1
        if expired:
            logger.info(f"Expired {expired} overdue attempt(s)")
        return expired

    # -- internals -----------------------------------------------------------

    async def _finalize(
        self,
        db_attempt: TestAttemptDB,
        responses: list[TestResponse],
        status: AttemptStatus,
    ) -> ScoreResult:
        now = self.clock()

        # Claim the transition; a concurrent submit that lost the race
        # reads the winner's result instead of grading a second time.
        claimed = await self.db.execute(
            update(TestAttemptDB)
            .where(TestAttemptDB.id == db_attempt.id)
            .where(TestAttemptDB.status == AttemptStatus.IN_PROGRESS.value)
            .values(status=status.value, submitted_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self.db.rollback()
            db_attempt = await self._get_db_attempt(db_attempt.id)
            logger.info(f"Attempt {db_attempt.id} was closed concurrently; returning stored result")
            return self._stored_result(db_attempt)

        incoming = {r.test_question_id: r for r in responses}
        for db_response in db_attempt.responses:
            submitted = incoming.pop(db_response.test_question_id, None)
            if submitted is None:
                continue
            db_response.set_selected_options(submitted.selected_options)
            db_response.response_text = submitted.response_text
            db_response.flagged_for_review = submitted.flagged_for_review
            db_response.time_spent_seconds = submitted.time_spent_seconds
            if not submitted.is_empty:
                db_response.answered_at = db_response.answered_at or now
        if incoming:
            logger.warning(
                f"Attempt {db_attempt.id}: ignoring responses for unknown questions "
                f"{sorted(incoming)}"
            )

        test_questions = [
            self.tests.test_question_to_model(r.test_question, include_answers=True)
            for r in db_attempt.responses
        ]
        score = score_attempt(
            db_attempt.id,
            test_questions,
            [self._response_to_model(r) for r in db_attempt.responses],
            status,
            now,
        )

        by_question = {q.test_question_id: q for q in score.questions}
        for db_response in db_attempt.responses:
            graded = by_question[db_response.test_question_id]
            db_response.awarded = graded.awarded
            db_response.outcome = graded.outcome.value

        db_attempt.status = status.value
        db_attempt.submitted_at = now
        db_attempt.total_score = score.total_score
        db_attempt.percentage = score.percentage
        db_attempt.result = score.model_dump_json()
        await self.db.commit()

        logger.info(
            f"Attempt {db_attempt.id} {status.value}: "
            f"{score.total_score}/{score.max_score} ({score.percentage}%)"
        )
        return score

    @staticmethod
    def _summary(db_attempt: TestAttemptDB) -> AttemptSummary:
        return AttemptSummary(
            id=db_attempt.id,
            test_id=db_attempt.test_id,
            test_title=db_attempt.test.title,
            attempt_number=db_attempt.attempt_number,
            status=AttemptStatus(db_attempt.status),
            started_at=db_attempt.started_at,
            submitted_at=db_attempt.submitted_at,
            total_score=db_attempt.total_score,
            max_score=db_attempt.test.total_marks,
            percentage=db_attempt.percentage,
        )

    @staticmethod
    def _stored_result(db_attempt: TestAttemptDB) -> ScoreResult:
        if not db_attempt.result:
            raise InvalidStateError(f"Attempt {db_attempt.id} has no stored result")
        return ScoreResult.model_validate_json(db_attempt.result)

    @staticmethod
    def _response_to_model(db_response: TestResponseDB) -> TestResponse:
        return TestResponse(
            test_question_id=db_response.test_question_id,
            selected_options=db_response.get_selected_options(),
            response_text=db_response.response_text or "",
            flagged_for_review=db_response.flagged_for_review,
            time_spent_seconds=db_response.time_spent_seconds,
        )

    def _db_to_model(self, db_attempt: TestAttemptDB) -> TestAttempt:
        items = [
            AttemptQuestion(
                test_question=self.tests.test_question_to_model(r.test_question),
                response=self._response_to_model(r),
            )
            for r in db_attempt.responses
        ]
        items.sort(key=lambda item: item.test_question.sequence_order)
        return TestAttempt(
            id=db_attempt.id,
            test_id=db_attempt.test_id,
            test_title=db_attempt.test.title,
            candidate_id=db_attempt.candidate_id,
            attempt_number=db_attempt.attempt_number,
            duration_minutes=db_attempt.test.duration_minutes,
            started_at=db_attempt.started_at,
            submitted_at=db_attempt.submitted_at,
            status=AttemptStatus(db_attempt.status),
            items=items,
            server_time=self.clock(),
        )
