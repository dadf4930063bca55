import pytest
import pytest_asyncio
from datetime import datetime, timedelta

import httpx

from exam_engine.config import Settings
from exam_engine.db import Database
from exam_engine.main import create_app
from exam_engine.models import attempt as attempt_models
from exam_engine.models.online_test import OnlineTestCreate
from exam_engine.models.pattern import PatternCreate, Section
from exam_engine.models.question import (
    MultipleChoiceKey,
    NumericalKey,
    Question,
    QuestionCreate,
    QuestionOption,
    QuestionType,
    SingleChoiceKey,
)
from exam_engine.services.attempt import AttemptService
from exam_engine.services.online_test import OnlineTestService
from exam_engine.services.pattern import PatternService
from exam_engine.services.question_bank import QuestionBankService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def abcd() -> list[QuestionOption]:
    return [QuestionOption(id=o, text=f"Option {o.upper()}") for o in "abcd"]


def sample_questions() -> list[QuestionCreate]:
    """Four questions: two single-correct, one multiple-correct, one numerical."""
    return [
        QuestionCreate(
            question_text="Unit of force?",
            options=abcd(),
            answer=SingleChoiceKey(value="b"),
        ),
        QuestionCreate(
            question_text="Unit of energy?",
            options=abcd(),
            answer=SingleChoiceKey(value="a"),
        ),
        QuestionCreate(
            question_text="Which are vectors?",
            question_type=QuestionType.MULTIPLE_CORRECT,
            options=abcd(),
            answer=MultipleChoiceKey(values=["a", "c"]),
        ),
        QuestionCreate(
            question_text="Acceleration due to gravity in m/s^2?",
            question_type=QuestionType.NUMERICAL,
            answer=NumericalKey(value="9.8", tolerance=0.05),
        ),
    ]


def sample_pattern() -> PatternCreate:
    return PatternCreate(
        name="Two Part Mock",
        sections=[
            Section(name="Section A", question_count=2, marks_per_question=4, negative_marks=1),
            Section(
                name="Section B",
                question_count=2,
                marks_per_question=4,
                negative_marks=2,
                partial_marking=True,
                question_types=[QuestionType.MULTIPLE_CORRECT, QuestionType.NUMERICAL],
            ),
        ],
        total_duration=60,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'exam_engine.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session() as s:
        yield s


@pytest.fixture
def attempt_service(session, clock):
    return AttemptService(session, grace_seconds=60, clock=clock)


@pytest.fixture
def make_test(session):
    """Factory building the sample pattern, questions and a test from them."""

    async def _make(publish: bool = True, **overrides):
        bank = QuestionBankService(session)
        question_ids = [(await bank.create_question(q)).id for q in sample_questions()]
        pattern = await PatternService(session).create_pattern(sample_pattern())

        service = OnlineTestService(session)
        data = OnlineTestCreate(
            title="Physics Mock 1",
            pattern_id=pattern.id,
            question_ids=question_ids,
            **overrides,
        )
        test = await service.create_test(data)
        if publish:
            await service.publish_test(test.id)
        return await service.get_test(test.id, include_answers=True)

    return _make


@pytest.fixture
def settings():
    return Settings(_env_file=None, seed_default_patterns=False, log_level="DEBUG")


@pytest.fixture
def app(settings, database, clock):
    # The lifespan is not run under ASGITransport; wire state directly
    application = create_app(settings)
    application.state.database = database
    application.state.clock = clock
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def candidate_attempt(clock):
    """An in-progress attempt as served to the candidate, keys stripped."""
    types = [
        QuestionType.SINGLE_CORRECT,
        QuestionType.MULTIPLE_CORRECT,
        QuestionType.SHORT_ANSWER,
    ]
    items = []
    for order, question_type in enumerate(types, start=1):
        test_question = attempt_models.TestQuestion(
            id=f"tq{order}",
            sequence_order=order,
            marks=4,
            question=Question(
                id=f"q{order}",
                question_text=f"Question {order}",
                question_type=question_type,
                options=abcd(),
            ),
        )
        items.append(
            attempt_models.AttemptQuestion(
                test_question=test_question,
                response=attempt_models.TestResponse(test_question_id=test_question.id),
            )
        )
    return attempt_models.TestAttempt(
        id="attempt-1",
        test_id="test-1",
        candidate_id="cand-1",
        duration_minutes=60,
        started_at=clock.now,
        server_time=clock.now,
        items=items,
    )


@pytest.fixture
def question_payloads():
    return [q.model_dump(mode="json") for q in sample_questions()]


@pytest.fixture
def pattern_payload():
    return sample_pattern().model_dump(mode="json")
