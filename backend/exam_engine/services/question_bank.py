"""Question bank service for storing and retrieving question records."""

import json
import logging

import pydantic
from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.db.models import QuestionDB
from exam_engine.models.question import (
    AnswerKey,
    MatrixColumns,
    Question,
    QuestionCreate,
    QuestionOption,
    QuestionType,
)

logger = logging.getLogger(__name__)

_answer_key = TypeAdapter(AnswerKey)


class QuestionBankService:
    """Service for the question records a test is built from."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_question(self, question: QuestionCreate) -> Question:
        """Store a new question."""
        db_question = QuestionDB(
            question_text=question.question_text,
            question_type=question.question_type.value,
            options=json.dumps([o.model_dump() for o in question.options]),
            matrix_columns=(
                json.dumps(question.matrix_columns.model_dump()) if question.matrix_columns else None
            ),
            answer=json.dumps(question.answer.model_dump()) if question.answer else None,
            marks=question.marks,
            negative_marks=question.negative_marks,
            explanation=question.explanation,
        )
        self.db.add(db_question)
        await self.db.commit()
        return self._db_to_model(db_question)

    async def get_question(self, question_id: str) -> Question | None:
        """Get a single question by ID."""
        result = await self.db.execute(
            select(QuestionDB).where(QuestionDB.id == question_id)
        )
        db_question = result.scalar_one_or_none()
        if not db_question:
            return None
        return self._db_to_model(db_question)

    async def get_questions(self, question_ids: list[str]) -> dict[str, Question]:
        """Fetch several questions at once, keyed by ID."""
        if not question_ids:
            return {}
        result = await self.db.execute(
            select(QuestionDB).where(QuestionDB.id.in_(question_ids))
        )
        return {q.id: self._db_to_model(q) for q in result.scalars().all()}

    def _db_to_model(self, db_question: QuestionDB) -> Question:
        """Convert database model to Pydantic model."""
        return Question(
            id=db_question.id,
            question_text=db_question.question_text,
            question_type=QuestionType(db_question.question_type),
            options=[QuestionOption(**o) for o in json.loads(db_question.options or "[]")],
            matrix_columns=(
                MatrixColumns(**json.loads(db_question.matrix_columns))
                if db_question.matrix_columns
                else None
            ),
            answer=self._parse_answer(db_question),
            marks=db_question.marks,
            negative_marks=db_question.negative_marks,
            explanation=db_question.explanation,
        )

    @staticmethod
    def _parse_answer(db_question: QuestionDB):
        """Decode the stored key; a malformed key becomes ``None``."""
        if not db_question.answer:
            return None
        try:
            return _answer_key.validate_json(db_question.answer)
        except pydantic.ValidationError as e:
            logger.warning(f"Question {db_question.id} has an unreadable answer key: {e}")
            return None
