"""Question API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.db import get_db
from exam_engine.models.question import Question, QuestionCreate
from exam_engine.services.question_bank import QuestionBankService

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.post("", response_model=Question, status_code=201)
async def create_question(
    question: QuestionCreate,
    db: AsyncSession = Depends(get_db),
):
    service = QuestionBankService(db)
    return await service.create_question(question)


@router.get("/{question_id}", response_model=Question)
async def get_question(
    question_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a question, including its answer key."""
    service = QuestionBankService(db)
    question = await service.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question
