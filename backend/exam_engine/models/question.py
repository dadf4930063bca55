"""Question-related Pydantic models."""

from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field


class QuestionType(str, Enum):
    """Question types across all patterns."""

    # Single answer
    MCQ = "MCQ"
    SINGLE_CORRECT = "SINGLE_CORRECT"
    TRUE_FALSE = "TRUE_FALSE"
    ASSERTION_REASONING = "ASSERTION_REASONING"
    COMPREHENSION = "COMPREHENSION"

    # Multiple answers
    MULTIPLE_CORRECT = "MULTIPLE_CORRECT"

    # Pairings
    MATRIX_MATCH = "MATRIX_MATCH"
    MATCHING = "MATCHING"
    MATCH_THE_FOLLOWING = "MATCH_THE_FOLLOWING"

    # Numeric entry
    INTEGER_TYPE = "INTEGER_TYPE"
    NUMERICAL = "NUMERICAL"

    # Manually graded
    SHORT_ANSWER = "SHORT_ANSWER"
    LONG_ANSWER = "LONG_ANSWER"
    FILL_BLANK = "FILL_BLANK"
    FILL_IN_BLANK = "FILL_IN_BLANK"


class AnswerKind(str, Enum):
    """Scoring family a question type belongs to."""

    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    MATRIX_MATCH = "matrix_match"
    NUMERICAL = "numerical"
    FREE_TEXT = "free_text"


QUESTION_KINDS: dict[QuestionType, AnswerKind] = {
    QuestionType.MCQ: AnswerKind.SINGLE_CHOICE,
    QuestionType.SINGLE_CORRECT: AnswerKind.SINGLE_CHOICE,
    QuestionType.TRUE_FALSE: AnswerKind.SINGLE_CHOICE,
    QuestionType.ASSERTION_REASONING: AnswerKind.SINGLE_CHOICE,
    QuestionType.COMPREHENSION: AnswerKind.SINGLE_CHOICE,
    QuestionType.MULTIPLE_CORRECT: AnswerKind.MULTIPLE_CHOICE,
    QuestionType.MATRIX_MATCH: AnswerKind.MATRIX_MATCH,
    QuestionType.MATCHING: AnswerKind.MATRIX_MATCH,
    QuestionType.MATCH_THE_FOLLOWING: AnswerKind.MATRIX_MATCH,
    QuestionType.INTEGER_TYPE: AnswerKind.NUMERICAL,
    QuestionType.NUMERICAL: AnswerKind.NUMERICAL,
    QuestionType.SHORT_ANSWER: AnswerKind.FREE_TEXT,
    QuestionType.LONG_ANSWER: AnswerKind.FREE_TEXT,
    QuestionType.FILL_BLANK: AnswerKind.FREE_TEXT,
    QuestionType.FILL_IN_BLANK: AnswerKind.FREE_TEXT,
}

# Types where selecting an option replaces the previous choice
SINGLE_SELECT_TYPES = frozenset(
    t for t, kind in QUESTION_KINDS.items() if kind == AnswerKind.SINGLE_CHOICE
)


def kind_of(question_type: QuestionType) -> AnswerKind:
    return QUESTION_KINDS[question_type]


class QuestionOption(BaseModel):
    """One selectable option."""

    id: str
    text: str


class MatrixColumns(BaseModel):
    """Left and right columns of a matrix-match question."""

    column_a: list[QuestionOption] = Field(default_factory=list)
    column_b: list[QuestionOption] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Answer keys: one variant per AnswerKind
# ---------------------------------------------------------------------------


class SingleChoiceKey(BaseModel):
    kind: Literal["single_choice"] = "single_choice"
    value: str


class MultipleChoiceKey(BaseModel):
    kind: Literal["multiple_choice"] = "multiple_choice"
    values: list[str] = Field(min_length=1)


class MatrixMatchKey(BaseModel):
    kind: Literal["matrix_match"] = "matrix_match"
    pairs: dict[str, str] = Field(description="left item id -> right item id")


class NumericalKey(BaseModel):
    kind: Literal["numerical"] = "numerical"
    value: str
    tolerance: float | None = Field(default=None, ge=0)


class FreeTextKey(BaseModel):
    kind: Literal["free_text"] = "free_text"
    model_answer: str | None = None


AnswerKey = Annotated[
    Union[SingleChoiceKey, MultipleChoiceKey, MatrixMatchKey, NumericalKey, FreeTextKey],
    Field(discriminator="kind"),
]


class Question(BaseModel):
    """A question record as supplied by the question bank."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    question_text: str
    question_type: QuestionType = QuestionType.SINGLE_CORRECT
    options: list[QuestionOption] = Field(default_factory=list)
    matrix_columns: MatrixColumns | None = None
    answer: AnswerKey | None = Field(
        default=None, description="Correct answer; stripped before serving to candidates"
    )
    marks: float = Field(default=4, ge=0)
    negative_marks: float = Field(default=0, ge=0)
    explanation: str | None = None

    @property
    def kind(self) -> AnswerKind:
        return kind_of(self.question_type)

    def without_answer(self) -> "Question":
        """Copy safe to send to a candidate."""
        return self.model_copy(update={"answer": None, "explanation": None})

    class Config:
        json_schema_extra = {
            "example": {
                "question_text": "Which of the following is a noble gas?",
                "question_type": "SINGLE_CORRECT",
                "options": [
                    {"id": "a", "text": "Nitrogen"},
                    {"id": "b", "text": "Argon"},
                    {"id": "c", "text": "Chlorine"},
                    {"id": "d", "text": "Sodium"},
                ],
                "answer": {"kind": "single_choice", "value": "b"},
                "marks": 4,
                "negative_marks": 1,
            }
        }


class QuestionCreate(BaseModel):
    """Model for storing a new question in the bank."""

    question_text: str
    question_type: QuestionType = QuestionType.SINGLE_CORRECT
    options: list[QuestionOption] = Field(default_factory=list)
    matrix_columns: MatrixColumns | None = None
    answer: AnswerKey | None = None
    marks: float = Field(default=4, ge=0)
    negative_marks: float = Field(default=0, ge=0)
    explanation: str | None = None
