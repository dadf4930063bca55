"""Scoring engine.

Pure functions: a question, its marking scheme and a candidate answer go in,
an awarded mark and an outcome come out. Nothing here touches time or the
database, and nothing here raises for bad data. A missing or malformed
answer key scores as unanswered so one broken question cannot abort the
grading of a whole attempt.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, get_args

from exam_engine.models.attempt import (
    Answer,
    AttemptStatus,
    Outcome,
    QuestionScore,
    ScoreResult,
    SectionScore,
    TestQuestion,
    TestResponse,
)
from exam_engine.models.question import (
    AnswerKey,
    AnswerKind,
    FreeTextKey,
    MatrixMatchKey,
    MultipleChoiceKey,
    NumericalKey,
    Question,
    SingleChoiceKey,
)

logger = logging.getLogger(__name__)

MATRIX_PAIR_SEPARATOR = ":"


@dataclass(frozen=True)
class Marking:
    """Marks resolved for one question."""

    marks: float
    negative_marks: float = 0
    partial_marking: bool = False

    @property
    def penalty(self) -> float:
        # Never below -negative_marks, and 0.0 rather than -0.0
        return -self.negative_marks if self.negative_marks > 0 else 0.0


class _ScoringFailed(Exception):
    """Raised inside a scorer when the key itself is unusable."""


def _first_answer(answer: Answer) -> str:
    if answer.selected_options:
        return answer.selected_options[0].strip()
    return answer.response_text.strip()


def _score_single(key: SingleChoiceKey, answer: Answer, m: Marking) -> tuple[float, Outcome]:
    chosen = {o.strip() for o in answer.selected_options if o.strip()}
    if not chosen and answer.response_text.strip():
        chosen = {answer.response_text.strip()}
    if not chosen:
        return 0.0, Outcome.UNANSWERED
    # More than one distinct choice never matches a single key
    if chosen == {key.value.strip()}:
        return m.marks, Outcome.CORRECT
    return m.penalty, Outcome.INCORRECT


def _score_multiple(key: MultipleChoiceKey, answer: Answer, m: Marking) -> tuple[float, Outcome]:
    selected = {o.strip() for o in answer.selected_options if o.strip()}
    correct = {v.strip() for v in key.values}
    if not selected:
        return 0.0, Outcome.UNANSWERED
    if selected == correct:
        return m.marks, Outcome.CORRECT
    # Any wrong option forfeits partial credit
    if selected - correct:
        return m.penalty, Outcome.INCORRECT
    if m.partial_marking:
        return m.marks * len(selected) / len(correct), Outcome.PARTIAL
    return m.penalty, Outcome.INCORRECT


def parse_matrix_pairs(entries: list[str]) -> dict[str, str | None]:
    """Decode ``"left:right"`` entries.

    A left item mapped more than once is kept with a ``None`` target so it
    can never count as a correct pair. Entries without a separator are
    ignored.
    """
    pairs: dict[str, str | None] = {}
    for entry in entries:
        left, sep, right = entry.partition(MATRIX_PAIR_SEPARATOR)
        left, right = left.strip(), right.strip()
        if not sep or not left or not right:
            continue
        pairs[left] = None if left in pairs else right
    return pairs


def _score_matrix(key: MatrixMatchKey, answer: Answer, m: Marking) -> tuple[float, Outcome]:
    if not key.pairs:
        raise _ScoringFailed("matrix key has no pairs")
    candidate = parse_matrix_pairs(answer.selected_options)
    if not candidate:
        return 0.0, Outcome.UNANSWERED
    if candidate == key.pairs:
        return m.marks, Outcome.CORRECT
    correct_pairs = sum(1 for left, right in key.pairs.items() if candidate.get(left) == right)
    if m.partial_marking and correct_pairs:
        return m.marks * correct_pairs / len(key.pairs), Outcome.PARTIAL
    return m.penalty, Outcome.INCORRECT


def _to_decimal(text: str) -> Decimal | None:
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, AttributeError):
        return None
    return value if value.is_finite() else None


def _score_numerical(key: NumericalKey, answer: Answer, m: Marking) -> tuple[float, Outcome]:
    expected = _to_decimal(key.value)
    if expected is None:
        raise _ScoringFailed(f"numerical key {key.value!r} is not a number")
    given_text = _first_answer(answer)
    if not given_text:
        return 0.0, Outcome.UNANSWERED
    given = _to_decimal(given_text)
    if given is None:
        return m.penalty, Outcome.INCORRECT
    tolerance = Decimal(str(key.tolerance)) if key.tolerance else Decimal(0)
    try:
        within = abs(given - expected) <= tolerance
    except ArithmeticError:
        # Magnitude outside the decimal context; cannot equal a usable key
        return m.penalty, Outcome.INCORRECT
    if within:
        return m.marks, Outcome.CORRECT
    return m.penalty, Outcome.INCORRECT


def _score_free_text(key: FreeTextKey, answer: Answer, m: Marking) -> tuple[float, Outcome]:
    if answer.is_empty:
        return 0.0, Outcome.UNANSWERED
    return 0.0, Outcome.PENDING_MANUAL


_SCORERS: dict[type, Callable[..., tuple[float, Outcome]]] = {
    SingleChoiceKey: _score_single,
    MultipleChoiceKey: _score_multiple,
    MatrixMatchKey: _score_matrix,
    NumericalKey: _score_numerical,
    FreeTextKey: _score_free_text,
}

_KEY_VARIANTS = get_args(get_args(AnswerKey)[0])
_unscored = [k.__name__ for k in _KEY_VARIANTS if k not in _SCORERS]
if _unscored:
    raise TypeError(f"No scorer registered for answer key(s): {', '.join(_unscored)}")


def score(
    question: Question,
    response: Answer | None,
    *,
    marks: float | None = None,
    negative_marks: float | None = None,
    partial_marking: bool = False,
) -> QuestionScore:
    """Score one response.

    Marks default to the question's own values; a test question passes the
    marks resolved from its pattern section instead.
    """
    marking = Marking(
        marks=question.marks if marks is None else marks,
        negative_marks=question.negative_marks if negative_marks is None else negative_marks,
        partial_marking=partial_marking,
    )
    answer = response or Answer()

    key = question.answer
    if key is None and question.kind == AnswerKind.FREE_TEXT:
        key = FreeTextKey()

    if key is None or key.kind != question.kind.value:
        logger.warning(
            f"Question {question.id} ({question.question_type.value}) has "
            f"{'no' if key is None else 'a mismatched'} answer key; scoring as unanswered"
        )
        return QuestionScore(awarded=0.0, max_marks=marking.marks, outcome=Outcome.UNANSWERED)

    try:
        awarded, outcome = _SCORERS[type(key)](key, answer, marking)
    except _ScoringFailed as e:
        logger.warning(f"Question {question.id}: {e}; scoring as unanswered")
        return QuestionScore(awarded=0.0, max_marks=marking.marks, outcome=Outcome.UNANSWERED)
    except Exception:
        logger.exception(f"Question {question.id}: scorer failed; scoring as unanswered")
        return QuestionScore(awarded=0.0, max_marks=marking.marks, outcome=Outcome.UNANSWERED)

    return QuestionScore(awarded=awarded, max_marks=marking.marks, outcome=outcome)


def score_test_question(test_question: TestQuestion, response: Answer | None) -> QuestionScore:
    """Score against the marking resolved for this position in the test."""
    result = score(
        test_question.question,
        response,
        marks=test_question.marks,
        negative_marks=test_question.negative_marks,
        partial_marking=test_question.partial_marking,
    )
    return result.model_copy(
        update={
            "test_question_id": test_question.id,
            "sequence_order": test_question.sequence_order,
            "section": test_question.section,
        }
    )


def score_attempt(
    attempt_id: str,
    test_questions: list[TestQuestion],
    responses: list[TestResponse],
    status: AttemptStatus,
    submitted_at: datetime,
) -> ScoreResult:
    """Grade a complete response set.

    Questions with no matching response score as unanswered. The total is the
    plain sum of awarded marks and may be negative.
    """
    by_question = {r.test_question_id: r for r in responses}
    ordered = sorted(test_questions, key=lambda tq: tq.sequence_order)
    scores = [score_test_question(tq, by_question.get(tq.id)) for tq in ordered]

    counts = {outcome: 0 for outcome in Outcome}
    for s in scores:
        counts[s.outcome] += 1

    total = sum(s.awarded for s in scores)
    max_score = sum(tq.marks for tq in ordered)

    return ScoreResult(
        attempt_id=attempt_id,
        status=status,
        submitted_at=submitted_at,
        questions=scores,
        sections=_section_breakdown(scores),
        total_score=total,
        max_score=max_score,
        percentage=round(total / max_score * 100, 2) if max_score > 0 else 0.0,
        correct_count=counts[Outcome.CORRECT],
        incorrect_count=counts[Outcome.INCORRECT],
        partial_count=counts[Outcome.PARTIAL],
        unanswered_count=counts[Outcome.UNANSWERED],
        pending_manual_count=counts[Outcome.PENDING_MANUAL],
    )


def _section_breakdown(scores: list[QuestionScore]) -> list[SectionScore]:
    sections: dict[str, dict] = {}
    for s in scores:
        name = s.section or "General"
        if name not in sections:
            sections[name] = {
                "total": 0, "score": 0.0, "max_score": 0.0,
                "correct": 0, "incorrect": 0, "unanswered": 0,
            }
        stats = sections[name]
        stats["total"] += 1
        stats["score"] += s.awarded
        stats["max_score"] += s.max_marks
        if s.outcome == Outcome.CORRECT:
            stats["correct"] += 1
        elif s.outcome == Outcome.INCORRECT:
            stats["incorrect"] += 1
        elif s.outcome == Outcome.UNANSWERED:
            stats["unanswered"] += 1

    return [SectionScore(section=name, **stats) for name, stats in sections.items()]
