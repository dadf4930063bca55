"""Local, mutable copy of the candidate's responses."""

from enum import Enum

from exam_engine.models.attempt import AttemptQuestion, AttemptStats, TestResponse
from exam_engine.models.question import SINGLE_SELECT_TYPES


class QuestionStatus(str, Enum):
    """Palette state of one question."""

    NOT_ANSWERED = "NOT_ANSWERED"
    ANSWERED = "ANSWERED"
    FLAGGED = "FLAGGED"
    ANSWERED_FLAGGED = "ANSWERED_FLAGGED"


class ResponseCache:
    """Holds one response per test question, keyed by test question id.

    Mutations only touch the cache; the session decides when they are synced.
    """

    def __init__(self, items: list[AttemptQuestion]):
        self._items = {item.test_question.id: item for item in items}
        self._responses: dict[str, TestResponse] = {
            item.test_question.id: item.response.model_copy(deep=True) for item in items
        }

    def __len__(self) -> int:
        return len(self._responses)

    def __contains__(self, test_question_id: str) -> bool:
        return test_question_id in self._responses

    def get(self, test_question_id: str) -> TestResponse:
        try:
            return self._responses[test_question_id]
        except KeyError:
            raise KeyError(f"Unknown test question {test_question_id}") from None

    def select_option(self, test_question_id: str, option_id: str) -> TestResponse:
        """Choose an option.

        Single-select questions replace the current choice; multi-select
        questions toggle the option in or out.
        """
        response = self.get(test_question_id)
        question_type = self._items[test_question_id].test_question.question.question_type
        if question_type in SINGLE_SELECT_TYPES:
            response.selected_options = [option_id]
        elif option_id in response.selected_options:
            response.selected_options = [o for o in response.selected_options if o != option_id]
        else:
            response.selected_options = [*response.selected_options, option_id]
        return response

    def set_text(self, test_question_id: str, text: str) -> TestResponse:
        response = self.get(test_question_id)
        response.response_text = text
        return response

    def toggle_flag(self, test_question_id: str) -> TestResponse:
        response = self.get(test_question_id)
        response.flagged_for_review = not response.flagged_for_review
        return response

    def clear(self, test_question_id: str) -> TestResponse:
        """Remove the answer; the review flag is kept."""
        response = self.get(test_question_id)
        response.selected_options = []
        response.response_text = ""
        return response

    def add_time(self, test_question_id: str, seconds: int) -> None:
        if seconds > 0:
            self.get(test_question_id).time_spent_seconds += seconds

    def status(self, test_question_id: str) -> QuestionStatus:
        response = self.get(test_question_id)
        answered = not response.is_empty
        if response.flagged_for_review:
            return QuestionStatus.ANSWERED_FLAGGED if answered else QuestionStatus.FLAGGED
        return QuestionStatus.ANSWERED if answered else QuestionStatus.NOT_ANSWERED

    def stats(self) -> AttemptStats:
        answered = sum(1 for r in self._responses.values() if not r.is_empty)
        return AttemptStats(
            answered=answered,
            flagged=sum(1 for r in self._responses.values() if r.flagged_for_review),
            unanswered=len(self._responses) - answered,
            total=len(self._responses),
        )

    def snapshot(self) -> list[TestResponse]:
        """Copies of every response, in question order."""
        return [r.model_copy(deep=True) for r in self._responses.values()]
