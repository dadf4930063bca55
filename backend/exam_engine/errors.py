"""Exception taxonomy for the attempt engine."""


class ExamEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(ExamEngineError, ValueError):
    """Pattern or section input was rejected.

    ``errors`` maps a field path (``name``, ``sections.1.question_count``)
    to a human readable message so a form can show every problem at once.
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls({field: message})


class NotFoundError(ExamEngineError, LookupError):
    """A pattern, test, question or attempt does not exist."""


class InvalidStateError(ExamEngineError):
    """A mutation was attempted on an attempt or test in the wrong state."""


class AttemptClosed(InvalidStateError):
    """The attempt is terminal; the caller must show results instead."""

    def __init__(self, attempt_id: str, status: str):
        self.attempt_id = attempt_id
        self.status = status
        super().__init__(f"Attempt {attempt_id} is {status}")

    @property
    def result_url(self) -> str:
        return f"/api/attempts/{self.attempt_id}/result"


class SyncFailure(ExamEngineError):
    """An autosave request failed. Recovered locally on the next tick."""


class SubmissionFailure(ExamEngineError):
    """The final submit request failed. Local responses are kept for retry."""
