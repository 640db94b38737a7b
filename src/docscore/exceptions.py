"""Exceptions raised by docscore components.

Every exception carries an ``ErrorKind`` used to classify the failure on a
``JobOutcome``. Only ``DailyQuotaExceeded`` is fatal to a run; every other
scoring or document error is contained at the job boundary.
"""

from datetime import date

from docscore.schemas.enums import ErrorKind


class DocScoreError(Exception):
    """Base exception for docscore errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class DailyQuotaExceeded(DocScoreError):
    """Raised by the rate limiter once the per-day quota is used up.

    Not retryable within the run: the quota only resets on the next
    calendar day.
    """

    kind = ErrorKind.DAILY_QUOTA

    def __init__(self, limit: int, day: date | None = None) -> None:
        super().__init__(
            f"Daily rate limit of {limit} requests exceeded; wait until tomorrow "
            "or raise the quota"
        )
        self.limit = limit
        self.day = day


# -----------------------------------------------------------------------------
# Scoring service
# -----------------------------------------------------------------------------
class ScoringError(DocScoreError):
    """Raised when the scoring service call fails."""

    kind = ErrorKind.SCORING_ERROR


class ScoringRetryableError(ScoringError):
    """Base class for scoring errors that the RetryingCaller retries."""

    pass


class ScoringTransientRejection(ScoringRetryableError):
    """Raised when the scoring service rejects a call for rate or quota reasons.

    Distinct from ``DailyQuotaExceeded``: this is the remote side's
    throttling, which usually clears after a short wait.
    """

    kind = ErrorKind.TRANSIENT_REJECTION

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ScoringMalformedResponse(ScoringError):
    """Raised when the scoring response cannot be parsed. Never retried."""

    kind = ErrorKind.MALFORMED_RESPONSE


# -----------------------------------------------------------------------------
# Document source
# -----------------------------------------------------------------------------
class DocumentFetchFailure(DocScoreError):
    """Raised when a document cannot be listed or read."""

    kind = ErrorKind.DOCUMENT_FETCH


class DocumentNotFound(DocumentFetchFailure):
    """Raised when a document or locator does not exist."""

    pass


class DocumentAccessDenied(DocumentFetchFailure):
    """Raised when a document exists but cannot be read."""

    pass


# -----------------------------------------------------------------------------
# Runs and progress
# -----------------------------------------------------------------------------
class SubscriberConflict(DocScoreError):
    """Raised when a run already has an observer and duplicates are rejected."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} already has an active subscriber")
        self.run_id = run_id


class RunConflict(DocScoreError):
    """Raised when a run id is submitted while a run with that id is in flight."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} is already in progress")
        self.run_id = run_id
