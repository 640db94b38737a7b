"""Enums shared across schemas and components."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed job outcome."""

    DAILY_QUOTA = "daily_quota"
    TRANSIENT_REJECTION = "transient_rejection"
    MALFORMED_RESPONSE = "malformed_response"
    DOCUMENT_FETCH = "document_fetch"
    SCORING_ERROR = "scoring_error"
    RUN_ABORTED = "run_aborted"
    """Job never started because the run hit the daily quota."""
    SKIPPED = "skipped"
    """Job never started because the run stopped on error."""
    UNEXPECTED = "unexpected"


class RunState(str, Enum):
    """Lifecycle state of a run."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        """Whether the run has finished."""
        return self in (RunState.COMPLETED, RunState.ABORTED)


class OutputFormat(str, Enum):
    """Output format for CLI commands."""

    TEXT = "text"
    """Human-readable text output."""

    JSON = "json"
    """Machine-readable JSON output."""
