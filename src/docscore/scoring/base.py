"""Scoring service contract."""

from typing import Protocol, runtime_checkable

from docscore.schemas import ScoreResult


@runtime_checkable
class ScoringService(Protocol):
    """Scores one document against one description.

    Implementations make exactly one external call per ``score()`` and raise
    ``ScoringTransientRejection`` (retryable), ``ScoringMalformedResponse``
    or ``ScoringError`` on failure.
    """

    async def score(self, text: str, description: str) -> ScoreResult:
        """Score ``text`` against ``description``."""
        ...
