"""Schemas for jobs, score results and job outcomes."""

from __future__ import annotations

from typing import Any, Self

from pydantic import Field, model_validator

from .base import SchemaBase, WireSchema
from .enums import ErrorKind


class DocumentRef(SchemaBase):
    """A document listed by a DocumentSource."""

    id: str = Field(min_length=1, description="Source-specific document id")
    name: str = Field(description="Display name (e.g. file name)")


class Job(WireSchema):
    """One document to be scored against one description.

    The document is either carried inline (``text``) or referenced
    (``source_id``) and fetched inside the job boundary, so a fetch failure
    only fails this job.
    """

    id: str = Field(min_length=1, description="Unique id within the run")
    name: str = Field(default="", description="Display name shown in progress events")
    description: str = Field(description="Description the document is scored against")
    text: str | None = Field(default=None, description="Inline document text")
    source_id: str | None = Field(default=None, description="Document reference")

    @model_validator(mode="after")
    def _check_payload(self) -> Self:
        if self.text is None and self.source_id is None:
            raise ValueError("job needs either text or source_id")
        return self

    @property
    def display_name(self) -> str:
        """Name used in progress events and outcomes."""
        return self.name or self.id

    @classmethod
    def from_document(cls, ref: DocumentRef, description: str) -> Job:
        """Create a job that fetches its text lazily from a document source."""
        return cls(id=ref.id, name=ref.name, description=description, source_id=ref.id)


class ScoreResult(WireSchema):
    """Structured score returned by the scoring service."""

    subscores: dict[str, float] = Field(
        default_factory=dict,
        description="Per-criterion scores on a 0-10 scale",
    )
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    total_score: float = Field(ge=0, le=100, description="Overall score on a 0-100 scale")
    narrative: str = Field(default="", description="Short free-text analysis")
    candidate_name: str | None = None
    email: str | None = None


class JobOutcome(WireSchema):
    """Terminal success-or-failure record for one job.

    Created once per job through the factory methods and never mutated.
    """

    job_id: str
    name: str
    success: bool
    result: ScoreResult | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    attempts: int = Field(default=0, ge=0)

    @property
    def score(self) -> float | None:
        """Total score, or None for failed outcomes."""
        if not self.success or self.result is None:
            return None
        return self.result.total_score

    @classmethod
    def from_result(cls, job: Job, result: ScoreResult, attempts: int = 1) -> JobOutcome:
        """Create a successful outcome.

        Args:
            job: The scored job
            result: Score returned by the scoring service
            attempts: Number of scoring calls made

        Returns:
            JobOutcome with success=True
        """
        return cls(
            job_id=job.id,
            name=job.display_name,
            success=True,
            result=result,
            attempts=attempts,
        )

    @classmethod
    def from_error(cls, job: Job, error: BaseException, attempts: int = 0) -> JobOutcome:
        """Create a failed outcome from the exception that ended the job.

        The classification comes from the exception's ``kind`` attribute;
        anything without one is ``UNEXPECTED``.
        """
        kind = getattr(error, "kind", ErrorKind.UNEXPECTED)
        return cls(
            job_id=job.id,
            name=job.display_name,
            success=False,
            error_kind=kind,
            error=str(error) or type(error).__name__,
            attempts=attempts,
        )

    @classmethod
    def not_started(cls, job: Job, kind: ErrorKind, reason: str) -> JobOutcome:
        """Create a synthetic failure for a job the run never processed."""
        return cls(
            job_id=job.id,
            name=job.display_name,
            success=False,
            error_kind=kind,
            error=reason,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = self.to_wire()
        data["score"] = self.score
        return data
