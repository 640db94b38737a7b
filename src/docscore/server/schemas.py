"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from pydantic import ConfigDict, Field, model_validator

from docscore.schemas import Job, WireSchema


class JobInput(WireSchema):
    """One job in a run submission; description falls back to the run's."""

    id: str = Field(min_length=1)
    name: str = ""
    description: str | None = None
    text: str | None = None
    source_id: str | None = None


class RunRequest(WireSchema):
    """Body of ``POST /api/runs``.

    Either ``jobs`` (inline or referenced documents) or ``locator`` (every
    document under a directory of the server's document root) is required.
    """

    model_config = ConfigDict(extra="forbid")

    run_id: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    jobs: list[JobInput] | None = None
    locator: str | None = None

    @model_validator(mode="after")
    def _check_source(self) -> RunRequest:
        if self.jobs is None and self.locator is None:
            raise ValueError("either jobs or locator is required")
        if self.jobs is not None and self.locator is not None:
            raise ValueError("jobs and locator are mutually exclusive")
        if self.locator is not None and not self.description:
            raise ValueError("description is required with locator")
        return self

    def build_jobs(self) -> list[Job]:
        """Convert inline job inputs into Jobs.

        Raises:
            ValueError: A job has no description and the run has none either
        """
        jobs = []
        for item in self.jobs or []:
            description = item.description or self.description
            if not description:
                raise ValueError(f"job {item.id} has no description")
            jobs.append(
                Job(
                    id=item.id,
                    name=item.name,
                    description=description,
                    text=item.text,
                    source_id=item.source_id,
                )
            )
        return jobs
