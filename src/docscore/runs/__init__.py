"""Run submission and tracking."""

from .service import RunAccepted, RunRecord, RunService, new_run_id

__all__ = [
    "RunAccepted",
    "RunRecord",
    "RunService",
    "new_run_id",
]
