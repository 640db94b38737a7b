"""Pydantic schemas for docscore.

This module provides job, outcome and progress event models.
"""

from .base import SchemaBase, WireSchema
from .enums import ErrorKind, OutputFormat, RunState
from .events import (
    CompleteEvent,
    ConnectedEvent,
    ErrorEvent,
    PingEvent,
    ProgressEvent,
    RunEvent,
    parse_event,
)
from .jobs import DocumentRef, Job, JobOutcome, ScoreResult

__all__ = [
    # Base
    "SchemaBase",
    "WireSchema",
    # Enums
    "ErrorKind",
    "OutputFormat",
    "RunState",
    # Events
    "CompleteEvent",
    "ConnectedEvent",
    "ErrorEvent",
    "PingEvent",
    "ProgressEvent",
    "RunEvent",
    "parse_event",
    # Jobs
    "DocumentRef",
    "Job",
    "JobOutcome",
    "ScoreResult",
]
