"""Progress events delivered to run observers.

Each event serializes to a single ``data: <json>`` line followed by a blank
line, the framing used by ``text/event-stream`` responses.
"""

import json
from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from .base import WireSchema


class ProgressEventBase(WireSchema):
    """Common serialization for all progress events."""

    def to_sse(self) -> str:
        """Render the event as one server-sent-events frame."""
        payload = json.dumps(self.to_wire(), separators=(",", ":"))
        return f"data: {payload}\n\n"


class ConnectedEvent(ProgressEventBase):
    """First event on every stream."""

    type: Literal["connected"] = "connected"
    run_id: str


class PingEvent(ProgressEventBase):
    """No-op liveness event sent on an idle stream."""

    type: Literal["ping"] = "ping"


class ProgressEvent(ProgressEventBase):
    """Snapshot of a run's progress."""

    type: Literal["progress"] = "progress"
    completed: int = Field(ge=0)
    total: int = Field(ge=0)
    batch_index: int = Field(ge=0)
    total_batches: int = Field(ge=0)
    current_item: str | None = None


class ErrorEvent(ProgressEventBase):
    """Terminal failure notice, followed by ``complete``."""

    type: Literal["error"] = "error"
    message: str


class CompleteEvent(ProgressEventBase):
    """Last event on every stream; the stream closes after it."""

    type: Literal["complete"] = "complete"


RunEvent = Annotated[
    ConnectedEvent | PingEvent | ProgressEvent | ErrorEvent | CompleteEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[RunEvent] = TypeAdapter(RunEvent)


def parse_event(data: str | bytes | dict) -> RunEvent:
    """Parse an event from its JSON payload or an SSE ``data:`` line.

    Args:
        data: Raw JSON, a ``data: ...`` frame, or an already-decoded dict

    Returns:
        The matching event model
    """
    if isinstance(data, dict):
        return _event_adapter.validate_python(data)
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    text = data.strip()
    if text.startswith("data:"):
        text = text[len("data:") :].strip()
    return _event_adapter.validate_json(text)
