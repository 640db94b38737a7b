"""Per-run progress publishing.

The ProgressChannel maps a run id to at most one observer sink. Delivery is
best-effort and at-most-once: events published while no sink is registered
are dropped, never buffered. The transport owning the sink (an HTTP event
stream, a test harness) is injected; the channel only drives its lifecycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from docscore.config import ProgressConfig, get_settings
from docscore.exceptions import SubscriberConflict
from docscore.logging import get_logger
from docscore.schemas.events import (
    CompleteEvent,
    ConnectedEvent,
    ErrorEvent,
    PingEvent,
    ProgressEventBase,
)

logger = get_logger(__name__)


@runtime_checkable
class ObserverSink(Protocol):
    """Delivery endpoint for one observer of one run."""

    async def send(self, event: ProgressEventBase) -> None:
        """Deliver one event. Raising marks the transport as failed."""
        ...

    async def close(self) -> None:
        """Signal that no further events will be delivered."""
        ...


class QueueSink:
    """In-memory sink read by iterating it.

    Usage:
        sink = await channel.subscribe(run_id)
        async for event in sink:
            await transport.write(event.to_sse())
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    async def send(self, event: ProgressEventBase) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    def pending(self) -> list[ProgressEventBase]:
        """Drain events already delivered without waiting (testing aid)."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is self._CLOSED:
                # keep the terminator for a later iterator
                self._queue.put_nowait(item)
                break
            events.append(item)
        return events

    async def __aiter__(self) -> AsyncIterator[ProgressEventBase]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class ProgressChannel:
    """Registry of run id -> observer sink.

    Usage:
        channel = ProgressChannel()

        # Observer side (transport)
        sink = await channel.subscribe("run-1")

        # Scheduler side
        await channel.publish("run-1", ProgressEvent(...))
        await channel.close("run-1")

        # Transport noticed a disconnect
        channel.unsubscribe("run-1", sink)
    """

    def __init__(
        self,
        config: ProgressConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the channel.

        Args:
            config: Progress configuration (uses settings if not provided)
            sleep: Coroutine used between keepalive pings (injectable for tests)
        """
        self._config = config or get_settings().progress
        self._sleep = sleep
        self._sinks: dict[str, ObserverSink] = {}
        self._keepalive_tasks: dict[str, asyncio.Task[None]] = {}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------
    async def subscribe(
        self,
        run_id: str,
        sink: ObserverSink | None = None,
        *,
        keepalive: bool = True,
    ) -> ObserverSink:
        """Register an observer for a run.

        Delivers ``connected`` to the new sink and starts its keepalive task.

        Args:
            run_id: Run to observe
            sink: Sink to register (a new QueueSink if not provided)
            keepalive: Start the periodic ping task

        Returns:
            The registered sink

        Raises:
            SubscriberConflict: The run already has an observer and the
                duplicate policy is ``reject``
        """
        new_sink: ObserverSink = sink if sink is not None else QueueSink()

        previous = self._sinks.get(run_id)
        if previous is not None:
            if self._config.duplicate_subscriber_policy == "reject":
                logger.warning("Rejected second subscriber for run {}", run_id)
                raise SubscriberConflict(run_id)
            logger.info("Replacing subscriber for run {}", run_id)
            self._drop(run_id)
            await self._deliver_final(
                run_id,
                previous,
                ErrorEvent(message="Replaced by a newer subscriber for this run"),
            )

        self._sinks[run_id] = new_sink
        logger.debug("Subscriber registered for run {}", run_id)

        if not await self.publish(run_id, ConnectedEvent(run_id=run_id)):
            return new_sink

        if keepalive:
            task = asyncio.create_task(self.keepalive(run_id))
            self._keepalive_tasks[run_id] = task
            task.add_done_callback(lambda t: self._forget_task(run_id, t))

        return new_sink

    def unsubscribe(self, run_id: str, sink: ObserverSink | None = None) -> bool:
        """Remove a run's sink after its transport disconnected.

        Args:
            run_id: Run the sink observes
            sink: Only remove if this exact sink is registered (a newer
                subscriber is left alone)

        Returns:
            True if a sink was removed
        """
        current = self._sinks.get(run_id)
        if current is None or (sink is not None and current is not sink):
            return False
        self._drop(run_id)
        logger.debug("Subscriber for run {} disconnected", run_id)
        return True

    def has_subscriber(self, run_id: str) -> bool:
        """Whether an observer is registered for the run."""
        return run_id in self._sinks

    @property
    def active_runs(self) -> list[str]:
        """Run ids with a registered observer."""
        return list(self._sinks)

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------
    async def publish(self, run_id: str, event: ProgressEventBase) -> bool:
        """Deliver an event to the run's observer, if any.

        Returns:
            True if delivered; False if no sink is registered (the event is
            dropped) or the sink failed (it is unregistered)
        """
        sink = self._sinks.get(run_id)
        if sink is None:
            return False
        try:
            await sink.send(event)
        except Exception as e:
            logger.warning("Dropping subscriber for run {}: {}", run_id, e)
            if self._sinks.get(run_id) is sink:
                self._drop(run_id)
            return False
        return True

    async def keepalive(self, run_id: str, interval: float | None = None) -> None:
        """Send ``ping`` periodically while the current sink stays registered.

        Returns once the sink is unregistered or replaced.
        """
        interval = interval if interval is not None else self._config.keepalive_interval_seconds
        sink = self._sinks.get(run_id)
        if sink is None:
            return
        while True:
            await self._sleep(interval)
            if self._sinks.get(run_id) is not sink:
                return
            if not await self.publish(run_id, PingEvent()):
                return

    async def close(self, run_id: str) -> None:
        """Deliver ``complete``, close the sink and unregister it.

        A no-op when the run has no sink.
        """
        sink = self._sinks.get(run_id)
        if sink is None:
            return
        self._drop(run_id)
        await self._deliver_final(run_id, sink, CompleteEvent())
        logger.debug("Closed stream for run {}", run_id)

    async def shutdown(self) -> None:
        """Close every registered sink."""
        for run_id in list(self._sinks):
            await self.close(run_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------
    def _drop(self, run_id: str) -> None:
        self._sinks.pop(run_id, None)
        task = self._keepalive_tasks.pop(run_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _forget_task(self, run_id: str, task: asyncio.Task[None]) -> None:
        if self._keepalive_tasks.get(run_id) is task:
            del self._keepalive_tasks[run_id]

    async def _deliver_final(
        self, run_id: str, sink: ObserverSink, event: ProgressEventBase
    ) -> None:
        try:
            await sink.send(event)
        except Exception as e:
            logger.debug("Final event for run {} not delivered: {}", run_id, e)
        try:
            await sink.close()
        except Exception as e:
            logger.debug("Closing sink for run {} failed: {}", run_id, e)
