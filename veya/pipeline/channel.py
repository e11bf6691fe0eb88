"""Per-pipeline event channel with generation-based supersede.

Every event carries the generation of the invocation that produced it.
Publishing from a superseded generation is a no-op, and events of a
superseded generation still queued are discarded on receive, so the single
subscriber only ever observes the live invocation.
"""

from __future__ import annotations

import asyncio

from ..models.datatypes import PipelineKind, StreamEvent
from ..telemetry.logger import RunLogger


class EventChannel:
    """Unbounded single-subscriber event queue for one pipeline type."""

    def __init__(self, pipeline: PipelineKind, run_logger: RunLogger | None = None) -> None:
        """Initialize an empty channel at generation zero."""

        self.pipeline = pipeline
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._generation = 0
        self._run_logger = run_logger or RunLogger()

    @property
    def generation(self) -> int:
        """Return the live invocation generation."""

        return self._generation

    def advance(self) -> int:
        """Supersede the live generation and return the new one."""

        self._generation += 1
        return self._generation

    def is_current(self, invocation: int) -> bool:
        """Return whether `invocation` is the live generation."""

        return invocation == self._generation

    def publish(self, event: StreamEvent) -> bool:
        """Enqueue an event without waiting; stale events are dropped.

        Returns:
            `True` when the event was enqueued.
        """

        if not self.is_current(event.invocation):
            self._run_logger.log_event(
                self.pipeline,
                event.stage or "none",
                "dropped_stale",
                kind=event.kind,
                invocation=event.invocation,
            )
            return False
        self._queue.put_nowait(event)
        return True

    async def receive(self) -> StreamEvent:
        """Wait for the next event of the live generation."""

        while True:
            event = await self._queue.get()
            if self.is_current(event.invocation):
                return event

    def drain(self) -> list[StreamEvent]:
        """Return queued live events without waiting."""

        events: list[StreamEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if self.is_current(event.invocation):
                events.append(event)
        return events

    def __aiter__(self) -> EventChannel:
        return self

    async def __anext__(self) -> StreamEvent:
        return await self.receive()
