"""Invocation state machine and task runner shared by all pipelines.

Responsibilities:
- Enforce the event envelope order: one `START`, deltas, one terminal event.
- Run one live asyncio task per pipeline type, cancelling superseded runs.
- Map stage failures to exactly one `ERROR` event carrying the failure kind.

Key types:
- `Invocation`: one pipeline run and its event emitter.
- `PipelineRunner`: supersede-aware task launcher for one pipeline type.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from ..errors import ErrorKind, VeyaError
from ..models.datatypes import (
    EventKind,
    PipelineKind,
    Provenance,
    ProvenanceRange,
    Section,
    StreamEvent,
)
from ..telemetry.logger import RunLogger
from .channel import EventChannel


class Invocation:
    """One pipeline run: current stage plus an order-enforcing event emitter."""

    def __init__(
        self,
        pipeline: PipelineKind,
        generation: int,
        channel: EventChannel,
        run_logger: RunLogger,
    ) -> None:
        """Bind an invocation to its channel generation."""

        self.pipeline = pipeline
        self.generation = generation
        self.stage: str | None = None
        self.terminal_event: StreamEvent | None = None
        self._channel = channel
        self._run_logger = run_logger
        self._started = False

    @property
    def terminated(self) -> bool:
        """Return whether a terminal event has been emitted."""

        return self.terminal_event is not None

    def start(self) -> None:
        """Emit the single `START` event."""

        if self._started:
            return
        self._started = True
        self._emit(EventKind.START)

    def transition(
        self,
        stage: str,
        *,
        content: str | None = None,
        progress: int | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Enter a new stage and emit a stage-change delta."""

        if self.stage is not None:
            self._run_logger.log_stage_complete(self.pipeline, self.stage, invocation=self.generation)
        self.stage = stage
        self._run_logger.log_stage_start(self.pipeline, stage, invocation=self.generation)
        self._emit(EventKind.DELTA, stage=stage, content=content, progress=progress, extra=extra or {})

    def delta(
        self,
        content: str,
        *,
        section: Section | None = None,
        provenance: Provenance | None = None,
    ) -> None:
        """Emit a content delta within the current stage."""

        self._emit(
            EventKind.DELTA,
            stage=self.stage,
            section=section,
            content=content,
            provenance=provenance,
        )

    def progress(self, percent: int) -> None:
        """Emit a progress delta within the current stage."""

        self._emit(EventKind.DELTA, stage=self.stage, progress=max(0, min(100, percent)))

    def done(
        self,
        *,
        content: str | None = None,
        ranges: tuple[ProvenanceRange, ...] = (),
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Emit the successful terminal event."""

        if self.stage is not None:
            self._run_logger.log_stage_complete(self.pipeline, self.stage, invocation=self.generation)
        self._emit(
            EventKind.DONE,
            stage="done",
            content=content,
            ranges=ranges,
            extra=extra or {},
        )

    def fail(self, kind: ErrorKind, detail: str) -> None:
        """Emit the failed terminal event."""

        self._run_logger.log_stage_failure(
            self.pipeline, self.stage or "start", kind.value, invocation=self.generation
        )
        self._emit(EventKind.ERROR, stage=self.stage, error=kind, content=detail)

    def _emit(self, kind: EventKind, **fields: Any) -> None:
        """Publish one event unless the invocation already terminated."""

        if self.terminated:
            return
        event = StreamEvent(kind=kind, pipeline=self.pipeline, invocation=self.generation, **fields)
        if kind.terminal:
            self.terminal_event = event
        self._channel.publish(event)


PipelineBody = Callable[[Invocation], Awaitable[None]]


class PipelineRunner:
    """Launch pipeline bodies as tasks, keeping one live invocation per type."""

    def __init__(self, channel: EventChannel, run_logger: RunLogger) -> None:
        """Bind the runner to the pipeline's channel."""

        self.channel = channel
        self._run_logger = run_logger
        self._task: asyncio.Task[StreamEvent | None] | None = None

    @property
    def pipeline(self) -> PipelineKind:
        """Return the pipeline type this runner serves."""

        return self.channel.pipeline

    @property
    def task(self) -> asyncio.Task[StreamEvent | None] | None:
        """Return the most recently started task."""

        return self._task

    def start(self, body: PipelineBody) -> asyncio.Task[StreamEvent | None]:
        """Supersede any live run, emit `START`, and schedule `body`.

        Must be called from a running event loop. The new `START` is published
        before this method returns.
        """

        loop = asyncio.get_running_loop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._run_logger.log_event(
                self.pipeline, "start", "superseded", invocation=self.channel.generation
            )
        invocation = Invocation(
            self.pipeline,
            self.channel.advance(),
            self.channel,
            self._run_logger,
        )
        invocation.start()
        self._task = loop.create_task(self._run(invocation, body))
        return self._task

    def cancel(self) -> asyncio.Task[StreamEvent | None] | None:
        """Cancel the live run, if any, and return its task."""

        task = self._task
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _run(self, invocation: Invocation, body: PipelineBody) -> StreamEvent | None:
        """Run `body` and guarantee exactly one terminal event."""

        try:
            await body(invocation)
        except asyncio.CancelledError:
            self._run_logger.log_event(
                self.pipeline,
                invocation.stage or "start",
                "cancelled",
                invocation=invocation.generation,
            )
            raise
        except VeyaError as exc:
            invocation.fail(exc.kind, exc.detail)
        except OSError as exc:
            invocation.fail(ErrorKind.STORAGE_FAILURE, f"Local storage error: {exc.strerror or exc}")
        except Exception:
            logger.exception(
                "[phase] pipeline={} stage={} event=unexpected_error",
                self.pipeline.value,
                invocation.stage,
            )
            invocation.fail(ErrorKind.SERVICE_UNAVAILABLE, "Unexpected internal error.")
        if not invocation.terminated:
            invocation.fail(ErrorKind.SERVICE_UNAVAILABLE, "Pipeline ended without a result.")
        return invocation.terminal_event
