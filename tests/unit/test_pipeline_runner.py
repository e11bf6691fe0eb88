"""Unit tests for the invocation envelope and supersede-aware pipeline runner."""

from __future__ import annotations

import asyncio

import pytest

from veya.errors import ErrorKind, VeyaError
from veya.models.datatypes import EventKind, PipelineKind, StreamEvent
from veya.pipeline import EventChannel, Invocation, PipelineRunner
from veya.telemetry.logger import RunLogger


async def _run_body(body) -> tuple[StreamEvent | None, list[StreamEvent]]:  # type: ignore[no-untyped-def]
    """Run one body through a fresh runner and return its terminal and queued events."""

    run_logger = RunLogger()
    channel = EventChannel(PipelineKind.TEXT_INSIGHT, run_logger)
    runner = PipelineRunner(channel, run_logger)
    terminal = await runner.start(body)
    return terminal, channel.drain()


@pytest.mark.parametrize(
    ("error", "expected_kind", "expected_detail"),
    [
        (VeyaError(ErrorKind.INVALID_CREDENTIAL, "bad key"), ErrorKind.INVALID_CREDENTIAL, "bad key"),
        (PermissionError(13, "Permission denied"), ErrorKind.STORAGE_FAILURE, "Permission denied"),
        (RuntimeError("boom"), ErrorKind.SERVICE_UNAVAILABLE, "Unexpected internal error."),
    ],
)
def test_failures_map_to_exactly_one_error_event(
    error: Exception, expected_kind: ErrorKind, expected_detail: str
) -> None:
    """Body failures should end the stream with one `ERROR` carrying the mapped kind."""

    async def body(invocation: Invocation) -> None:
        invocation.transition("working")
        raise error

    terminal, events = asyncio.run(_run_body(body))

    assert [event.kind for event in events] == [EventKind.START, EventKind.DELTA, EventKind.ERROR]
    assert terminal is events[-1]
    assert terminal.error is expected_kind
    assert expected_detail in (terminal.content or "")
    assert terminal.stage == "working"


def test_body_without_terminal_event_is_reported() -> None:
    """A body returning without `DONE` should still produce one terminal event."""

    async def body(invocation: Invocation) -> None:
        invocation.transition("working")

    terminal, _ = asyncio.run(_run_body(body))

    assert terminal is not None
    assert terminal.error is ErrorKind.SERVICE_UNAVAILABLE
    assert terminal.content == "Pipeline ended without a result."


def test_events_after_terminal_are_ignored() -> None:
    """Nothing may follow the terminal event of an invocation."""

    async def body(invocation: Invocation) -> None:
        invocation.done(content="result")
        invocation.delta("late")
        invocation.fail(ErrorKind.NETWORK_TIMEOUT, "late")

    terminal, events = asyncio.run(_run_body(body))

    assert [event.kind for event in events] == [EventKind.START, EventKind.DONE]
    assert terminal is not None and terminal.content == "result"


def test_progress_is_clamped_to_percent_range() -> None:
    """Progress values should stay within `[0, 100]`."""

    async def body(invocation: Invocation) -> None:
        invocation.transition("synthesizing", progress=0)
        invocation.progress(150)
        invocation.progress(-5)
        invocation.done()

    _, events = asyncio.run(_run_body(body))

    assert [event.progress for event in events if event.progress is not None] == [0, 100, 0]


def test_start_event_is_published_before_start_returns() -> None:
    """`START` should already be queued when `start` hands back the task."""

    async def scenario() -> tuple[list[StreamEvent], int]:
        run_logger = RunLogger()
        channel = EventChannel(PipelineKind.CAST_ENGINE, run_logger)
        runner = PipelineRunner(channel, run_logger)

        async def body(invocation: Invocation) -> None:
            invocation.done()

        task = runner.start(body)
        queued = channel.drain()
        await task
        return queued, channel.generation

    queued, generation = asyncio.run(scenario())

    assert [event.kind for event in queued] == [EventKind.START]
    assert queued[0].invocation == generation == 1
