"""Unit tests for retry policy math and retry executor semantics."""

from __future__ import annotations

import asyncio
import time

import pytest

from veya.errors import ErrorKind, VeyaError
from veya.retry import RetryExecutor, RetryPolicy
from tests.fakes import RecordingSleeper


class _FailingOperation:
    """Operation that fails with scripted errors before optionally succeeding."""

    def __init__(self, errors: list[VeyaError], result: str = "ok") -> None:
        """Store errors raised in order on successive calls."""

        self.errors = errors
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        """Raise the next scripted error, or return the result when exhausted."""

        self.calls += 1
        if self.calls <= len(self.errors):
            raise self.errors[self.calls - 1]
        return self.result


@pytest.mark.parametrize("max_retries", range(1, 10))
def test_retryable_failures_exhaust_after_max_retries_plus_one_calls(max_retries: int) -> None:
    """Every-attempt retryable failure should invoke exactly `max_retries + 1` times."""

    errors = [VeyaError(ErrorKind.NETWORK_TIMEOUT, f"timeout #{index}") for index in range(20)]
    operation = _FailingOperation(errors)
    sleeper = RecordingSleeper()
    executor = RetryExecutor(RetryPolicy(max_retries, 0.01, 0.05), sleeper=sleeper)

    with pytest.raises(VeyaError) as exc_info:
        asyncio.run(executor.execute(operation))

    assert operation.calls == max_retries + 1
    assert exc_info.value is errors[max_retries]
    assert len(sleeper.delays) == max_retries
    assert executor.retry_attempt_count == max_retries


@pytest.mark.parametrize(
    "kind",
    [
        ErrorKind.INVALID_CREDENTIAL,
        ErrorKind.INSUFFICIENT_QUOTA,
        ErrorKind.RECOGNITION_FAILED,
        ErrorKind.STORAGE_FAILURE,
        ErrorKind.PERMISSION_DENIED,
    ],
)
def test_terminal_error_short_circuits_without_sleeping(kind: ErrorKind) -> None:
    """A terminal kind should surface after one call regardless of remaining retries."""

    operation = _FailingOperation([VeyaError(kind)])
    sleeper = RecordingSleeper()
    executor = RetryExecutor(RetryPolicy(5, 0.1, 1.0), sleeper=sleeper)

    with pytest.raises(VeyaError) as exc_info:
        asyncio.run(executor.execute(operation))

    assert exc_info.value.kind is kind
    assert operation.calls == 1
    assert sleeper.delays == []


def test_terminal_error_after_retryable_ones_stops_immediately() -> None:
    """A terminal error observed mid-sequence should stop the retry loop."""

    operation = _FailingOperation(
        [
            VeyaError(ErrorKind.SERVICE_UNAVAILABLE),
            VeyaError(ErrorKind.INVALID_CREDENTIAL),
            VeyaError(ErrorKind.SERVICE_UNAVAILABLE),
        ]
    )
    sleeper = RecordingSleeper()

    with pytest.raises(VeyaError) as exc_info:
        asyncio.run(RetryExecutor(RetryPolicy(5, 0.1, 1.0), sleeper=sleeper).execute(operation))

    assert exc_info.value.kind is ErrorKind.INVALID_CREDENTIAL
    assert operation.calls == 2
    assert sleeper.delays == [0.1]


def test_success_after_retries_returns_result() -> None:
    """Executor should return the first successful result."""

    operation = _FailingOperation(
        [VeyaError(ErrorKind.SYNTHESIS_FAILED), VeyaError(ErrorKind.NETWORK_TIMEOUT)],
        result="audio",
    )
    sleeper = RecordingSleeper()

    result = asyncio.run(RetryExecutor(RetryPolicy(3, 0.5, 10.0), sleeper=sleeper).execute(operation))

    assert result == "audio"
    assert operation.calls == 3
    assert sleeper.delays == [0.5, 1.0]


def test_default_policy_scenario_backs_off_exponentially() -> None:
    """Policy (3, 0.1s, 1.0s) with a permanent timeout should call 4 times after 0.7s of backoff."""

    operation = _FailingOperation([VeyaError(ErrorKind.NETWORK_TIMEOUT) for _ in range(4)])
    sleeper = RecordingSleeper()

    with pytest.raises(VeyaError):
        asyncio.run(RetryExecutor(RetryPolicy(3, 0.1, 1.0), sleeper=sleeper).execute(operation))

    assert operation.calls == 4
    assert sleeper.delays == pytest.approx([0.1, 0.2, 0.4])
    assert sum(sleeper.delays) >= 0.7 - 1e-9


def test_default_policy_scenario_elapses_real_backoff_time() -> None:
    """With the real sleeper, exhausting policy (3, 0.1s, 1.0s) should take at least 0.7s."""

    operation = _FailingOperation([VeyaError(ErrorKind.NETWORK_TIMEOUT) for _ in range(4)])
    started = time.monotonic()

    with pytest.raises(VeyaError):
        asyncio.run(RetryExecutor(RetryPolicy(3, 0.1, 1.0)).execute(operation))

    assert operation.calls == 4
    assert time.monotonic() - started >= 0.69


def test_delay_is_capped_by_max_delay() -> None:
    """Backoff should double per attempt and never exceed the cap."""

    policy = RetryPolicy(max_retries=8, base_delay=0.5, max_delay=3.0)

    assert [policy.delay_for(attempt) for attempt in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_policy_from_millis_and_validation() -> None:
    """Millisecond settings should convert to seconds and invalid bounds should fail."""

    policy = RetryPolicy.from_millis(3, 500, 30_000)

    assert policy == RetryPolicy(max_retries=3, base_delay=0.5, max_delay=30.0)
    with pytest.raises(ValueError, match="max_retries"):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError, match="must not exceed"):
        RetryPolicy(max_retries=1, base_delay=2.0, max_delay=1.0)


def test_cancellation_aborts_pending_backoff() -> None:
    """Cancelling the surrounding task should abort a pending backoff sleep."""

    operation = _FailingOperation([VeyaError(ErrorKind.NETWORK_TIMEOUT) for _ in range(5)])

    async def scenario() -> float:
        """Start a long backoff, cancel it, and return elapsed seconds."""

        executor = RetryExecutor(RetryPolicy(3, 30.0, 60.0))
        task = asyncio.create_task(executor.execute(operation))
        await asyncio.sleep(0.05)
        started = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return time.monotonic() - started

    elapsed = asyncio.run(scenario())

    assert operation.calls == 1
    assert elapsed < 1.0
