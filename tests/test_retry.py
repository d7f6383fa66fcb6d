"""Tests for the backoff retry executor."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest

from pointboard.errors import not_found
from pointboard.retry import RetryExecutor, retry_with_backoff


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def executor(sleep: AsyncMock) -> RetryExecutor:
    return RetryExecutor(sleep=sleep, rng=random.Random(1234))


async def test_success_returns_without_sleeping(executor: RetryExecutor, sleep: AsyncMock):
    op = AsyncMock(return_value="done")
    assert await executor.run(op) == "done"
    assert op.await_count == 1
    sleep.assert_not_awaited()


async def test_non_retryable_error_is_attempted_once(executor: RetryExecutor, sleep: AsyncMock):
    op = AsyncMock(side_effect=not_found("Task not found: TSK-404"))
    with pytest.raises(Exception) as exc_info:
        await executor.run(op, max_attempts=3)
    assert op.await_count == 1
    assert "TSK-404" in str(exc_info.value)
    sleep.assert_not_awaited()


async def test_retryable_error_uses_every_attempt_then_reraises(executor: RetryExecutor, sleep: AsyncMock):
    errors = [ConnectionResetError("connection reset"), ConnectionResetError("again"), TimeoutError("last")]
    op = AsyncMock(side_effect=errors)
    with pytest.raises(TimeoutError) as exc_info:
        await executor.run(op, max_attempts=3)
    assert op.await_count == 3
    # The last error surfaces unchanged, not wrapped.
    assert exc_info.value is errors[-1]
    # Sleeps only between attempts, never after the final one.
    assert sleep.await_count == 2


async def test_recovers_after_transient_failure(executor: RetryExecutor, sleep: AsyncMock):
    op = AsyncMock(side_effect=[TimeoutError("slow"), "ok"])
    assert await executor.run(op) == "ok"
    assert op.await_count == 2
    assert sleep.await_count == 1


async def test_stops_retrying_when_error_turns_permanent(executor: RetryExecutor, sleep: AsyncMock):
    op = AsyncMock(side_effect=[TimeoutError("slow"), RuntimeError("Task already completed"), "never"])
    with pytest.raises(RuntimeError, match="already completed"):
        await executor.run(op, max_attempts=5)
    assert op.await_count == 2


async def test_single_attempt_never_sleeps(executor: RetryExecutor, sleep: AsyncMock):
    op = AsyncMock(side_effect=TimeoutError("slow"))
    with pytest.raises(TimeoutError):
        await executor.run(op, max_attempts=1)
    sleep.assert_not_awaited()


async def test_invalid_attempt_count_rejected(executor: RetryExecutor):
    with pytest.raises(ValueError):
        await executor.run(AsyncMock(), max_attempts=0)


# ------------------------------------------------------------------
# Delay computation
# ------------------------------------------------------------------


def test_delays_grow_exponentially_within_jitter():
    executor = RetryExecutor(initial_delay=0.1, rng=random.Random(7))
    for attempt in range(5):
        delay = executor.compute_delay(attempt)
        base = 0.1 * 2 ** attempt
        assert base * 0.5 <= delay <= base * 1.5


@pytest.mark.parametrize("attempt", [6, 10, 50, 1000])
def test_delay_never_exceeds_cap(attempt):
    executor = RetryExecutor(initial_delay=0.1, max_delay=5.0)
    for _ in range(50):
        assert executor.compute_delay(attempt) <= 5.0 * 1.5


def test_jitter_varies_delays():
    executor = RetryExecutor(initial_delay=0.1, rng=random.Random(99))
    delays = {executor.compute_delay(2) for _ in range(20)}
    assert len(delays) > 1


async def test_sleep_receives_computed_delay(sleep: AsyncMock):
    executor = RetryExecutor(initial_delay=0.2, jitter=(1.0, 1.0), sleep=sleep)
    op = AsyncMock(side_effect=[TimeoutError(), TimeoutError(), "ok"])
    await executor.run(op)
    assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.2, 0.4])


def test_invalid_jitter_rejected():
    with pytest.raises(ValueError):
        RetryExecutor(jitter=(1.5, 0.5))


async def test_retry_with_backoff_shortcut():
    op = AsyncMock(return_value=42)
    assert await retry_with_backoff(op) == 42
