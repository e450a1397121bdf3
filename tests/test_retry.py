"""
Tests for the bounded-backoff retry executor.

These tests verify delay computation for every strategy and the attempt,
callback and failure-aggregation behaviour of execute_with_retry.
"""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from walletpilot.errors import AggregateFailureError
from walletpilot.retry import (
    BackoffStrategy,
    RetryOptions,
    RetryPolicy,
    compute_delay,
    execute_with_retry,
    exponential_delay,
    linear_delay,
    retrying,
)

NO_JITTER = RetryPolicy(base_delay_ms=100, max_delay_ms=5000, multiplier=1.5, jitter=False)
FAST = RetryPolicy(base_delay_ms=1, max_delay_ms=5, multiplier=1.5, jitter=False, max_attempts=3)


class TestRetryPolicy:
    """Test RetryPolicy validation."""

    def test_defaults(self) -> None:
        """Default policy matches the documented values."""
        policy = RetryPolicy.default()

        assert policy.base_delay_ms == 100
        assert policy.max_delay_ms == 5000
        assert policy.multiplier == 1.5
        assert policy.jitter is True
        assert policy.max_attempts == 10

    def test_base_above_max_rejected(self) -> None:
        """Base delay may not exceed the cap."""
        with pytest.raises(ValidationError):
            RetryPolicy(base_delay_ms=6000, max_delay_ms=5000)

    def test_multiplier_below_one_rejected(self) -> None:
        """Shrinking delays are not allowed."""
        with pytest.raises(ValidationError):
            RetryPolicy(multiplier=0.5)

    def test_zero_attempts_rejected(self) -> None:
        """At least one attempt is required."""
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)

    def test_policy_is_frozen(self) -> None:
        """Policies are immutable once built."""
        with pytest.raises(ValidationError):
            NO_JITTER.max_attempts = 3  # type: ignore[misc]


class TestComputeDelay:
    """Test delay computation."""

    def test_exponential_sequence_without_jitter(self) -> None:
        """100ms base with x1.5 growth is floored at each step."""
        delays = [compute_delay(i, NO_JITTER) for i in range(4)]

        assert delays == [100, 150, 225, 337]

    def test_exponential_is_capped(self) -> None:
        """Large attempts are clamped to max_delay_ms."""
        assert compute_delay(20, NO_JITTER) == 5000
        assert compute_delay(10, NO_JITTER) == 5000

    def test_exponential_huge_attempt_does_not_overflow(self) -> None:
        """Attempt numbers far beyond float range still yield the cap."""
        assert compute_delay(100_000, NO_JITTER) == 5000

    def test_exponential_is_monotonic_without_jitter(self) -> None:
        """Without jitter delays never decrease."""
        delays = [compute_delay(i, NO_JITTER) for i in range(30)]

        assert delays == sorted(delays)
        assert max(delays) == 5000

    def test_jitter_stays_within_quarter(self) -> None:
        """Jittered delays stay within +/-25% of the capped delay."""
        policy = RetryPolicy(base_delay_ms=100, max_delay_ms=5000, multiplier=2.0, jitter=True)
        rng = random.Random(7)

        for attempt in range(12):
            nominal = min(100 * 2.0**attempt, 5000)
            delay = exponential_delay(attempt, policy, rng)
            assert nominal * 0.75 - 1 <= delay <= nominal * 1.25
            assert delay >= 0

    def test_jitter_varies(self) -> None:
        """Jitter actually perturbs the delay."""
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=5000, jitter=True)
        rng = random.Random(3)

        delays = {exponential_delay(2, policy, rng) for _ in range(20)}

        assert len(delays) > 1

    def test_zero_base_delay(self) -> None:
        """A zero base delay yields zero delays."""
        policy = RetryPolicy(base_delay_ms=0, max_delay_ms=0, jitter=True)

        assert compute_delay(5, policy) == 0

    def test_linear_defaults_to_base_delay(self) -> None:
        """Linear backoff steps by base_delay_ms unless told otherwise."""
        delays = [compute_delay(i, NO_JITTER, BackoffStrategy.LINEAR) for i in range(4)]

        assert delays == [0, 100, 200, 300]

    def test_linear_with_increment(self) -> None:
        """Linear backoff honours an explicit increment."""
        assert compute_delay(3, NO_JITTER, BackoffStrategy.LINEAR, increment_ms=40) == 120
        assert linear_delay(0, 40) == 0

    def test_custom_uses_supplied_function(self) -> None:
        """The custom strategy delegates to the caller's function."""
        fn = MagicMock(return_value=42.9)

        delay = compute_delay(2, NO_JITTER, BackoffStrategy.CUSTOM, custom=fn)

        assert delay == 42
        fn.assert_called_once_with(2, NO_JITTER)

    def test_custom_without_function_fails(self) -> None:
        """The custom strategy needs a delay function."""
        with pytest.raises(ValueError):
            compute_delay(0, NO_JITTER, BackoffStrategy.CUSTOM)

    def test_retry_options_validates_custom(self) -> None:
        """RetryOptions rejects a custom strategy with no function."""
        with pytest.raises(ValueError):
            RetryOptions(policy=NO_JITTER, strategy=BackoffStrategy.CUSTOM)


class TestExecuteWithRetry:
    """Test execute_with_retry."""

    async def test_first_success_returns_immediately(self) -> None:
        """A first-attempt success never triggers the callback."""
        operation = AsyncMock(return_value="ok")
        on_retry = MagicMock()

        result = await execute_with_retry(operation, FAST, on_retry)

        assert result == "ok"
        assert operation.await_count == 1
        on_retry.assert_not_called()

    async def test_succeeds_after_failures(self) -> None:
        """Failures are retried until the operation succeeds."""
        operation = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        on_retry = MagicMock()

        result = await execute_with_retry(operation, FAST, on_retry)

        assert result == "ok"
        assert operation.await_count == 3
        assert [c.args for c in on_retry.call_args_list] == [(0, 1), (1, 1)]

    async def test_three_failures_under_five_attempts(self) -> None:
        """Three failures then success calls back exactly three times."""
        policy = RetryPolicy(base_delay_ms=1, max_delay_ms=5, jitter=False, max_attempts=5)
        operation = AsyncMock(side_effect=[OSError("a"), OSError("b"), OSError("c"), "ok"])
        on_retry = MagicMock()

        assert await execute_with_retry(operation, policy, on_retry) == "ok"
        assert operation.await_count == 4
        assert [c.args[0] for c in on_retry.call_args_list] == [0, 1, 2]

    async def test_exhaustion_raises_aggregate(self) -> None:
        """After max_attempts failures an AggregateFailureError carries the last error."""
        errors = [ValueError("one"), ValueError("two"), ValueError("three")]
        operation = AsyncMock(side_effect=errors)
        on_retry = MagicMock()

        with pytest.raises(AggregateFailureError) as exc_info:
            await execute_with_retry(operation, FAST, on_retry)

        err = exc_info.value
        assert err.attempts == 3
        assert err.last_error is errors[-1]
        assert err.__cause__ is errors[-1]
        assert [a.index for a in err.history] == [0, 1, 2]
        assert [a.error for a in err.history] == errors
        assert operation.await_count == 3
        # No callback after the final attempt
        assert on_retry.call_count == 2

    async def test_single_attempt_never_calls_back(self) -> None:
        """With one attempt there is nothing to retry."""
        policy = RetryPolicy(base_delay_ms=1, max_delay_ms=1, max_attempts=1)
        on_retry = MagicMock()

        with pytest.raises(AggregateFailureError):
            await execute_with_retry(AsyncMock(side_effect=RuntimeError("x")), policy, on_retry)

        on_retry.assert_not_called()

    async def test_async_callback_is_awaited(self) -> None:
        """Coroutine callbacks are awaited before sleeping."""
        on_retry = AsyncMock()
        operation = AsyncMock(side_effect=[RuntimeError("x"), 5])

        assert await execute_with_retry(operation, FAST, on_retry) == 5
        on_retry.assert_awaited_once_with(0, 1)

    async def test_options_strategy_and_callback(self) -> None:
        """RetryOptions selects the strategy and supplies the callback."""
        on_retry = MagicMock()
        options = RetryOptions(
            policy=FAST,
            strategy=BackoffStrategy.LINEAR,
            increment_ms=2,
            on_retry=on_retry,
        )
        operation = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "done"])

        assert await execute_with_retry(operation, options) == "done"
        assert [c.args for c in on_retry.call_args_list] == [(0, 0), (1, 2)]

    async def test_history_records_computed_delays(self) -> None:
        """Each failed attempt keeps the delay that followed it."""
        policy = RetryPolicy(base_delay_ms=2, max_delay_ms=10, multiplier=2.0, jitter=False, max_attempts=3)
        operation = AsyncMock(side_effect=RuntimeError("down"))

        with pytest.raises(AggregateFailureError) as exc_info:
            await execute_with_retry(operation, policy)

        assert [a.computed_delay for a in exc_info.value.history] == [2, 4, 0]

    async def test_cancellation_is_not_retried(self) -> None:
        """CancelledError propagates on the first attempt."""
        operation = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await execute_with_retry(operation, FAST)

        assert operation.await_count == 1


class TestRetryingDecorator:
    """Test the retrying decorator."""

    async def test_decorated_function_is_retried(self) -> None:
        """Arguments pass through and failures are retried."""
        calls: list[int] = []

        @retrying(FAST)
        async def flaky(value: int) -> int:
            calls.append(value)
            if len(calls) < 2:
                raise OSError("not yet")
            return value * 2

        assert await flaky(21) == 42
        assert calls == [21, 21]
        assert flaky.__name__ == "flaky"
