"""
Bounded-backoff retry executor.

Used by infrastructure-level operations (local node startup, extension
discovery) that are flaky for reasons outside the test's control. Popup
handling never goes through here; it has its own single-shot recovery.

Delays are integer milliseconds throughout.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import math
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from walletpilot.errors import AggregateFailureError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25
"""Jitter perturbs the exponential delay uniformly within +/- this fraction."""


class BackoffStrategy(StrEnum):
    """How retry delays grow across attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CUSTOM = "custom"


class RetryPolicy(BaseModel):
    """Immutable backoff parameters supplied per call."""

    model_config = ConfigDict(frozen=True)

    base_delay_ms: int = Field(default=100, ge=0, description="Delay before the first retry")
    max_delay_ms: int = Field(default=5000, ge=0, description="Upper bound for any delay")
    multiplier: float = Field(default=1.5, ge=1.0, description="Exponential growth factor")
    jitter: bool = Field(default=True, description="Randomize exponential delays by +/-25%")
    max_attempts: int = Field(default=10, ge=1, description="Total attempts including the first")

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "RetryPolicy":
        """Ensure base delay does not exceed the cap."""
        if self.base_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"base_delay_ms ({self.base_delay_ms}) must not exceed "
                f"max_delay_ms ({self.max_delay_ms})"
            )
        return self

    @classmethod
    def default(cls) -> "RetryPolicy":
        """Default policy: 100ms base, x1.5, 5s cap, jitter, 10 attempts."""
        return cls()


CustomDelay = Callable[[int, RetryPolicy], float]
OnRetry = Callable[[int, int], Any]


@dataclass(frozen=True)
class Attempt:
    """One failed iteration of a retried operation."""

    index: int
    computed_delay: int
    error: BaseException | None = None


def exponential_delay(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> int:
    """
    Compute ``min(max_delay, base_delay * multiplier ** attempt)``.

    With jitter enabled the capped delay is shifted by a uniform offset in
    +/-25% of itself. The result is floored and clamped to >= 0.
    """
    try:
        delay = policy.base_delay_ms * policy.multiplier**attempt
    except OverflowError:
        delay = float(policy.max_delay_ms)
    delay = min(delay, float(policy.max_delay_ms))

    if policy.jitter:
        spread = delay * JITTER_RATIO
        uniform = (rng or random).random()
        delay += (uniform - 0.5) * 2 * spread

    return max(0, math.floor(delay))


def linear_delay(attempt: int, increment_ms: int) -> int:
    """Linear backoff: ``attempt * increment``."""
    return attempt * increment_ms


def compute_delay(
    attempt: int,
    policy: RetryPolicy,
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL,
    *,
    increment_ms: int | None = None,
    custom: CustomDelay | None = None,
) -> int:
    """
    Compute the delay before the retry that follows ``attempt``.

    Args:
        attempt: Zero-based index of the attempt that just failed
        policy: Backoff parameters
        strategy: Which backoff curve to use
        increment_ms: Step for linear backoff (defaults to policy.base_delay_ms)
        custom: Delay function for the custom strategy

    Returns:
        Delay in milliseconds
    """
    match strategy:
        case BackoffStrategy.EXPONENTIAL:
            return exponential_delay(attempt, policy)
        case BackoffStrategy.LINEAR:
            step = policy.base_delay_ms if increment_ms is None else increment_ms
            return linear_delay(attempt, step)
        case BackoffStrategy.CUSTOM:
            if custom is None:
                raise ValueError("custom backoff strategy requires a delay function")
            return int(custom(attempt, policy))
    raise ValueError(f"Unknown backoff strategy: {strategy!r}")


@dataclass(frozen=True)
class RetryOptions:
    """Policy plus strategy selection for execute_with_retry."""

    policy: RetryPolicy
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    increment_ms: int | None = None
    custom: CustomDelay | None = None
    on_retry: OnRetry | None = None

    def __post_init__(self) -> None:
        if self.strategy == BackoffStrategy.CUSTOM and self.custom is None:
            raise ValueError("custom backoff strategy requires a delay function")

    def delay_for(self, attempt: int) -> int:
        """Delay in ms following the given failed attempt."""
        return compute_delay(
            attempt,
            self.policy,
            self.strategy,
            increment_ms=self.increment_ms,
            custom=self.custom,
        )


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | RetryOptions,
    on_retry: OnRetry | None = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    The first success is returned immediately. Between failures the computed
    delay is slept; ``on_retry(attempt, delay_ms)`` fires right before each
    sleep, so it never runs after the final attempt or after a success.

    Raises:
        AggregateFailureError: After ``max_attempts`` consecutive failures
    """
    options = policy if isinstance(policy, RetryOptions) else RetryOptions(policy=policy)
    callback = on_retry or options.on_retry
    max_attempts = options.policy.max_attempts

    history: list[Attempt] = []
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            last_error = e

            if attempt >= max_attempts - 1:
                history.append(Attempt(index=attempt, computed_delay=0, error=e))
                break

            delay = options.delay_for(attempt)
            history.append(Attempt(index=attempt, computed_delay=delay, error=e))
            logger.debug(
                "Operation failed, retrying with backoff",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_ms=delay,
                error=str(e),
            )

            if callback is not None:
                result = callback(attempt, delay)
                if inspect.isawaitable(result):
                    await result

            await asyncio.sleep(delay / 1000)

    assert last_error is not None
    logger.warning(
        "Operation exhausted retry budget",
        attempts=max_attempts,
        error=str(last_error),
    )
    raise AggregateFailureError(max_attempts, last_error, history) from last_error


def retrying(
    policy: RetryPolicy | RetryOptions,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of execute_with_retry for coroutine functions."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await execute_with_retry(lambda: func(*args, **kwargs), policy)

        return wrapper

    return decorator
