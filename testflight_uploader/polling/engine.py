"""Bounded polling primitives.

Both public shapes share :func:`poll`, which takes a delay-growth function:

- :func:`poll_until` keeps the delay fixed (visibility lag of a resource is
  roughly constant);
- :func:`poll_with_backoff` doubles the delay up to a cap (server-side
  processing time is unpredictable and fast retries waste API quota).

Timeouts are expressed only as attempt exhaustion. No sleep follows the
final attempt.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from testflight_uploader.errors import PollTimeoutError
from testflight_uploader.models import PollPolicy
from testflight_uploader.utils.logging import get_logger

logger = get_logger("polling.engine")

T = TypeVar("T")

Probe = Callable[[], Awaitable[Optional[T]]]
Predicate = Callable[[T], bool]
RetryCallback = Callable[[int, float], None]
Sleep = Callable[[float], Awaitable[Any]]
DelayGrowth = Callable[[float], float]

DEFAULT_BACKOFF_CAP = 300.0  # seconds


def fixed_delay(delay: float) -> float:
    """Delay growth that never changes the delay."""
    return delay


def doubling_delay(cap: float) -> DelayGrowth:
    """Delay growth that doubles the delay, never exceeding ``cap``."""

    def grow(delay: float) -> float:
        return min(delay * 2, cap)

    return grow


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) > 0
    return True


async def poll(
    probe: Probe,
    is_acceptable: Predicate,
    attempts: int,
    initial_delay: float,
    next_delay: DelayGrowth = fixed_delay,
    on_retry: Optional[RetryCallback] = None,
    label: str = "App Store Connect state",
    sleep: Optional[Sleep] = None,
) -> T:
    """
    Probe until a present, acceptable value is returned.

    Args:
        probe: Coroutine function returning the observed value (or None)
        is_acceptable: Predicate the value must satisfy
        attempts: Maximum number of probes
        initial_delay: Seconds to sleep after the first unsuccessful probe
        next_delay: Delay-growth function applied after every sleep
        on_retry: Called with (attempt_index, delay) before each sleep
        label: Awaited condition, used in logs and the timeout error
        sleep: Sleep coroutine (defaults to asyncio.sleep)

    Returns:
        The first acceptable value

    Raises:
        PollTimeoutError: If all attempts are exhausted
        ValueError: If attempts is less than 1
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    sleep = sleep or asyncio.sleep
    delay = initial_delay

    for attempt in range(attempts):
        value = await probe()
        if _is_present(value) and is_acceptable(value):
            logger.debug("poll_satisfied", label=label, attempt=attempt + 1)
            return value

        if attempt == attempts - 1:
            break

        if on_retry is not None:
            on_retry(attempt, delay)
        logger.debug(
            "poll_retry",
            label=label,
            attempt=attempt + 1,
            attempts=attempts,
            delay_seconds=delay,
        )
        await sleep(delay)
        delay = next_delay(delay)

    logger.warning("poll_exhausted", label=label, attempts=attempts)
    raise PollTimeoutError(label, attempts)


async def poll_until(
    probe: Probe,
    is_acceptable: Predicate,
    attempts: int,
    delay: float,
    on_retry: Optional[RetryCallback] = None,
    label: str = "App Store Connect state",
    sleep: Optional[Sleep] = None,
) -> T:
    """Poll with a fixed delay between attempts."""
    return await poll(
        probe,
        is_acceptable,
        attempts,
        delay,
        next_delay=fixed_delay,
        on_retry=on_retry,
        label=label,
        sleep=sleep,
    )


async def poll_with_backoff(
    probe: Probe,
    is_acceptable: Predicate,
    attempts: int,
    initial_delay: float,
    on_retry: Optional[RetryCallback] = None,
    backoff_cap: float = DEFAULT_BACKOFF_CAP,
    label: str = "App Store Connect state",
    sleep: Optional[Sleep] = None,
) -> T:
    """
    Poll with a delay that doubles after each unsuccessful attempt.

    The delay before attempt k (k >= 2) is ``min(initial_delay * 2**(k-2), backoff_cap)``.
    """
    return await poll(
        probe,
        is_acceptable,
        attempts,
        min(initial_delay, backoff_cap),
        next_delay=doubling_delay(backoff_cap),
        on_retry=on_retry,
        label=label,
        sleep=sleep,
    )


async def poll_with_policy(
    probe: Probe,
    is_acceptable: Predicate,
    policy: PollPolicy,
    on_retry: Optional[RetryCallback] = None,
    label: str = "App Store Connect state",
    sleep: Optional[Sleep] = None,
) -> T:
    """Poll using a :class:`PollPolicy`, backing off only if it has a cap."""
    if policy.uses_backoff:
        return await poll_with_backoff(
            probe,
            is_acceptable,
            policy.attempts,
            policy.initial_delay,
            on_retry=on_retry,
            backoff_cap=policy.backoff_cap,
            label=label,
            sleep=sleep,
        )
    return await poll_until(
        probe,
        is_acceptable,
        policy.attempts,
        policy.initial_delay,
        on_retry=on_retry,
        label=label,
        sleep=sleep,
    )
