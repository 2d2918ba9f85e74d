"""Polling primitives and the build processing waiter."""

from testflight_uploader.polling.engine import (
    doubling_delay,
    fixed_delay,
    poll,
    poll_until,
    poll_with_backoff,
    poll_with_policy,
)
from testflight_uploader.polling.waiter import BuildProcessingWaiter

__all__ = [
    "poll",
    "poll_until",
    "poll_with_backoff",
    "poll_with_policy",
    "fixed_delay",
    "doubling_delay",
    "BuildProcessingWaiter",
]
