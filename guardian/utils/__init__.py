"""Utility modules for the Guardian alert core."""

from guardian.utils.timing import (
    CancelHandle,
    Scheduler,
    ThreadingScheduler,
    VirtualScheduler,
    get_monotonic_timestamp,
)

__all__ = [
    "CancelHandle",
    "Scheduler",
    "ThreadingScheduler",
    "VirtualScheduler",
    "get_monotonic_timestamp",
]
