"""
Timing utilities for cancelable, non-blocking scheduling.

Provides the scheduling seam used by escalation steps, sound fades and the
arming countdown, with a real-time and a virtual-clock implementation.
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class CancelHandle:
    """
    Handle for a scheduled callback.

    Cancellation is idempotent and at-most-once: once cancel() returns,
    the callback will never run, even if the timer was about to fire.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._fired = False
        self._on_cancel: Optional[Callable[[], None]] = None

    def cancel(self) -> bool:
        """
        Cancel the scheduled callback.

        Returns:
            True if this call prevented the callback from running
        """
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._cancelled = True
            on_cancel = self._on_cancel

        if on_cancel is not None:
            on_cancel()
        return True

    def claim(self) -> bool:
        """Mark the handle as fired. Returns False if it was cancelled first."""
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._fired = True
            return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        """True while the callback may still run."""
        return not (self._cancelled or self._fired)


class Scheduler(ABC):
    """
    Delay-based scheduling capability.

    Implementations provide now() in seconds and schedule(delay_ms, fn).
    """

    @abstractmethod
    def now(self) -> float:
        pass

    @abstractmethod
    def schedule(self, delay_ms: float, fn: Callable[[], None]) -> CancelHandle:
        pass

    def shutdown(self) -> None:
        """Cancel everything still pending."""

    @staticmethod
    def _run(handle: CancelHandle, fn: Callable[[], None]) -> None:
        if not handle.claim():
            return
        try:
            fn()
        except Exception:
            logger.exception("Scheduled callback failed")


class ThreadingScheduler(Scheduler):
    """
    Real-time scheduler backed by daemon threading.Timer instances.

    Uses the monotonic clock so wall-clock changes never shift timers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timers: Dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)

    def now(self) -> float:
        return get_monotonic_timestamp()

    def schedule(self, delay_ms: float, fn: Callable[[], None]) -> CancelHandle:
        handle = CancelHandle()
        timer_id = next(self._ids)

        def fire() -> None:
            with self._lock:
                self._timers.pop(timer_id, None)
            self._run(handle, fn)

        timer = threading.Timer(max(0.0, delay_ms) / 1000.0, fire)
        timer.daemon = True

        def release() -> None:
            timer.cancel()
            with self._lock:
                self._timers.pop(timer_id, None)

        handle._on_cancel = release
        with self._lock:
            self._timers[timer_id] = timer
        timer.start()
        return handle

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by an explicit virtual clock.

    Nothing runs until advance() is called. Callbacks scheduled by other
    callbacks run in the same advance() call if they fall due within it.

    Example:
        scheduler = VirtualScheduler()
        scheduler.schedule(1000, fn)
        scheduler.advance(1000)  # fn runs here
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, CancelHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def schedule(self, delay_ms: float, fn: Callable[[], None]) -> CancelHandle:
        handle = CancelHandle()
        due = self._now + max(0.0, delay_ms) / 1000.0
        heapq.heappush(self._queue, (due, next(self._seq), handle, fn))
        return handle

    def advance(self, ms: float) -> int:
        """
        Move the clock forward, running every callback that falls due.

        Args:
            ms: Milliseconds to advance

        Returns:
            Number of callbacks that ran
        """
        target = self._now + max(0.0, ms) / 1000.0
        ran = 0
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle, fn = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if handle.pending:
                self._run(handle, fn)
                ran += 1
        self._now = target
        return ran

    @property
    def pending_count(self) -> int:
        return sum(1 for entry in self._queue if entry[2].pending)

    def shutdown(self) -> None:
        for _, _, handle, _ in self._queue:
            handle.cancel()
        self._queue.clear()


def get_monotonic_timestamp() -> float:
    """
    Get current monotonic timestamp.

    Returns:
        Monotonic time in seconds
    """
    return time.monotonic()
