"""
Shared bookkeeping for the three stability signals.

Each tracker owns one counter and the timestamp of its most recent
activity. Instrumentation callbacks may arrive from other threads, so
every mutation of the counter happens under the tracker's own lock and
is O(1).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from enum import StrEnum

import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]
"""Monotonic clock returning seconds."""


class SignalKind(StrEnum):
    """Kind of activity a tracker observes."""

    MUTATION = "mutation"
    """DOM structure, attribute or text changes."""

    NETWORK = "network"
    """Began-but-not-finished network requests."""

    ANIMATION = "animation"
    """Running CSS transitions and animations."""


class StabilitySignal:
    """
    One activity signal with a non-negative counter.

    Attributes:
        kind: Which activity this signal tracks
        ignore_filter: Patterns whose activity is not counted
        revision: Incremented on every recorded event
        underflow_count: Number of clamped end-events without a counted start
    """

    def __init__(
        self,
        kind: SignalKind,
        ignore_filter: Iterable[str] = (),
        clock: Clock = time.monotonic,
    ) -> None:
        self.kind = kind
        self.ignore_filter: frozenset[str] = frozenset(ignore_filter)
        self._clock = clock
        self._lock = threading.Lock()
        self._active_count = 0
        self._last_activity = clock()
        self.revision = 0
        self.underflow_count = 0
        self._log = logger.bind(component=f"{kind}_tracker")

    @property
    def active_count(self) -> int:
        """Number of units of activity currently in progress."""
        return self._active_count

    @property
    def last_activity(self) -> float:
        """Clock reading of the most recent activity, in seconds."""
        return self._last_activity

    def ms_since_last_activity(self, now: float | None = None) -> float:
        """Milliseconds elapsed since the most recent activity."""
        if now is None:
            now = self._clock()
        # Microsecond resolution; keeps float noise out of settle comparisons.
        return max(0.0, round((now - self._last_activity) * 1000, 3))

    def is_settled(self, settle_time_ms: float, now: float | None = None) -> bool:
        """Whether nothing is active and the signal has been quiet long enough."""
        return self._active_count == 0 and self.ms_since_last_activity(now) >= settle_time_ms

    def reset(self) -> None:
        """Forget all activity, as when instrumentation is injected into a new document."""
        with self._lock:
            self._active_count = 0
            self._last_activity = self._clock()
            self.revision += 1
            self._reset_locked()

    def _reset_locked(self) -> None:
        """Hook for subclasses to clear their own state; called under the lock."""

    def _touch_locked(self, at: float | None) -> None:
        stamp = self._clock() if at is None else at
        # Late-delivered events must not move the timestamp backwards.
        if stamp > self._last_activity:
            self._last_activity = stamp
        self.revision += 1

    def _increment_locked(self, at: float | None) -> None:
        self._active_count += 1
        self._touch_locked(at)

    def _decrement_locked(self, at: float | None, detail: str) -> bool:
        if self._active_count <= 0:
            self._active_count = 0
            self._underflow_locked(detail)
            return False
        self._active_count -= 1
        self._touch_locked(at)
        return True

    def _underflow_locked(self, detail: str) -> None:
        self.underflow_count += 1
        self._log.warning(
            "Activity end without counted start, clamping to zero",
            event_kind="counter_underflow",
            detail=detail,
        )
