"""Tracks running CSS transitions and animations."""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Iterable

from waitless.filters import ElementRef, SelectorFilter
from waitless.trackers.base import Clock, SignalKind, StabilitySignal

# Keys dropped by reconcile whose late end event is still expected
MAX_RECONCILED_ENDS = 256


class AnimationTracker(StabilitySignal):
    """
    Counts concurrently running animations, excluding ignored elements.

    Event-driven counting misses animations that started before the
    instrumentation attached, so ``reconcile`` accepts a polled list of
    everything currently running and corrects the counter when the two
    disagree.
    """

    def __init__(
        self,
        ignore_selectors: Iterable[str] = (),
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(SignalKind.ANIMATION, ignore_selectors, clock)
        self._selector_filter = SelectorFilter(self.ignore_filter)
        self._running: Counter[str] = Counter()
        self._elements: dict[str, ElementRef] = {}
        self._reconciled_ends: Counter[str] = Counter()
        self.reconcile_count = 0

    def is_ignored(self, element: ElementRef) -> bool:
        """Whether animations on ``element`` are excluded from tracking."""
        return self._selector_filter.matches(element)

    def on_animation_start(self, element: ElementRef, at: float | None = None) -> bool:
        """Record that an animation started. Returns True if it was counted."""
        if self._selector_filter.matches(element):
            return False
        key = self._key(element)
        with self._lock:
            self._running[key] += 1
            self._elements[key] = element
            self._increment_locked(at)
        return True

    def on_animation_end(self, element: ElementRef, at: float | None = None) -> bool:
        """Record that an animation ended or was cancelled."""
        if self._selector_filter.matches(element):
            return False
        key = self._key(element)
        with self._lock:
            if self._running[key] <= 0:
                # getAnimations() drops a finished animation before its end event arrives
                if self._reconciled_ends[key] > 0:
                    self._reconciled_ends[key] -= 1
                    if self._reconciled_ends[key] <= 0:
                        del self._reconciled_ends[key]
                    return False
                self._underflow_locked(element.describe)
                return False
            self._running[key] -= 1
            if self._running[key] <= 0:
                del self._running[key]
                self._elements.pop(key, None)
            return self._decrement_locked(at, element.describe)

    def reconcile(self, running: Iterable[ElementRef], at: float | None = None) -> bool:
        """
        Replace the counter with a polled list of running animations.

        Args:
            running: Every animation the page reports as currently running
            at: Clock reading of the poll (defaults to now)

        Returns:
            True if the counter disagreed with the polled truth
        """
        polled: Counter[str] = Counter()
        elements: dict[str, ElementRef] = {}
        for element in running:
            if self._selector_filter.matches(element):
                continue
            key = self._key(element)
            polled[key] += 1
            elements[key] = element

        with self._lock:
            if polled == self._running:
                return False
            self._log.debug(
                "Animation count diverged from page, reconciling",
                tracked=self._active_count,
                polled=sum(polled.values()),
            )
            for key, count in self._running.items():
                if count > polled[key]:
                    self._reconciled_ends[key] += count - polled[key]
            while len(self._reconciled_ends) > MAX_RECONCILED_ENDS:
                del self._reconciled_ends[next(iter(self._reconciled_ends))]
            self._running = polled
            self._elements = elements
            self._active_count = sum(polled.values())
            self.reconcile_count += 1
            self._touch_locked(at)
        return True

    def running_refs(self) -> list[ElementRef]:
        """One reference per counted running animation."""
        with self._lock:
            return [self._elements[k] for k in self._running.elements()]

    def _reset_locked(self) -> None:
        self._running.clear()
        self._elements.clear()
        self._reconciled_ends.clear()

    @staticmethod
    def _key(element: ElementRef) -> str:
        return f"{element.key}|{element.animation}"
