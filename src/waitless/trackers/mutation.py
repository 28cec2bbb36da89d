"""Tracks DOM mutation activity reported by the in-page MutationObserver."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from waitless.filters import ElementRef, SelectorFilter
from waitless.trackers.base import Clock, SignalKind, StabilitySignal


class MutationTracker(StabilitySignal):
    """
    Records when the monitored subtree last changed.

    Mutations are instantaneous, so ``active_count`` stays at zero and only
    the quiet time since the last batch decides whether this signal has
    settled.
    """

    def __init__(
        self,
        ignore_selectors: Iterable[str] = (),
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(SignalKind.MUTATION, ignore_selectors, clock)
        self._selector_filter = SelectorFilter(self.ignore_filter)
        self._total = 0
        self._since_query = 0

    @property
    def total_mutations(self) -> int:
        """Cumulative number of mutation records seen."""
        return self._total

    def on_mutation_batch(
        self,
        records: Sequence[Mapping[str, Any] | Any],
        at: float | None = None,
    ) -> int:
        """
        Record one batch delivered by the observer.

        Args:
            records: Mutation records; mappings with a ``target`` element
                description are checked against the ignore selectors
            at: Clock reading when the batch was observed (defaults to now)

        Returns:
            Number of records counted
        """
        if self._selector_filter:
            records = [r for r in records if not self._is_ignored(r)]
        count = len(records)
        if not count:
            return 0
        with self._lock:
            self._total += count
            self._since_query += count
            self._touch_locked(at)
        return count

    def ms_since_last_mutation(self, now: float | None = None) -> float:
        """Milliseconds since the most recent counted mutation."""
        return self.ms_since_last_activity(now)

    def mutations_since_last_query(self) -> int:
        """Return the number of mutations since the previous call and reset it."""
        with self._lock:
            count = self._since_query
            self._since_query = 0
        return count

    def _reset_locked(self) -> None:
        self._since_query = 0

    def _is_ignored(self, record: Mapping[str, Any] | Any) -> bool:
        if not isinstance(record, Mapping):
            return False
        target = record.get("target")
        if isinstance(target, ElementRef):
            return self._selector_filter.matches(target)
        if isinstance(target, Mapping):
            return self._selector_filter.matches(ElementRef.from_dict(target))
        return False
