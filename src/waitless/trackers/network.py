"""
Tracks began-but-not-finished network requests.

Requests whose URL matches an ignore pattern are never counted, and their
completion is never decremented. Requests that began before the
instrumentation was injected are unknown to the tracker; their completion
is treated as an unmatched end and clamped.
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Iterable

from waitless.filters import UrlFilter
from waitless.trackers.base import Clock, SignalKind, StabilitySignal


class NetworkTracker(StabilitySignal):
    """Counts in-flight requests and remembers their URLs for diagnostics."""

    def __init__(
        self,
        ignore_urls: Iterable[str] = (),
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(SignalKind.NETWORK, ignore_urls, clock)
        self._url_filter = UrlFilter(self.ignore_filter)
        self._pending: Counter[str] = Counter()
        self._by_id: dict[str, str] = {}

    def is_ignored(self, url: str) -> bool:
        """Whether ``url`` is excluded from tracking."""
        return self._url_filter.matches(url)

    def on_request_start(
        self,
        url: str,
        request_id: str | None = None,
        at: float | None = None,
    ) -> bool:
        """
        Record that a request began.

        Args:
            url: Request URL
            request_id: Identifier pairing this start with its end, if known
            at: Clock reading when the request began (defaults to now)

        Returns:
            True if the request was counted
        """
        if self._url_filter.matches(url):
            return False
        with self._lock:
            if request_id is not None:
                if request_id in self._by_id:
                    # Duplicate start for the same request
                    return False
                self._by_id[request_id] = url
            self._pending[url] += 1
            self._increment_locked(at)
        return True

    def on_request_end(
        self,
        url: str,
        request_id: str | None = None,
        at: float | None = None,
    ) -> bool:
        """
        Record that a request finished, failed or was aborted.

        Returns:
            True if a counted request was completed
        """
        with self._lock:
            if request_id is not None:
                if request_id not in self._by_id:
                    return self._unmatched_locked(url)
                url = self._by_id.pop(request_id)
            elif self._pending[url] <= 0:
                return self._unmatched_locked(url)
            else:
                self._forget_id_locked(url)
            self._pending[url] -= 1
            if self._pending[url] <= 0:
                del self._pending[url]
            return self._decrement_locked(at, url)

    def pending_urls(self) -> list[str]:
        """URLs of counted requests still in flight, one entry per request."""
        with self._lock:
            return sorted(self._pending.elements())

    def _forget_id_locked(self, url: str) -> None:
        # An end without an id closes the oldest identified start for the URL
        for request_id, pending_url in self._by_id.items():
            if pending_url == url:
                del self._by_id[request_id]
                return

    def _unmatched_locked(self, url: str) -> bool:
        if not self._url_filter.matches(url):
            self._underflow_locked(url)
        return False

    def _reset_locked(self) -> None:
        self._pending.clear()
        self._by_id.clear()
