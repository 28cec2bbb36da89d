"""Pytest fixtures for waitless tests."""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from waitless.instrumentation import INSTALL_SCRIPT, TEARDOWN_SCRIPT


class FakeClock:
    """
    Deterministic monotonic clock.

    Time is kept in integer microseconds so repeated sleeps do not
    accumulate float error. ``sleep`` fires scheduled callbacks in time
    order as it advances.
    """

    def __init__(self) -> None:
        self._us = 0
        self._queue: list[tuple[int, int, Callable[[], Any]]] = []
        self._seq = itertools.count()
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self._us / 1_000_000

    @property
    def ms(self) -> float:
        """Current time in milliseconds."""
        return self._us / 1000

    def at(self, ms: float, callback: Callable[[], Any]) -> None:
        """Run ``callback`` when the clock reaches ``ms`` milliseconds."""
        heapq.heappush(self._queue, (round(ms * 1000), next(self._seq), callback))

    def advance(self, ms: float) -> None:
        """Move time forward, firing due callbacks."""
        target = self._us + round(ms * 1000)
        while self._queue and self._queue[0][0] <= target:
            when, _, callback = heapq.heappop(self._queue)
            self._us = max(self._us, when)
            callback()
        self._us = target

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds * 1000)


class FakePage:
    """
    Stand-in for a page running the injected instrumentation.

    Answers the install, sync and teardown scripts the way the real
    in-page code would, with events queued by the test.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._tokens = itertools.count(1)
        self.token: str | None = None
        self.events: list[dict[str, Any]] = []
        self.running: list[dict[str, Any]] = []
        self.scripts: list[str] = []

    def push(self, event: dict[str, Any]) -> None:
        """Buffer an event stamped with the current page time."""
        if self.token is not None:
            self.events.append({**event, "t": self._clock.ms})

    def replace_document(self) -> None:
        """Simulate a full navigation: the new document has no hooks."""
        self.token = None
        self.events = []
        self.running = []

    async def evaluate(self, context_id: str, expression: str) -> Any:
        self.scripts.append(expression)
        if expression == INSTALL_SCRIPT:
            if self.token is not None:
                return {"installed": False, "token": self.token}
            self.token = f"tok{next(self._tokens)}"
            return {"installed": True, "token": self.token}
        if expression == TEARDOWN_SCRIPT:
            was_active = self.token is not None
            self.token = None
            return was_active
        if self.token is None:
            return None
        events, self.events = self.events, []
        reconcile = "if (true &&" in expression
        return {
            "token": self.token,
            "now": self._clock.ms,
            "events": events,
            "running": list(self.running) if reconcile else None,
        }


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo logging configuration (e.g. by the CLI) bound to a per-test captured stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock starting at zero."""
    return FakeClock()


@pytest.fixture
def page(clock: FakeClock) -> FakePage:
    """Fake instrumented page driven by the fake clock."""
    return FakePage(clock)


@pytest.fixture
def mock_browser(page: FakePage) -> MagicMock:
    """Create a mock OwlBrowser instance (SDK v2) backed by the fake page."""
    browser = MagicMock()
    browser.evaluate = AsyncMock(side_effect=page.evaluate)
    browser.navigate = AsyncMock(return_value=None)
    browser.click = AsyncMock(return_value=None)
    browser.type = AsyncMock(return_value=None)
    browser.create_context = AsyncMock(return_value={"context_id": "test-ctx-001"})
    browser.close_context = AsyncMock(return_value=None)
    return browser
