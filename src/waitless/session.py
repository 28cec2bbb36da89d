"""
Per-browser-session stability state.

A ``StabilitySession`` owns one set of trackers, the instrumentation
bridge that feeds them and the oracle that reads them. Nothing is shared
between sessions.

Usage:
    async with StabilitySession(browser, context_id) as session:
        await browser.click(context_id=context_id, selector="#save")
        result = await session.wait_until_stable()
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from waitless.config import StabilityConfig
from waitless.errors import WaitlessError
from waitless.instrumentation import BrowserInstrumentation
from waitless.oracle import Sleep, StabilityOracle, WaitResult
from waitless.report import Diagnostics, StabilityReport
from waitless.trackers import AnimationTracker, Clock, MutationTracker, NetworkTracker

if TYPE_CHECKING:
    from owl_browser import OwlBrowser

logger = structlog.get_logger(__name__)


class StabilitySession:
    """Stability tracking for one browser context."""

    def __init__(
        self,
        browser: OwlBrowser,
        context_id: str,
        config: StabilityConfig | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Create the trackers, bridge and oracle for one context.

        Args:
            browser: Browser instance
            context_id: Browser context ID
            config: Session-wide defaults; individual waits may override them
            clock: Monotonic clock in seconds
            sleep: Coroutine used between polls
        """
        self.config = config or StabilityConfig()
        self.context_id = context_id

        self.mutations = MutationTracker(self.config.ignore_mutation_selectors, clock)
        self.network = NetworkTracker(self.config.ignore_urls, clock)
        self.animations = AnimationTracker(self.config.ignore_animation_selectors, clock)

        self.instrumentation = BrowserInstrumentation(
            browser,
            context_id,
            self.mutations,
            self.network,
            self.animations,
            clock=clock,
        )
        self.oracle = StabilityOracle(
            self.mutations,
            self.network,
            self.animations,
            self.config,
            probe=self._probe,
            clock=clock,
            sleep=sleep,
        )
        self._closed = False
        self._log = logger.bind(component="stability_session", context_id=context_id)

    async def __aenter__(self) -> StabilitySession:
        await self.attach()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def attach(self) -> None:
        """Inject instrumentation into the current document."""
        if self._closed:
            raise WaitlessError("Stability session is closed")
        await self.instrumentation.inject()

    async def wait_until_stable(
        self,
        config: StabilityConfig | None = None,
        **overrides: Any,
    ) -> WaitResult:
        """
        Wait for the page to settle.

        Injects instrumentation first if the session was never attached.
        See ``StabilityOracle.wait_until_stable``.
        """
        if not self.instrumentation.attached:
            await self.attach()
        return await self.oracle.wait_until_stable(config, **overrides)

    async def is_stable(self, config: StabilityConfig | None = None, **overrides: Any) -> bool:
        """
        Sync with the page once and return the current verdict.

        Never stable before the session is attached, or when the page's
        hooks were gone and had to be re-injected.
        """
        if not self.instrumentation.attached:
            return False
        cfg = (config or self.config).with_overrides(**overrides)
        if not await self._probe(cfg):
            return False
        return self.oracle.is_stable(cfg)

    def report(self) -> StabilityReport:
        """Snapshot of all signals from the last synced state."""
        return self.oracle.evaluate(instrumented=self.instrumentation.attached)

    def get_diagnostics(self) -> Diagnostics:
        """Read-only diagnostics; safe to call at any time."""
        return self.oracle.get_diagnostics()

    async def close(self) -> None:
        """Remove instrumentation and forget all activity."""
        if self._closed:
            return
        self._closed = True
        await self.instrumentation.detach()
        for tracker in (self.mutations, self.network, self.animations):
            tracker.reset()
        self._log.debug("Stability session closed")

    async def _probe(self, config: StabilityConfig) -> bool:
        return await self.instrumentation.refresh(reconcile=config.reconcile_animations)
