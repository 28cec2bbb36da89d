"""
Stability oracle: one decision over all activity trackers.

The page is stable when every tracked signal has nothing in progress and
has been quiet for at least its settle time. ``wait_until_stable`` polls
that verdict until it holds or the deadline passes. A timeout is a
reported outcome, not an exception; the caller decides what to do next.

A stable verdict also requires each signal to have been quiet for the
whole poll tick that led to it, so an event landing between two polls
can never be missed by the verdict that follows it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any

import structlog

from waitless.config import StabilityConfig
from waitless.errors import WaitlessError
from waitless.filters import SelectorFilter, UrlFilter
from waitless.report import Diagnostics, SignalSnapshot, StabilityReport
from waitless.trackers import (
    AnimationTracker,
    Clock,
    MutationTracker,
    NetworkTracker,
    SignalKind,
)

logger = structlog.get_logger(__name__)

Probe = Callable[[StabilityConfig], Awaitable[bool]]
"""Refreshes tracker state from the page; returns False if instrumentation was missing."""

Sleep = Callable[[float], Awaitable[Any]]


class OracleState(StrEnum):
    """State of one ``wait_until_stable`` invocation."""

    POLLING = auto()
    """Still checking."""

    STABLE = auto()
    """All signals settled."""

    TIMED_OUT = auto()
    """Deadline passed before the page settled."""


@dataclass(frozen=True)
class WaitResult:
    """Outcome of ``wait_until_stable``."""

    state: OracleState
    """Terminal state reached."""

    elapsed_ms: float
    """Time spent waiting."""

    report: StabilityReport
    """Snapshot from the final poll."""

    polls: int = 0
    """Number of evaluations performed."""

    @property
    def ok(self) -> bool:
        """True if the page became stable."""
        return self.state == OracleState.STABLE

    @property
    def timed_out(self) -> bool:
        """True if the deadline passed first."""
        return self.state == OracleState.TIMED_OUT


class StabilityOracle:
    """
    Decides whether a browser session is quiescent.

    Usage:
        oracle = StabilityOracle(mutations, network, animations, config)
        result = await oracle.wait_until_stable(max_wait_time=2000)
        if not result.ok:
            print(result.report.format())
    """

    def __init__(
        self,
        mutations: MutationTracker,
        network: NetworkTracker,
        animations: AnimationTracker,
        config: StabilityConfig | None = None,
        *,
        probe: Probe | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Initialize the oracle.

        Args:
            mutations: DOM mutation tracker
            network: Network request tracker
            animations: Animation tracker
            config: Default configuration for waits
            probe: Called before each poll to pull fresh events from the page
            clock: Monotonic clock in seconds, shared with the trackers
            sleep: Coroutine used between polls
        """
        self.mutations = mutations
        self.network = network
        self.animations = animations
        self.config = config or StabilityConfig()
        self.state = OracleState.POLLING
        self._probe = probe
        self._clock = clock
        self._sleep = sleep
        self._log = logger.bind(component="stability_oracle")

    def is_stable(self, config: StabilityConfig | None = None) -> bool:
        """Return True if every tracked signal is idle and settled right now."""
        return self.evaluate(config).stable

    def evaluate(
        self,
        config: StabilityConfig | None = None,
        *,
        tick_ms: float = 0.0,
        elapsed_ms: float = 0.0,
        instrumented: bool = True,
    ) -> StabilityReport:
        """
        Take a snapshot of all signals and compute the verdict.

        Args:
            config: Settle times and filters (defaults to the oracle's config)
            tick_ms: Time since the previous poll; each signal must have been
                quiet at least this long
            elapsed_ms: Time spent waiting so far, recorded in the report
            instrumented: Whether the page's instrumentation was present

        Returns:
            Snapshot with the verdict
        """
        cfg = config or self.config
        revisions = self._revisions()
        now = self._clock()

        url_filter = UrlFilter(cfg.ignore_urls)
        pending = tuple(self.network.pending_urls())
        blocking_urls = tuple(u for u in pending if not url_filter.matches(u))

        selector_filter = SelectorFilter(cfg.ignore_animation_selectors)
        running = [
            e for e in self.animations.running_refs() if not selector_filter.matches(e)
        ]

        signals = (
            self._snapshot(
                SignalKind.MUTATION,
                self.mutations.ms_since_last_mutation(now),
                0,
                cfg.mutation_settle_time,
                tick_ms,
                ignored=not cfg.track_mutations,
            ),
            self._snapshot(
                SignalKind.NETWORK,
                self.network.ms_since_last_activity(now),
                len(blocking_urls),
                cfg.network_idle_time,
                tick_ms,
                ignored=not cfg.track_network,
            ),
            self._snapshot(
                SignalKind.ANIMATION,
                self.animations.ms_since_last_activity(now),
                len(running),
                cfg.animation_settle_time,
                tick_ms,
                ignored=not cfg.track_animations,
            ),
        )

        stable = instrumented and not any(s.blocking for s in signals)
        # An event recorded while we were reading makes this snapshot unreliable.
        if stable and self._revisions() != revisions:
            stable = False

        return StabilityReport(
            stable=stable,
            signals=signals,
            pending_urls=pending,
            blocking_urls=blocking_urls if cfg.track_network else (),
            ms_since_last_mutation=self.mutations.ms_since_last_mutation(now),
            active_animations=len(running),
            animating_elements=tuple(sorted(e.describe for e in running)),
            elapsed_ms=elapsed_ms,
            instrumented=instrumented,
        )

    async def wait_until_stable(
        self,
        config: StabilityConfig | None = None,
        **overrides: Any,
    ) -> WaitResult:
        """
        Poll until the page is stable or ``max_wait_time`` elapses.

        Args:
            config: Configuration for this call (defaults to the oracle's)
            **overrides: Individual config fields to override for this call

        Returns:
            Result carrying the terminal state and the final snapshot
        """
        cfg = (config or self.config).with_overrides(**overrides)
        self.state = OracleState.POLLING

        start = self._clock()
        deadline = start + cfg.max_wait_time / 1000
        last_poll: float | None = None
        polls = 0

        while True:
            instrumented = await self._refresh(cfg)
            now = self._clock()
            tick_ms = 0.0 if last_poll is None else round((now - last_poll) * 1000, 3)
            last_poll = now
            elapsed_ms = round((now - start) * 1000, 3)

            report = self.evaluate(
                cfg, tick_ms=tick_ms, elapsed_ms=elapsed_ms, instrumented=instrumented
            )
            polls += 1

            if report.stable:
                self.state = OracleState.STABLE
                self._log.debug("Page stable", elapsed_ms=round(elapsed_ms, 1), polls=polls)
                return WaitResult(self.state, elapsed_ms, report, polls)

            if now >= deadline:
                self.state = OracleState.TIMED_OUT
                self._log.info(
                    "Stability wait timed out",
                    elapsed_ms=round(elapsed_ms, 1),
                    reason=report.reason,
                    pending_requests=len(report.pending_urls),
                    active_animations=report.active_animations,
                )
                return WaitResult(self.state, elapsed_ms, report, polls)

            await self._sleep(min(cfg.poll_interval / 1000, deadline - now))

    def get_diagnostics(self, config: StabilityConfig | None = None) -> Diagnostics:
        """Read-only view of current activity. Never resets any counter."""
        cfg = config or self.config
        now = self._clock()
        pending = tuple(self.network.pending_urls())
        url_filter = UrlFilter(cfg.ignore_urls)
        blocking = (
            tuple(u for u in pending if not url_filter.matches(u)) if cfg.track_network else ()
        )
        return Diagnostics(
            pending_requests=pending,
            ms_since_last_mutation=int(self.mutations.ms_since_last_mutation(now)),
            active_animations=self.animations.active_count,
            blocking_urls=blocking,
        )

    async def _refresh(self, config: StabilityConfig) -> bool:
        if self._probe is None:
            return True
        try:
            return await self._probe(config)
        except WaitlessError as e:
            self._log.warning("Instrumentation refresh failed", error=str(e))
            return False

    def _revisions(self) -> tuple[int, int, int]:
        return (self.mutations.revision, self.network.revision, self.animations.revision)

    @staticmethod
    def _snapshot(
        kind: SignalKind,
        quiet_ms: float,
        active: int,
        settle_ms: float,
        tick_ms: float,
        *,
        ignored: bool,
    ) -> SignalSnapshot:
        required = max(settle_ms, tick_ms)
        return SignalSnapshot(
            kind=kind,
            active_count=active,
            ms_since_last_activity=quiet_ms,
            required_quiet_ms=required,
            settled=active == 0 and quiet_ms >= required,
            ignored=ignored,
        )
