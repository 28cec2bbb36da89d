"""
Diagnostic snapshots of the stability signals.

A ``StabilityReport`` explains why a page was (or was not) considered
stable at one instant. ``Diagnostics`` is the compact read-only view
exposed to test code at any time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from waitless.trackers.base import SignalKind


@dataclass(frozen=True)
class SignalSnapshot:
    """State of one signal at the moment of evaluation."""

    kind: SignalKind
    """Which signal this is."""

    active_count: int
    """Units of activity in progress."""

    ms_since_last_activity: float
    """Quiet time so far."""

    required_quiet_ms: float
    """Quiet time needed to settle (settle time, or the poll tick if longer)."""

    settled: bool
    """Whether this signal satisfied its condition."""

    ignored: bool = False
    """Whether this signal is excluded from the verdict."""

    @property
    def blocking(self) -> bool:
        """Whether this signal prevents stability."""
        return not self.ignored and not self.settled

    def describe(self) -> str:
        """One-line human-readable explanation."""
        if self.ignored:
            return f"{self.kind}: ignored"
        if self.active_count:
            return f"{self.kind}: {self.active_count} active"
        quiet = f"quiet {self.ms_since_last_activity:.0f}ms of {self.required_quiet_ms:.0f}ms"
        return f"{self.kind}: {'settled' if self.settled else 'settling'}, {quiet}"


@dataclass(frozen=True)
class Diagnostics:
    """Read-only view of what the page is currently doing."""

    pending_requests: tuple[str, ...]
    """URLs of tracked requests in flight."""

    ms_since_last_mutation: int
    """Milliseconds since the last counted DOM mutation."""

    active_animations: int
    """Number of tracked running animations."""

    blocking_urls: tuple[str, ...]
    """Pending URLs that currently prevent stability."""

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the public camelCase keys."""
        return {
            "pendingRequests": list(self.pending_requests),
            "msSinceLastMutation": self.ms_since_last_mutation,
            "activeAnimations": self.active_animations,
            "blockingUrls": list(self.blocking_urls),
        }


@dataclass(frozen=True)
class StabilityReport:
    """Full snapshot returned on timeout or on request."""

    stable: bool
    """Verdict at the moment of the snapshot."""

    signals: tuple[SignalSnapshot, ...]
    """One entry per signal."""

    pending_urls: tuple[str, ...] = ()
    """Tracked requests still in flight."""

    blocking_urls: tuple[str, ...] = ()
    """In-flight requests that block stability."""

    ms_since_last_mutation: float = 0.0
    """Age of the last counted mutation."""

    active_animations: int = 0
    """Tracked running animations."""

    animating_elements: tuple[str, ...] = ()
    """Descriptions of elements still animating."""

    elapsed_ms: float = 0.0
    """Time spent waiting when the snapshot was taken."""

    instrumented: bool = True
    """Whether the page had working instrumentation at this poll."""

    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    """Wall-clock time of the snapshot."""

    def signal(self, kind: SignalKind) -> SignalSnapshot:
        """Snapshot for one signal kind."""
        for snapshot in self.signals:
            if snapshot.kind == kind:
                return snapshot
        raise KeyError(kind)

    @property
    def blocking_signals(self) -> list[SignalKind]:
        """Signals preventing stability."""
        return [s.kind for s in self.signals if s.blocking]

    @property
    def reason(self) -> str:
        """Why the page is not stable, or ``"stable"``."""
        if self.stable:
            return "stable"
        parts: list[str] = []
        if not self.instrumented:
            parts.append("instrumentation missing")
        for snapshot in self.signals:
            if snapshot.blocking:
                parts.append(snapshot.describe())
        if self.blocking_urls:
            parts.append("waiting on " + ", ".join(self.blocking_urls))
        return "; ".join(parts) or "unstable"

    def format(self) -> str:
        """Multi-line text suitable for attaching to a test result."""
        lines = [
            f"Stability: {'STABLE' if self.stable else 'NOT STABLE'} after {self.elapsed_ms:.0f}ms",
        ]
        lines.extend(f"  {s.describe()}" for s in self.signals)
        if self.pending_urls:
            lines.append("  Pending requests:")
            lines.extend(f"    - {url}" for url in self.pending_urls)
        if self.animating_elements:
            lines.append("  Animating elements:")
            lines.extend(f"    - {el}" for el in self.animating_elements)
        if not self.instrumented:
            lines.append("  Instrumentation was missing and has been re-injected")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation."""
        return {
            "stable": self.stable,
            "reason": self.reason,
            "elapsedMs": round(self.elapsed_ms, 1),
            "instrumented": self.instrumented,
            "capturedAt": self.captured_at.isoformat(),
            "signals": {
                str(s.kind): {
                    "activeCount": s.active_count,
                    "msSinceLastActivity": round(s.ms_since_last_activity, 1),
                    "requiredQuietMs": round(s.required_quiet_ms, 1),
                    "settled": s.settled,
                    "ignored": s.ignored,
                }
                for s in self.signals
            },
            "pendingRequests": list(self.pending_urls),
            "blockingUrls": list(self.blocking_urls),
            "msSinceLastMutation": int(self.ms_since_last_mutation),
            "activeAnimations": self.active_animations,
            "animatingElements": list(self.animating_elements),
        }
