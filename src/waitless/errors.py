"""Exception types raised by waitless."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from waitless.report import StabilityReport


class WaitlessError(Exception):
    """Base exception for waitless errors."""


class StabilityTimeoutError(WaitlessError):
    """
    Raised when the page did not settle within ``max_wait_time``.

    The oracle itself never raises this; it is raised by the action
    wrapper when the caller asked for strict waits. The diagnostic
    snapshot taken at the deadline is attached as ``report``.
    """

    def __init__(self, report: StabilityReport) -> None:
        self.report = report
        super().__init__(
            f"Page not stable after {report.elapsed_ms:.0f}ms: {report.reason}"
        )


class InstrumentationError(WaitlessError):
    """Raised when the in-page instrumentation cannot be installed."""


class InstrumentationMissingError(InstrumentationError):
    """Raised when the current document has lost its instrumentation hooks.

    Usually caused by a full page navigation replacing the document.
    """
