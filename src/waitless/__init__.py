"""
waitless - stability oracle for browser test automation.

Tracks DOM mutations, in-flight network requests and running animations
in a page and waits until all three have settled before the next
simulated user action.
"""

__version__ = "1.0.0"
__author__ = "Olib AI"

from waitless.config import StabilityConfig
from waitless.errors import (
    InstrumentationError,
    InstrumentationMissingError,
    StabilityTimeoutError,
    WaitlessError,
)
from waitless.filters import ElementRef, SelectorFilter, UrlFilter
from waitless.guard import StableActions
from waitless.instrumentation import BrowserInstrumentation
from waitless.oracle import OracleState, StabilityOracle, WaitResult
from waitless.report import Diagnostics, SignalSnapshot, StabilityReport
from waitless.session import StabilitySession
from waitless.trackers import (
    AnimationTracker,
    MutationTracker,
    NetworkTracker,
    SignalKind,
    StabilitySignal,
)

__all__ = [
    "AnimationTracker",
    "BrowserInstrumentation",
    "Diagnostics",
    "ElementRef",
    "InstrumentationError",
    "InstrumentationMissingError",
    "MutationTracker",
    "NetworkTracker",
    "OracleState",
    "SelectorFilter",
    "SignalKind",
    "SignalSnapshot",
    "StabilityConfig",
    "StabilityOracle",
    "StabilityReport",
    "StabilitySession",
    "StabilitySignal",
    "StabilityTimeoutError",
    "StableActions",
    "UrlFilter",
    "WaitResult",
    "WaitlessError",
    "__version__",
]
