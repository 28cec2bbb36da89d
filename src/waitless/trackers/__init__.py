"""
Activity trackers feeding the stability oracle.

Provides:
- DOM mutation tracking (quiet time since the last change)
- Network tracking (in-flight requests with URL ignore patterns)
- Animation tracking (running animations with selector exclusions)
"""

from waitless.trackers.animation import AnimationTracker
from waitless.trackers.base import Clock, SignalKind, StabilitySignal
from waitless.trackers.mutation import MutationTracker
from waitless.trackers.network import NetworkTracker

__all__ = [
    "AnimationTracker",
    "Clock",
    "MutationTracker",
    "NetworkTracker",
    "SignalKind",
    "StabilitySignal",
]
