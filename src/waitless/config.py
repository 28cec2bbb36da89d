"""
Configuration for stability waits.

All durations are in milliseconds. A config is immutable; per-call
overrides produce a new validated instance via ``with_overrides``.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENV_PREFIX = "WAITLESS_"

DEFAULT_MUTATION_SETTLE_TIME = 100
DEFAULT_NETWORK_IDLE_TIME = 500
DEFAULT_ANIMATION_SETTLE_TIME = 100
DEFAULT_MAX_WAIT_TIME = 10000
DEFAULT_POLL_INTERVAL = 50


class StabilityConfig(BaseModel):
    """Settle times, deadline and ignore filters for one stability wait."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mutation_settle_time: float = Field(
        default=DEFAULT_MUTATION_SETTLE_TIME,
        ge=0,
        description="Quiet period after the last DOM mutation",
    )
    network_idle_time: float = Field(
        default=DEFAULT_NETWORK_IDLE_TIME,
        ge=0,
        description="Quiet period after the last network request finished",
    )
    animation_settle_time: float = Field(
        default=DEFAULT_ANIMATION_SETTLE_TIME,
        ge=0,
        description="Quiet period after the last animation ended",
    )
    max_wait_time: float = Field(
        default=DEFAULT_MAX_WAIT_TIME,
        gt=0,
        description="Hard deadline for one wait",
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Delay between two stability checks",
    )
    ignore_urls: frozenset[str] = Field(
        default_factory=frozenset,
        description="URL patterns excluded from network tracking",
    )
    ignore_animation_selectors: frozenset[str] = Field(
        default_factory=frozenset,
        description="Selectors whose animations are not tracked",
    )
    ignore_mutation_selectors: frozenset[str] = Field(
        default_factory=frozenset,
        description="Selectors of elements whose own mutations are not tracked",
    )
    track_mutations: bool = Field(default=True, description="Include DOM mutations in the verdict")
    track_network: bool = Field(default=True, description="Include network requests in the verdict")
    track_animations: bool = Field(default=True, description="Include animations in the verdict")
    reconcile_animations: bool = Field(
        default=True,
        description="Recount running animations on every poll",
    )
    raise_on_timeout: bool = Field(
        default=True,
        description="Whether the action wrapper raises when a wait times out",
    )

    @field_validator(
        "ignore_urls", "ignore_animation_selectors", "ignore_mutation_selectors", mode="before"
    )
    @classmethod
    def _split_patterns(cls, value: Any) -> Any:
        """Accept a comma separated string as well as any iterable."""
        if isinstance(value, str):
            return frozenset(p.strip() for p in value.split(",") if p.strip())
        return value

    @model_validator(mode="after")
    def _check_poll_interval(self) -> StabilityConfig:
        if self.poll_interval > self.max_wait_time:
            raise ValueError(
                f"poll_interval ({self.poll_interval}) exceeds max_wait_time ({self.max_wait_time})"
            )
        return self

    def with_overrides(self, **overrides: Any) -> StabilityConfig:
        """Return a validated copy with the given fields replaced."""
        if not overrides:
            return self
        data = self.model_dump()
        data.update(overrides)
        return StabilityConfig.model_validate(data)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> StabilityConfig:
        """
        Build a config from ``WAITLESS_*`` environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)
            **overrides: Explicit values that win over the environment

        Returns:
            Validated configuration
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                data[name] = raw
        data.update(overrides)
        return cls.model_validate(data)
