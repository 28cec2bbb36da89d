"""Tests for stability configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from waitless.config import StabilityConfig


class TestStabilityConfig:
    """Test StabilityConfig model."""

    def test_defaults(self) -> None:
        config = StabilityConfig()

        assert config.mutation_settle_time == 100
        assert config.network_idle_time == 500
        assert config.animation_settle_time == 100
        assert config.max_wait_time == 10000
        assert config.poll_interval == 50
        assert config.ignore_urls == frozenset()
        assert config.track_network is True

    def test_immutable(self) -> None:
        config = StabilityConfig()
        with pytest.raises(ValidationError):
            config.max_wait_time = 1  # type: ignore[misc]

    def test_rejects_negative_times(self) -> None:
        with pytest.raises(ValidationError):
            StabilityConfig(mutation_settle_time=-1)
        with pytest.raises(ValidationError):
            StabilityConfig(poll_interval=0)

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            StabilityConfig(settle=100)  # type: ignore[call-arg]

    def test_poll_interval_within_deadline(self) -> None:
        with pytest.raises(ValidationError, match="poll_interval"):
            StabilityConfig(max_wait_time=100, poll_interval=200)

    def test_patterns_from_string(self) -> None:
        config = StabilityConfig(ignore_urls="*/analytics*, hotjar ,")
        assert config.ignore_urls == frozenset({"*/analytics*", "hotjar"})

    def test_with_overrides(self) -> None:
        base = StabilityConfig(ignore_urls=["*/ping"])
        call = base.with_overrides(max_wait_time=2000)

        assert call.max_wait_time == 2000
        assert call.ignore_urls == base.ignore_urls
        assert base.max_wait_time == 10000
        assert base.with_overrides() is base

    def test_with_overrides_validates(self) -> None:
        with pytest.raises(ValidationError):
            StabilityConfig().with_overrides(max_wait_time=-5)

    def test_from_env(self) -> None:
        env = {
            "WAITLESS_MAX_WAIT_TIME": "3000",
            "WAITLESS_POLL_INTERVAL": "25",
            "WAITLESS_IGNORE_URLS": "*/analytics*,*/beacon",
            "WAITLESS_TRACK_ANIMATIONS": "false",
            "WAITLESS_NETWORK_IDLE_TIME": "",
            "UNRELATED": "1",
        }

        config = StabilityConfig.from_env(env, mutation_settle_time=250)

        assert config.max_wait_time == 3000
        assert config.poll_interval == 25
        assert config.ignore_urls == frozenset({"*/analytics*", "*/beacon"})
        assert config.track_animations is False
        assert config.network_idle_time == 500
        assert config.mutation_settle_time == 250
