"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest

from waitless import cli
from waitless.oracle import OracleState, WaitResult
from waitless.report import SignalSnapshot, StabilityReport
from waitless.trackers import SignalKind


def _result(state: OracleState) -> WaitResult:
    stable = state == OracleState.STABLE
    report = StabilityReport(
        stable=stable,
        signals=(
            SignalSnapshot(SignalKind.MUTATION, 0, 120.0, 100.0, True),
            SignalSnapshot(SignalKind.NETWORK, 0 if stable else 1, 40.0, 50.0, stable),
            SignalSnapshot(SignalKind.ANIMATION, 0, 300.0, 50.0, True),
        ),
        pending_urls=() if stable else ("https://example.com/api",),
        blocking_urls=() if stable else ("https://example.com/api",),
        elapsed_ms=420.0,
    )
    return WaitResult(state, 420.0, report, polls=9)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("OWL_ENDPOINT", "OWL_TOKEN", "WAITLESS_MAX_WAIT_TIME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)


class TestParser:
    """Test argument parsing and config building."""

    def test_build_config_from_args(self, monkeypatch) -> None:
        monkeypatch.setenv("WAITLESS_MAX_WAIT_TIME", "9000")
        args = cli.create_parser().parse_args(
            [
                "https://example.com",
                "--poll-interval", "25",
                "--ignore-url", "*/analytics*",
                "--ignore-url", "hotjar",
                "--ignore-animation", ".spinner",
            ]
        )

        config = cli.build_config(args)

        assert config.max_wait_time == 9000
        assert config.poll_interval == 25
        assert config.ignore_urls == frozenset({"*/analytics*", "hotjar"})
        assert config.ignore_animation_selectors == frozenset({".spinner"})

    def test_command_line_wins_over_env(self, monkeypatch) -> None:
        monkeypatch.setenv("WAITLESS_MAX_WAIT_TIME", "9000")
        args = cli.create_parser().parse_args(["https://example.com", "--max-wait", "1500"])

        assert cli.build_config(args).max_wait_time == 1500


class TestMain:
    """Test the main entry point."""

    def test_missing_credentials(self) -> None:
        assert cli.main(["https://example.com"]) == 2

    def test_invalid_config(self) -> None:
        assert cli.main(["https://example.com", "--max-wait", "-1"]) == 2

    def test_stable_page(self, monkeypatch, capsys) -> None:
        async def fake_run_check(url, config, endpoint, token):
            assert url == "https://example.com"
            assert endpoint == "wss://owl.local"
            return _result(OracleState.STABLE)

        monkeypatch.setattr(cli, "run_check", fake_run_check)

        code = cli.main(
            ["https://example.com", "--owl-endpoint", "wss://owl.local", "--owl-token", "t"]
        )

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["state"] == "stable"
        assert payload["polls"] == 9
        assert payload["report"]["stable"] is True

    def test_timed_out_page(self, monkeypatch, capsys, tmp_path) -> None:
        async def fake_run_check(url, config, endpoint, token):
            return _result(OracleState.TIMED_OUT)

        monkeypatch.setattr(cli, "run_check", fake_run_check)
        monkeypatch.setenv("OWL_ENDPOINT", "wss://owl.local")
        monkeypatch.setenv("OWL_TOKEN", "t")
        output = tmp_path / "report.json"

        code = cli.main(["https://example.com", "-o", str(output)])

        assert code == 1
        payload = json.loads(output.read_text(encoding="utf-8"))
        assert payload["report"]["blockingUrls"] == ["https://example.com/api"]
        assert "NOT STABLE" in capsys.readouterr().err
