"""End-to-end tests for a stability session against the fake page."""

from __future__ import annotations

import pytest

from waitless.config import StabilityConfig
from waitless.errors import WaitlessError
from waitless.oracle import OracleState
from waitless.session import StabilitySession

FAST = StabilityConfig(
    mutation_settle_time=100,
    network_idle_time=50,
    animation_settle_time=50,
    max_wait_time=5000,
    poll_interval=50,
    ignore_urls=["*/analytics*"],
)


@pytest.fixture
def session(mock_browser, clock) -> StabilitySession:
    return StabilitySession(mock_browser, "test-ctx-001", FAST, clock=clock, sleep=clock.sleep)


class TestStabilitySession:
    """Test StabilitySession class."""

    @pytest.mark.asyncio
    async def test_context_manager_attaches_and_detaches(self, session, page) -> None:
        async with session as s:
            assert s.instrumentation.attached is True
            assert page.token == "tok1"

        assert page.token is None
        with pytest.raises(WaitlessError, match="closed"):
            await session.attach()

    @pytest.mark.asyncio
    async def test_wait_attaches_lazily(self, session, page, clock) -> None:
        result = await session.wait_until_stable()

        assert page.token == "tok1"
        assert result.ok is True
        # Settle time counts from injection
        assert result.elapsed_ms == 100

    @pytest.mark.asyncio
    async def test_page_activity_scenario(self, session, page, clock) -> None:
        """Mutation, request and animation from the page; network settles last."""
        await session.attach()
        page.push({"type": "mutation", "targets": [{"key": "e1", "tag": "div"}]})
        page.push({"type": "request_start", "id": "f1", "url": "https://example.com/api/cart"})
        page.push({"type": "request_start", "id": "f2", "url": "https://example.com/analytics/beacon"})
        page.push({"type": "animation_start", "element": {"key": "e2", "tag": "aside", "animation": "slide"}})
        page.running = [{"key": "e2", "tag": "aside", "animation": "slide"}]

        def animation_done() -> None:
            page.push({"type": "animation_end", "element": {"key": "e2", "tag": "aside", "animation": "slide"}})
            page.running = []

        clock.at(200, animation_done)
        clock.at(
            300,
            lambda: page.push({"type": "request_end", "id": "f1", "url": "https://example.com/api/cart"}),
        )

        result = await session.wait_until_stable()

        assert result.ok is True
        assert 300 <= result.elapsed_ms <= 350
        assert session.oracle.state == OracleState.STABLE
        assert session.network.underflow_count == 0
        assert session.animations.reconcile_count == 0

    @pytest.mark.asyncio
    async def test_timeout_report(self, session, page, clock) -> None:
        await session.attach()
        page.push({"type": "request_start", "id": "x1", "url": "https://example.com/api/slow"})

        result = await session.wait_until_stable(max_wait_time=300)

        assert result.timed_out is True
        assert result.report.blocking_urls == ("https://example.com/api/slow",)
        diagnostics = session.get_diagnostics()
        assert diagnostics.pending_requests == ("https://example.com/api/slow",)
        assert diagnostics.blocking_urls == ("https://example.com/api/slow",)
        assert "NOT STABLE" in result.report.format()

    @pytest.mark.asyncio
    async def test_navigation_triggers_reinjection(self, session, page, clock) -> None:
        """A replaced document is re-instrumented, never reported stable blindly."""
        await session.attach()
        page.push({"type": "request_start", "id": "f1", "url": "https://example.com/old"})
        await session.instrumentation.sync()
        assert session.get_diagnostics().pending_requests == ("https://example.com/old",)
        clock.advance(500)

        page.replace_document()
        result = await session.wait_until_stable()

        assert result.ok is True
        assert page.token == "tok2"
        assert session.instrumentation.injection_count == 2
        assert result.polls >= 2
        # Request from the old document is gone
        assert session.get_diagnostics().pending_requests == ()

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, mock_browser, clock) -> None:
        first = StabilitySession(mock_browser, "ctx-a", FAST, clock=clock, sleep=clock.sleep)
        second = StabilitySession(mock_browser, "ctx-b", FAST, clock=clock, sleep=clock.sleep)

        first.network.on_request_start("https://example.com/a")

        assert first.network.active_count == 1
        assert second.network.active_count == 0
        assert first.mutations is not second.mutations

    @pytest.mark.asyncio
    async def test_report_and_is_stable(self, session, clock) -> None:
        assert await session.is_stable() is False
        assert session.report().instrumented is False

        await session.attach()
        clock.advance(150)

        assert await session.is_stable() is True
        assert session.report().stable is True

    @pytest.mark.asyncio
    async def test_is_stable_after_navigation(self, session, page, clock) -> None:
        """Hooks wiped by a navigation are re-injected, never reported stable."""
        await session.attach()
        clock.advance(200)
        assert await session.is_stable() is True

        page.replace_document()

        assert await session.is_stable() is False
        assert page.token == "tok2"
        assert session.instrumentation.injection_count == 2

    @pytest.mark.asyncio
    async def test_is_stable_sees_page_activity(self, session, page, clock) -> None:
        """Events buffered on the page are pulled in before the verdict."""
        await session.attach()
        clock.advance(200)
        page.push({"type": "request_start", "id": "f1", "url": "https://example.com/api"})

        assert await session.is_stable() is False
        assert session.network.active_count == 1
