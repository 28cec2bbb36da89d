"""
Browser actions that wait for stability before they run.

``StableActions`` wraps the owl-browser SDK v2 calls a test makes
(navigate, click, type) and awaits the session's oracle before each one.
A wait that times out is recorded in ``timeouts`` and, depending on
``raise_on_timeout``, either raised as ``StabilityTimeoutError`` or
logged before the action proceeds anyway.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from waitless.errors import StabilityTimeoutError

if TYPE_CHECKING:
    from owl_browser import OwlBrowser

    from waitless.oracle import WaitResult
    from waitless.report import StabilityReport
    from waitless.session import StabilitySession

logger = structlog.get_logger(__name__)


class StableActions:
    """
    Action wrapper bound to one stability session.

    Usage:
        async with StabilitySession(browser, context_id) as session:
            actions = StableActions(browser, session)
            await actions.click("#login")
            await actions.type("#user", "alice")
    """

    def __init__(self, browser: OwlBrowser, session: StabilitySession) -> None:
        self._browser = browser
        self._session = session
        self.timeouts: list[StabilityReport] = []
        self.last_result: WaitResult | None = None
        self._log = logger.bind(component="stable_actions", context_id=session.context_id)

    @property
    def context_id(self) -> str:
        """Browser context the actions run in."""
        return self._session.context_id

    async def settle(self, action: str = "action", **overrides: Any) -> WaitResult:
        """
        Wait for stability before an action.

        Args:
            action: Name of the upcoming action, for logs
            **overrides: Per-call config overrides

        Returns:
            The wait result

        Raises:
            StabilityTimeoutError: If the wait timed out and the effective
                config has ``raise_on_timeout`` set
        """
        result = await self._session.wait_until_stable(**overrides)
        self.last_result = result
        if result.ok:
            return result

        self.timeouts.append(result.report)
        raise_on_timeout = overrides.get("raise_on_timeout", self._session.config.raise_on_timeout)
        if raise_on_timeout:
            raise StabilityTimeoutError(result.report)

        self._log.warning(
            "Proceeding without stability",
            action=action,
            reason=result.report.reason,
            elapsed_ms=round(result.elapsed_ms, 1),
        )
        return result

    async def navigate(self, url: str, **overrides: Any) -> Any:
        """Navigate once the current page is stable."""
        await self.settle("navigate", **overrides)
        return await self._browser.navigate(context_id=self.context_id, url=url)

    async def click(self, selector: str, **overrides: Any) -> Any:
        """Click an element once the page is stable."""
        await self.settle("click", **overrides)
        return await self._browser.click(context_id=self.context_id, selector=selector)

    async def type(self, selector: str, text: str, **overrides: Any) -> Any:
        """Type into an element once the page is stable."""
        await self.settle("type", **overrides)
        return await self._browser.type(context_id=self.context_id, selector=selector, text=text)
