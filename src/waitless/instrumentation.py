"""
In-page instrumentation and the bridge that feeds it into the trackers.

The injected script only buffers raw events in a private JavaScript
object; it never writes to the DOM, so the MutationObserver cannot see
its own activity. All counting happens on the Python side, in the
trackers owned by the session.

Every poll drains the buffer with a single ``evaluate`` call. Event
timestamps are page-relative (``performance.now()``) and are converted to
the session clock using the page time returned by the same call.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from waitless.errors import InstrumentationError, InstrumentationMissingError
from waitless.filters import ElementRef
from waitless.trackers import AnimationTracker, Clock, MutationTracker, NetworkTracker

if TYPE_CHECKING:
    from owl_browser import OwlBrowser

logger = structlog.get_logger(__name__)

INSTALL_SCRIPT = """
(() => {
    const existing = window.__waitless__;
    if (existing && existing.active) {
        return { installed: false, token: existing.token };
    }

    const state = {
        active: true,
        token: Math.random().toString(36).slice(2) + Date.now().toString(36),
        events: [],
        teardown: []
    };
    Object.defineProperty(window, '__waitless__', {
        value: state, configurable: true, enumerable: false, writable: true
    });

    const push = (event) => {
        event.t = performance.now();
        state.events.push(event);
    };

    const keys = new WeakMap();
    let keySeq = 0;
    const describe = (el, animation) => {
        if (!el || el.nodeType !== 1) el = el && el.parentElement;
        if (!el) return { key: 'document', tag: '', id: null, classes: [], animation: animation || '' };
        if (!keys.has(el)) keys.set(el, 'e' + (++keySeq));
        return {
            key: keys.get(el),
            tag: el.tagName.toLowerCase(),
            id: el.id || null,
            classes: Array.from(el.classList || []),
            animation: animation || ''
        };
    };
    state.describe = describe;

    // DOM mutations
    const observer = new MutationObserver((records) => {
        push({ type: 'mutation', targets: records.map((r) => describe(r.target)) });
    });
    observer.observe(document.documentElement, {
        childList: true, subtree: true, attributes: true, characterData: true
    });
    state.teardown.push(() => observer.disconnect());

    // Network: fetch
    let reqSeq = 0;
    const absolute = (url) => {
        try { return new URL(url, document.baseURI).href; } catch (e) { return String(url); }
    };
    const originalFetch = window.fetch;
    if (originalFetch) {
        window.fetch = function (input, init) {
            const id = 'f' + (++reqSeq);
            const url = absolute(typeof input === 'string' ? input : (input && input.url) || input);
            push({ type: 'request_start', id, url });
            const done = () => push({ type: 'request_end', id, url });
            try {
                const result = originalFetch.apply(this, arguments);
                result.then(done, done);
                return result;
            } catch (e) {
                done();
                throw e;
            }
        };
        state.teardown.push(() => { window.fetch = originalFetch; });
    }

    // Network: XMLHttpRequest
    const xhrOpen = XMLHttpRequest.prototype.open;
    const xhrSend = XMLHttpRequest.prototype.send;
    XMLHttpRequest.prototype.open = function (method, url) {
        this.__waitlessUrl = absolute(url);
        return xhrOpen.apply(this, arguments);
    };
    XMLHttpRequest.prototype.send = function () {
        const id = 'x' + (++reqSeq);
        const url = this.__waitlessUrl || '';
        push({ type: 'request_start', id, url });
        this.addEventListener('loadend', () => push({ type: 'request_end', id, url }), { once: true });
        return xhrSend.apply(this, arguments);
    };
    state.teardown.push(() => {
        XMLHttpRequest.prototype.open = xhrOpen;
        XMLHttpRequest.prototype.send = xhrSend;
    });

    // Animations and transitions
    const listen = (type, kind, nameOf) => {
        const handler = (e) => push({ type: kind, element: describe(e.target, nameOf(e)) });
        document.addEventListener(type, handler, true);
        state.teardown.push(() => document.removeEventListener(type, handler, true));
    };
    const animationName = (e) => e.animationName;
    const transitionName = (e) => e.propertyName;
    listen('animationstart', 'animation_start', animationName);
    listen('animationend', 'animation_end', animationName);
    listen('animationcancel', 'animation_end', animationName);
    listen('transitionrun', 'animation_start', transitionName);
    listen('transitionend', 'animation_end', transitionName);
    listen('transitioncancel', 'animation_end', transitionName);

    return { installed: true, token: state.token };
})()
"""

SYNC_SCRIPT_TEMPLATE = """
(() => {
    const state = window.__waitless__;
    if (!state || !state.active) return null;
    const events = state.events;
    state.events = [];
    let running = null;
    if (%(reconcile)s && document.getAnimations) {
        running = document.getAnimations()
            .filter((a) => a.playState === 'running' && a.effect && a.effect.target)
            .map((a) => state.describe(
                a.effect.target, a.animationName || a.transitionProperty || a.id || ''
            ));
    }
    return { token: state.token, now: performance.now(), events, running };
})()
"""

TEARDOWN_SCRIPT = """
(() => {
    const state = window.__waitless__;
    if (!state) return false;
    state.active = false;
    for (const fn of state.teardown) {
        try { fn(); } catch (e) {}
    }
    state.events = [];
    return true;
})()
"""


def _unwrap(result: Any) -> Any:
    # SDK returns the evaluated expression directly, older builds wrap it
    if isinstance(result, dict) and "result" in result and len(result) == 1:
        return result["result"]
    return result


class BrowserInstrumentation:
    """
    Installs the in-page hooks and replays their events into the trackers.

    One instance belongs to one browser session (one ``context_id``).
    """

    def __init__(
        self,
        browser: OwlBrowser,
        context_id: str,
        mutations: MutationTracker,
        network: NetworkTracker,
        animations: AnimationTracker,
        clock: Clock = time.monotonic,
    ) -> None:
        """
        Initialize the bridge.

        Args:
            browser: Browser instance
            context_id: Browser context ID
            mutations: Tracker receiving mutation batches
            network: Tracker receiving request start/end events
            animations: Tracker receiving animation events and recounts
            clock: Session clock in seconds
        """
        self._browser = browser
        self._context_id = context_id
        self._mutations = mutations
        self._network = network
        self._animations = animations
        self._clock = clock
        self._token: str | None = None
        self.injection_count = 0
        self._log = logger.bind(component="instrumentation", context_id=context_id)

    @property
    def attached(self) -> bool:
        """Whether hooks were injected into the current document as far as we know."""
        return self._token is not None

    async def inject(self) -> None:
        """
        Install hooks into the current document and reset the trackers.

        Raises:
            InstrumentationError: If the browser did not accept the script
        """
        try:
            result = _unwrap(
                await self._browser.evaluate(
                    context_id=self._context_id, expression=INSTALL_SCRIPT
                )
            )
        except Exception as e:
            raise InstrumentationError(f"Failed to inject instrumentation: {e}") from e

        if not isinstance(result, dict) or not result.get("token"):
            raise InstrumentationError(f"Unexpected injection result: {result!r}")

        token = str(result["token"])
        if token != self._token:
            # New document: everything counted so far belonged to the old one.
            for tracker in (self._mutations, self._network, self._animations):
                tracker.reset()
        self._token = token
        self.injection_count += 1
        self._log.debug(
            "Instrumentation injected",
            installed=bool(result.get("installed")),
            injections=self.injection_count,
        )

    async def sync(self, reconcile: bool = True) -> int:
        """
        Drain buffered page events into the trackers.

        Args:
            reconcile: Also recount running animations from the page

        Returns:
            Number of events applied

        Raises:
            InstrumentationMissingError: If the current document has no hooks
        """
        if self._token is None:
            raise InstrumentationMissingError("Instrumentation was never injected")

        script = SYNC_SCRIPT_TEMPLATE % {"reconcile": "true" if reconcile else "false"}
        try:
            result = _unwrap(
                await self._browser.evaluate(context_id=self._context_id, expression=script)
            )
        except Exception as e:
            raise InstrumentationMissingError(f"Could not read instrumentation: {e}") from e

        if not isinstance(result, dict):
            raise InstrumentationMissingError("Document has no instrumentation")
        if result.get("token") != self._token:
            raise InstrumentationMissingError("Document was replaced since injection")

        received_at = self._clock()
        page_now = float(result.get("now") or 0.0)
        events = result.get("events") or []
        for event in events:
            self._apply(event, self._to_clock(event.get("t"), page_now, received_at))

        running = result.get("running")
        if running is not None:
            self._animations.reconcile(
                (ElementRef.from_dict(r) for r in running), at=received_at
            )
        return len(events)

    async def refresh(self, reconcile: bool = True) -> bool:
        """
        Sync with the page, re-injecting if the hooks are gone.

        Returns:
            True if the hooks were present, False if they had to be re-injected
        """
        try:
            await self.sync(reconcile)
            return True
        except InstrumentationMissingError as e:
            self._log.warning("Instrumentation missing, re-injecting", reason=str(e))
            self._token = None
            await self.inject()
            return False

    async def detach(self) -> None:
        """Remove the hooks from the current document."""
        if self._token is None:
            return
        self._token = None
        try:
            await self._browser.evaluate(
                context_id=self._context_id, expression=TEARDOWN_SCRIPT
            )
        except Exception as e:
            # Context may already be closed
            self._log.debug("Instrumentation teardown failed", error=str(e))

    def _apply(self, event: dict[str, Any], at: float) -> None:
        kind = event.get("type")
        if kind == "mutation":
            self._mutations.on_mutation_batch(
                [{"target": t} for t in event.get("targets") or ()], at=at
            )
        elif kind == "request_start":
            self._network.on_request_start(str(event.get("url", "")), event.get("id"), at=at)
        elif kind == "request_end":
            self._network.on_request_end(str(event.get("url", "")), event.get("id"), at=at)
        elif kind == "animation_start":
            self._animations.on_animation_start(ElementRef.from_dict(event.get("element") or {}), at=at)
        elif kind == "animation_end":
            self._animations.on_animation_end(ElementRef.from_dict(event.get("element") or {}), at=at)
        else:
            self._log.debug("Unknown instrumentation event", event_type=kind)

    @staticmethod
    def _to_clock(page_time: Any, page_now: float, received_at: float) -> float:
        if page_time is None:
            return received_at
        age_ms = max(0.0, page_now - float(page_time))
        return received_at - age_ms / 1000
