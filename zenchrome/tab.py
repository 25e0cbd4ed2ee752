"""Per-tab orchestration: load code, hot reload it, run tests, recover.

State is one of:

- LOADING: waiting for the page to load
- BAD_CODE: the code threw while loading. Nothing runs until the code changes
- IDLE: code is loaded and we're waiting for work
- HOT_RELOAD: trying to update the code without a full page load
- RUNNING: a test is in progress

The page talks back over console messages: ``Zen.idle`` once loaded,
``Zen.hotReload...`` once an update is applied and ``Zen.results {json}``
when a test finishes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from zenchrome.config import ChromeConfig
from zenchrome.manifest import (
    Decision,
    Manifest,
    Redirect,
    Respond,
    make_base64_response,
    request_path,
    resolve_request,
)
from zenchrome.session import RemoteSession

logger = logging.getLogger(__name__)

IDLE_MESSAGE = "Zen.idle"
HOT_RELOAD_PREFIX = "Zen.hotReload"
RESULTS_PREFIX = "Zen.results "

TIMEOUT_ERROR = "Chrome-level test timeout"


class TabState(Enum):
    LOADING = "loading"
    BAD_CODE = "badCode"
    IDLE = "idle"
    HOT_RELOAD = "hotReload"
    RUNNING = "running"
    # Only handled defensively; nothing in the controller enters it
    ABORT = "abort"


@dataclass
class TestResult:
    """Outcome of one test run as reported to the caller."""

    __test__ = False  # not a pytest class

    run_id: Any
    full_name: str | None
    error: str | None = None
    stack: str | None = None
    time: int = 0  # milliseconds, measured by the controller
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.error is None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TestResult:
        """Build from the JSON the page sends after ``Zen.results``."""
        extra = {
            k: v
            for k, v in payload.items()
            if k not in ("runId", "fullName", "error", "stack", "time")
        }
        return cls(
            run_id=payload.get("runId"),
            full_name=payload.get("fullName"),
            error=payload.get("error"),
            stack=payload.get("stack"),
            extra=extra,
        )


class PendingTest:
    """A dispatched test plus the single-use handle its caller awaits."""

    def __init__(self, descriptor: dict[str, Any]):
        self.descriptor = descriptor
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def run_id(self):
        return self.descriptor.get("runId")

    @property
    def name(self):
        return self.descriptor.get("testName")

    def resolve(self, result: TestResult | None) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def cancel(self) -> None:
        """Resolve with ``None``: superseded without a result."""
        self.resolve(None)


def describe_exception(details: dict[str, Any]) -> tuple[str, list[str]]:
    """Extract a message and a rendered call stack from ``exceptionDetails``."""
    exception = details.get("exception") or {}
    if exception.get("className"):
        description = (exception.get("description") or "").split("\n")[0]
        message = f"{exception['className']} {description}"
    elif exception.get("value"):
        message = str(exception["value"])
    else:
        message = details.get("text", "")

    frames = (details.get("stackTrace") or {}).get("callFrames") or []
    stack = [
        f"{f.get('functionName', '')} {f.get('url', '')}:{f.get('lineNumber', '')}"
        for f in frames
    ]
    return message, stack


class ChromeTab:
    """Drives one browser tab through code loads, hot reloads and test runs.

    All state changes happen on the event loop thread, either from session
    events or from calls to :meth:`set_code_hash` / :meth:`set_test`.
    """

    def __init__(
        self,
        session: RemoteSession,
        tab_id: str,
        url: str,
        config: ChromeConfig | None = None,
        manifest: Manifest | None = None,
    ):
        self.session = session
        self.id = tab_id
        self.url = url
        self.config = config or ChromeConfig()
        self.state = TabState.LOADING
        self.code_hash: str | None = None  # the version we'd like to be running
        self.test: PendingTest | None = None  # the test we're supposed to run
        self.manifest = manifest  # set before the first navigation is intercepted
        self.bad_code_error: str | None = None
        self.bad_code_stack: str | None = None
        self.started_at: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._request_cache: dict[str, Decision] = {}

        session.on("Console.messageAdded", self.on_message_added)
        session.on("Runtime.exceptionThrown", self.on_exception_thrown)
        session.on("Network.requestIntercepted", self.on_request_intercepted)
        session.post(
            "Network.setRequestInterception",
            {"patterns": [{"interceptionStage": "Request"}]},
        )

        self._arm(self.config.load_timeout)
        session.post("Page.navigate", {"url": url})
        self._activate()

    # ── Public API ──────────────────────────────────────────────

    def set_code_hash(self, code_hash: str) -> None:
        self.code_hash = code_hash
        if self.state is TabState.IDLE:
            self.hot_reload()
        elif self.state is TabState.BAD_CODE:
            # Hot reload can't recover from bad code
            self.reload()
        # LOADING, RUNNING and HOT_RELOAD pick it up once idle

    def set_test(self, descriptor: dict[str, Any]) -> asyncio.Future:
        """Schedule a test; the future resolves with a TestResult, or None if superseded."""
        if self.test is not None:
            self.test.cancel()

        self.test = PendingTest(descriptor)
        future = self.test.future
        if self.state is TabState.IDLE:
            self.run()
        elif self.state is TabState.RUNNING:
            # Can't interrupt a running test safely
            self.reload()
        elif self.state is TabState.BAD_CODE:
            self.fail_test(self.bad_code_error, self.bad_code_stack)
        # LOADING and HOT_RELOAD run it once idle
        return future

    def set_manifest(self, manifest: Manifest) -> None:
        if self.manifest is not None and self.manifest != manifest:
            raise ValueError(f"[{self.id}] manifest is already set")
        self.manifest = manifest

    async def disconnect(self) -> None:
        self._cancel_timer()
        if self.test is not None:
            self.test.cancel()
            self.test = None
        try:
            if self.session.target_id and self.session.connected:
                await self.session.call(
                    "Target.closeTarget", {"targetId": self.session.target_id}
                )
        finally:
            await self.session.close()

    # ── Transitions ─────────────────────────────────────────────

    def change_state(self, state: TabState, timeout: float | None = None) -> None:
        """The only place state changes: cancel the watchdog, switch, re-arm."""
        self._cancel_timer()
        self.state = state
        if timeout is not None:
            self._arm(timeout)

    def hot_reload(self) -> None:
        """Attempt to hot reload the latest code."""
        if self.config.skip_hot_reload:
            self.reload()
            return
        self.change_state(TabState.HOT_RELOAD, self.config.hot_reload_timeout)
        self._evaluate(f"Zen.upgrade({json.dumps(self.code_hash)})")
        self.code_hash = None

    def run(self) -> None:
        self.change_state(TabState.RUNNING, self.config.test_timeout)
        self.started_at = time.monotonic()
        # Focus events don't fire unless the tab has focus
        self._activate()
        self._evaluate(f"Zen.run({json.dumps(self.test.descriptor)})")

    def bad_code(self, message: str, stack: list[str]) -> None:
        self.change_state(TabState.BAD_CODE)
        self.bad_code_error = message
        self.bad_code_stack = "\n".join(stack)
        if self.test is not None:
            self.fail_test(self.bad_code_error, self.bad_code_stack)

    def become_idle(self) -> None:
        """Current task finished safely; start whatever is waiting."""
        self.change_state(TabState.IDLE)
        if self.code_hash:
            self.hot_reload()
        elif self.test is not None:
            self.run()

    def reload(self) -> None:
        self.change_state(TabState.LOADING, self.config.load_timeout)
        self.code_hash = None
        self._request_cache.clear()
        logger.info("[%s] reloading", self.id)
        self.session.post("Page.navigate", {"url": self.url})

    def fail_test(self, error: str | None, stack: str | None = None) -> None:
        self.finish_test(
            TestResult(
                run_id=self.test.run_id,
                full_name=self.test.name,
                error=error or "Unknown error",
                stack=stack,
            )
        )

    def finish_test(self, result: TestResult) -> None:
        if self.started_at is not None and self.state is TabState.RUNNING:
            result.time = int((time.monotonic() - self.started_at) * 1000)
        self.test.resolve(result)
        self.test = None

    # ── Session events ──────────────────────────────────────────

    def on_timeout(self) -> None:
        self._timer = None
        if self.state is TabState.RUNNING:
            logger.warning("[%s] test timed out", self.id)
            if self.test is not None:
                self.fail_test(TIMEOUT_ERROR)
        elif self.state is TabState.HOT_RELOAD:
            logger.warning("[%s] timeout while hot reloading", self.id)
        elif self.state is TabState.LOADING:
            logger.warning("[%s] timeout while loading", self.id)

        # The page is likely stuck and we can't tell whether it's safe to run
        # tests, so start over.
        self.reload()

    def on_message_added(self, params: dict[str, Any]) -> None:
        text = (params.get("message") or {}).get("text", "")
        logger.info("[%s] %s", self.id, text)

        if text == IDLE_MESSAGE and self.state in (TabState.LOADING, TabState.HOT_RELOAD):
            self.become_idle()
        elif text.startswith(HOT_RELOAD_PREFIX) and self.state is TabState.HOT_RELOAD:
            self.become_idle()
        elif text.startswith(RESULTS_PREFIX) and self.state is TabState.RUNNING:
            body = text[len(RESULTS_PREFIX):]
            try:
                payload = json.loads(body)
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                logger.warning("[%s] unreadable result: %s", self.id, body)
                if self.test is not None:
                    self.fail_test(f"Unreadable test result: {body}")
                self.reload()
                return
            if self.test is None or payload.get("runId") != self.test.run_id:
                logger.info("[%s] ignoring stale result %s", self.id, payload.get("runId"))
                return
            self.finish_test(TestResult.from_payload(payload))
            self.become_idle()

    def on_exception_thrown(self, params: dict[str, Any]) -> None:
        message, stack = describe_exception(params.get("exceptionDetails") or {})
        logger.warning("[%s] %s %s", self.id, message, stack)

        if self.state is TabState.LOADING:
            # An error while loading means the code is bad and nothing can run
            self.bad_code(message, stack)
        elif self.state is TabState.RUNNING and self.config.fail_on_exceptions:
            # Stray async errors are ignored unless asked otherwise; when they
            # count, we can't tell which ones are safe, so reload too.
            if self.test is not None:
                self.fail_test(message, "\n".join(stack))
            self.reload()
        elif self.state in (TabState.ABORT, TabState.HOT_RELOAD):
            self.reload()

    def on_request_intercepted(self, params: dict[str, Any]) -> None:
        interception_id = params["interceptionId"]
        url = (params.get("request") or {}).get("url", "")
        decision = self._resolve(url)

        if isinstance(decision, Respond):
            logger.debug("[%s] %s -> %s", self.id, url, decision.status)
            raw = make_base64_response(
                decision.status, decision.body, decision.content_type
            )
            self.session.post(
                "Network.continueInterceptedRequest",
                {"interceptionId": interception_id, "rawResponse": raw},
            )
        elif isinstance(decision, Redirect):
            logger.debug("[%s] %s redirected to %s", self.id, url, decision.url)
            self.session.post(
                "Network.continueInterceptedRequest",
                {"interceptionId": interception_id, "url": decision.url},
            )
        else:
            self.session.post(
                "Network.continueInterceptedRequest",
                {"interceptionId": interception_id},
            )

    # ── Helpers ─────────────────────────────────────────────────

    def _resolve(self, url: str) -> Decision:
        if self.manifest is None:
            return resolve_request(None, url)
        path = request_path(self.manifest, url)
        if path is None:
            return resolve_request(self.manifest, url)
        if path not in self._request_cache:
            self._request_cache[path] = resolve_request(self.manifest, url)
        return self._request_cache[path]

    def _arm(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(seconds, self.on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _activate(self) -> None:
        if self.session.target_id:
            self.session.post("Target.activateTarget", {"targetId": self.session.target_id})

    def _evaluate(self, expression: str) -> None:
        self.session.post("Runtime.evaluate", {"expression": expression})
