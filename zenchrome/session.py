"""Chrome DevTools Protocol session over a single websocket."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Callable

import websockets

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Any]

MAX_MESSAGE_SIZE = 64 * 1024 * 1024  # bundles and screenshots can be large


class SessionError(Exception):
    """A protocol command failed or the session is no longer usable."""


class RemoteSession:
    """Bidirectional command/event channel to one DevTools target.

    Commands are queued and written by a writer task; a reader task resolves
    command futures by id and hands events to the handlers registered with
    :meth:`on`. Handlers run on the reader task, one event at a time, in the
    order Chrome sent them.
    """

    def __init__(self, ws_url: str, target_id: str | None = None):
        self.ws_url = ws_url
        self.target_id = target_id
        self._ws = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._handlers: dict[str, list[EventHandler]] = {}
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._reader: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None
        self._closed = False

    async def connect(self) -> RemoteSession:
        self._ws = await websockets.connect(
            self.ws_url, max_size=MAX_MESSAGE_SIZE, ping_interval=None
        )
        self._reader = asyncio.create_task(self._read_loop())
        self._writer = asyncio.create_task(self._write_loop())
        logger.debug("Connected to %s", self.ws_url)
        return self

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    def on(self, event: str, handler: EventHandler) -> None:
        """Register ``handler`` for a protocol event such as ``Console.messageAdded``."""
        self._handlers.setdefault(event, []).append(handler)

    def post(self, method: str, params: dict[str, Any] | None = None) -> asyncio.Future:
        """Queue a command without waiting for it.

        The returned future resolves with the command's result. Failures of
        posted commands nobody awaits are logged instead of being lost.
        """
        future = asyncio.get_running_loop().create_future()
        if self._closed:
            future.set_exception(SessionError(f"{method}: session closed"))
        else:
            msg_id = next(self._ids)
            self._pending[msg_id] = future
            message: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                message["params"] = params
            self._outgoing.put_nowait(message)
        future.add_done_callback(lambda f: _log_failure(method, f))
        return future

    async def call(
        self, method: str, params: dict[str, Any] | None = None, timeout: float = 15
    ) -> dict[str, Any]:
        """Send a command and wait for its result."""
        return await asyncio.wait_for(self.post(method, params), timeout=timeout)

    async def close(self):
        """Stop the reader and writer and close the websocket."""
        self._closed = True
        tasks = [
            task
            for task in (self._reader, self._writer)
            if task is not None and not task.done() and task is not asyncio.current_task()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._ws is not None:
            ws, self._ws = self._ws, None
            try:
                await ws.close()
            except websockets.exceptions.WebSocketException:
                pass
        self._fail_pending(SessionError("session closed"))

    # ── Internals ───────────────────────────────────────────────

    async def _write_loop(self):
        while True:
            message = await self._outgoing.get()
            try:
                await self._ws.send(json.dumps(message))
            except websockets.exceptions.ConnectionClosed as exc:
                future = self._pending.pop(message["id"], None)
                if future is not None and not future.done():
                    future.set_exception(SessionError(f"{message['method']}: {exc}"))
                return

    async def _read_loop(self):
        try:
            async for raw in self._ws:
                self._dispatch(json.loads(raw))
        except websockets.exceptions.ConnectionClosed as exc:
            logger.info("Session %s closed: %s", self.target_id or self.ws_url, exc)
        finally:
            self._closed = True
            self._fail_pending(SessionError("connection closed"))

    def _dispatch(self, message: dict[str, Any]):
        if "id" in message:
            future = self._pending.pop(message["id"], None)
            if future is None or future.done():
                return
            if "error" in message:
                error = message["error"]
                future.set_exception(SessionError(error.get("message", str(error))))
            else:
                future.set_result(message.get("result", {}))
            return

        method = message.get("method")
        for handler in self._handlers.get(method, ()):
            try:
                handler(message.get("params", {}))
            except Exception:
                logger.exception("Handler for %s failed", method)

    def _fail_pending(self, exc: Exception):
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)


def _log_failure(method: str, future: asyncio.Future):
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("%s failed: %s", method, exc)
