"""Launch or attach to Chrome and open controlled tabs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import urllib.request

from zenchrome.config import ChromeConfig
from zenchrome.manifest import Manifest
from zenchrome.session import RemoteSession
from zenchrome.tab import ChromeTab

logger = logging.getLogger(__name__)

CHROME_FLAGS = ("--headless", "--disable-gpu", "--no-first-run", "--no-default-browser-check")


class ChromeBrowser:
    """Owns the browser-level DevTools session and hands out ChromeTabs."""

    def __init__(self, config: ChromeConfig):
        self.config = config
        self.process: asyncio.subprocess.Process | None = None
        self._browser: RemoteSession | None = None
        self.tabs: list[ChromeTab] = []

    @property
    def endpoint(self) -> str:
        return f"{self.config.host}:{self.config.port}"

    async def launch(self, port: int | None = None, startup_timeout: float = 15) -> None:
        """Start a local headless Chrome and connect to it.

        Locally we start our own instance; the pid goes to ``tmp_dir/chrome.pid``.
        """
        if port is not None:
            self.config.port = port
        if not self.config.chrome_path:
            raise FileNotFoundError("No Chrome binary found; set ZEN_CHROME_PATH")

        user_data_dir = os.path.join(self.config.tmp_dir, "zen-chrome-profile")
        self.process = await asyncio.create_subprocess_exec(
            self.config.chrome_path,
            *CHROME_FLAGS,
            f"--remote-debugging-port={self.config.port}",
            f"--user-data-dir={user_data_dir}",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        pid_path = os.path.join(self.config.tmp_dir, "chrome.pid")
        with open(pid_path, "w") as f:
            f.write(str(self.process.pid))
        logger.info("Launched Chrome (pid %s) on port %s", self.process.pid, self.config.port)

        try:
            ws_url = await self._wait_for_endpoint(startup_timeout)
        except TimeoutError:
            await self._stop_process()
            raise
        self._browser = await RemoteSession(ws_url).connect()

    async def connect_to_running(self) -> None:
        """Attach to a browser that is already running (e.g. in a container)."""
        ws_url = await self._wait_for_endpoint(timeout=5)
        self._browser = await RemoteSession(ws_url).connect()
        logger.info("Connected to running Chrome at %s", self.endpoint)

    async def open_tab(
        self, url: str, tab_id: str, manifest: Manifest | None = None
    ) -> ChromeTab:
        """Create a target, attach to it and hand it to a new ChromeTab.

        ``manifest`` is in place before the tab's first navigation, so the
        index page can be served from it.
        """
        if self._browser is None:
            raise RuntimeError("Browser not started; call launch() or connect_to_running()")

        target = await self._browser.call("Target.createTarget", {"url": "about:blank"})
        target_id = target["targetId"]
        session = RemoteSession(
            f"ws://{self.endpoint}/devtools/page/{target_id}", target_id=target_id
        )
        await session.connect()
        await asyncio.gather(
            session.call("Console.enable"),
            session.call("Page.enable"),
            session.call("Runtime.enable"),
            session.call("Network.enable"),
        )
        tab = ChromeTab(session, tab_id, url, self.config, manifest)
        self.tabs.append(tab)
        return tab

    async def close(self) -> None:
        """Disconnect every tab, then the browser, then stop a launched process."""
        results = await asyncio.gather(
            *(tab.disconnect() for tab in self.tabs), return_exceptions=True
        )
        for tab, result in zip(self.tabs, results):
            if isinstance(result, Exception):
                logger.warning("[%s] disconnect failed: %s", tab.id, result)
        self.tabs = []

        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        await self._stop_process()

    # ── Internals ───────────────────────────────────────────────

    async def _stop_process(self) -> None:
        if self.process is not None and self.process.returncode is None:
            logger.info("Stopping Chrome (pid %s)", self.process.pid)
            self.process.terminate()
            await self.process.wait()
        self.process = None

    def _fetch_version(self) -> dict:
        with urllib.request.urlopen(f"http://{self.endpoint}/json/version", timeout=2) as resp:
            return json.loads(resp.read().decode("utf-8"))

    async def _wait_for_endpoint(self, timeout: float) -> str:
        """Poll /json/version until Chrome answers; return the browser websocket URL."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            try:
                info = await asyncio.to_thread(self._fetch_version)
                return info["webSocketDebuggerUrl"]
            except OSError:  # URLError and refused connections while starting
                if loop.time() >= deadline:
                    raise TimeoutError(f"Chrome debugging endpoint {self.endpoint} not reachable")
                await asyncio.sleep(0.2)
