"""Spread a list of tests across tabs and collect their results."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from zenchrome.tab import ChromeTab, TestResult

logger = logging.getLogger(__name__)


class TestRunner:
    """Feeds tests to every tab from one shared queue.

    Each tab gets one worker that hands it the next test once the previous
    result is in, so a slow tab never holds up the others.
    """

    __test__ = False

    def __init__(self, tabs: list[ChromeTab]):
        self.tabs = tabs
        self._run_ids = itertools.count(1)

    def set_code_hash(self, code_hash: str) -> None:
        """Tell every tab about new code; each applies it when it can."""
        for tab in self.tabs:
            tab.set_code_hash(code_hash)

    async def run_tests(self, tests: list[dict[str, Any]]) -> list[TestResult]:
        """Run ``tests`` (descriptors with at least ``testName``) and return results.

        Results come back in completion order.
        """
        if not self.tabs:
            raise RuntimeError("No tabs to run tests on")

        queue: asyncio.Queue = asyncio.Queue()
        for test in tests:
            queue.put_nowait({**test, "runId": next(self._run_ids)})

        results: list[TestResult] = []
        await asyncio.gather(*(self._worker(tab, queue, results) for tab in self.tabs))
        return results

    async def _worker(self, tab: ChromeTab, queue: asyncio.Queue, results: list[TestResult]):
        while True:
            try:
                descriptor = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await tab.set_test(descriptor)
            if result is None:
                logger.info(
                    "[%s] %s cancelled without a result", tab.id, descriptor.get("testName")
                )
                continue
            status = "ok" if result.passed else f"FAIL {result.error}"
            logger.info("[%s] %s %s (%dms)", tab.id, result.full_name, status, result.time)
            results.append(result)
