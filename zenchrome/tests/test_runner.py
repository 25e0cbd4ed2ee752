"""Tests for spreading tests across tabs."""

import asyncio

import pytest

from zenchrome.config import ChromeConfig
from zenchrome.runner import TestRunner
from zenchrome.tab import ChromeTab, TabState
from zenchrome.tests.fakes import FakePage


def make_tabs(n):
    pages = [FakePage(target_id=f"T{i}") for i in range(n)]
    tabs = [ChromeTab(page, f"tab{i}", "http://page", ChromeConfig()) for i, page in enumerate(pages)]
    return tabs, pages


class TestRunTests:
    @pytest.mark.asyncio
    async def test_runs_every_test(self):
        tabs, _ = make_tabs(2)
        runner = TestRunner(tabs)
        tests = [{"testName": f"test {i}"} for i in range(5)]

        results = await asyncio.wait_for(runner.run_tests(tests), timeout=2)

        assert sorted(r.full_name for r in results) == sorted(t["testName"] for t in tests)
        assert sorted(r.run_id for r in results) == [1, 2, 3, 4, 5]
        assert all(r.passed for r in results)
        assert all(tab.state is TabState.IDLE for tab in tabs)

    @pytest.mark.asyncio
    async def test_work_is_shared_between_tabs(self):
        tabs, pages = make_tabs(2)
        runner = TestRunner(tabs)
        await asyncio.wait_for(
            runner.run_tests([{"testName": f"t{i}"} for i in range(4)]), timeout=2
        )
        for page in pages:
            assert any(e.startswith("Zen.run(") for e in page.expressions())

    @pytest.mark.asyncio
    async def test_failures_reported(self):
        tabs, _ = make_tabs(1)
        runner = TestRunner(tabs)
        results = await asyncio.wait_for(
            runner.run_tests([{"testName": "ok"}, {"testName": "bad", "fail": True}]),
            timeout=2,
        )
        by_name = {r.full_name: r for r in results}
        assert by_name["ok"].passed
        assert by_name["bad"].error == "expected 1 to equal 2"

    @pytest.mark.asyncio
    async def test_run_ids_keep_increasing(self):
        tabs, _ = make_tabs(1)
        runner = TestRunner(tabs)
        await runner.run_tests([{"testName": "a"}])
        results = await runner.run_tests([{"testName": "b"}])
        assert results[0].run_id == 2

    @pytest.mark.asyncio
    async def test_no_tabs(self):
        with pytest.raises(RuntimeError):
            await TestRunner([]).run_tests([{"testName": "a"}])


class TestSetCodeHash:
    @pytest.mark.asyncio
    async def test_broadcasts_and_hot_reloads_before_tests(self):
        tabs, pages = make_tabs(2)
        runner = TestRunner(tabs)
        runner.set_code_hash("v2")

        results = await asyncio.wait_for(runner.run_tests([{"testName": "a"}]), timeout=2)

        assert len(results) == 1
        for page in pages:
            assert page.expressions()[0] == 'Zen.upgrade("v2")'
