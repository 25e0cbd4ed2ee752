"""Tests for zenchrome.report."""

import json
from pathlib import Path

import pytest

from zenchrome.report import ReportGenerator
from zenchrome.results import ResultStore
from zenchrome.tab import TestResult


@pytest.fixture
def store(tmp_path: Path) -> ResultStore:
    return ResultStore(db_path=tmp_path / "test.db")


def make_result(**overrides) -> TestResult:
    defaults = dict(run_id=1, full_name="math adds", time=100)
    defaults.update(overrides)
    return TestResult(**defaults)


class TestReportGenerator:
    def test_all_pass_report(self, store: ResultStore):
        reporter = ReportGenerator(store)
        report = reporter.generate([make_result(run_id=i) for i in range(3)], "run")
        assert report.total == 3
        assert report.passed == 3
        assert report.failed == 0
        assert report.pass_rate == 1.0
        assert report.total_time_ms == 300
        assert report.avg_time_ms == 100

    def test_mixed_results(self, store: ResultStore):
        reporter = ReportGenerator(store)
        results = [
            make_result(),
            make_result(run_id=2, full_name="math divides", error="boom"),
        ]
        report = reporter.generate(results, "run")
        assert report.passed == 1
        assert report.failed == 1
        assert report.failures[0]["full_name"] == "math divides"
        assert report.failures[0]["error"] == "boom"

    def test_empty_results(self, store: ResultStore):
        report = ReportGenerator(store).generate([], "empty")
        assert report.total == 0
        assert report.pass_rate == 0
        assert report.avg_time_ms == 0

    def test_slowest_first(self, store: ResultStore):
        reporter = ReportGenerator(store, slowest_n=2)
        results = [
            make_result(full_name="a", time=5),
            make_result(full_name="b", time=50),
            make_result(full_name="c", time=500),
        ]
        report = reporter.generate(results)
        assert [s["full_name"] for s in report.slowest] == ["c", "b"]

    def test_regression_detected(self, store: ResultStore):
        for i in range(5):
            store.store(make_result(), timestamp=1000.0 + i)
        reporter = ReportGenerator(store)
        report = reporter.generate([make_result(error="now broken")])
        assert len(report.regressions) == 1
        assert report.regressions[0]["full_name"] == "math adds"
        assert report.regressions[0]["historical_pass_rate"] == 1.0

    def test_no_regression_for_flaky_test(self, store: ResultStore):
        store.store(make_result(error="flaky"), timestamp=1000.0)
        store.store(make_result(), timestamp=1001.0)
        report = ReportGenerator(store).generate([make_result(error="again")])
        assert report.regressions == []

    def test_markdown_output(self, store: ResultStore):
        reporter = ReportGenerator(store)
        report = reporter.generate(
            [make_result(), make_result(run_id=2, full_name="bad", error="boom")], "nightly"
        )
        md = reporter.to_markdown(report)
        assert "# Test Report: nightly" in md
        assert "1/2" in md
        assert "## Failures" in md
        assert "**bad** (run 2): boom" in md

    def test_text_output(self, store: ResultStore):
        reporter = ReportGenerator(store)
        report = reporter.generate([make_result(error="boom")])
        text = reporter.to_text(report)
        assert "0/1 passed" in text
        assert "FAIL math adds: boom" in text

    def test_json_output(self, store: ResultStore):
        reporter = ReportGenerator(store)
        report = reporter.generate([make_result()], "run")
        data = json.loads(reporter.to_json(report))
        assert data["name"] == "run"
        assert data["total"] == 1

    def test_slowest_overall_from_history(self, store: ResultStore):
        store.store(make_result(full_name="fast", time=10))
        store.store(make_result(full_name="slow", time=300))
        store.store(make_result(full_name="slow", time=100))
        reporter = ReportGenerator(store)
        report = reporter.generate([make_result()], "run")
        assert report.slowest_overall == [
            {"full_name": "slow", "avg_time_ms": 200.0},
            {"full_name": "fast", "avg_time_ms": 10.0},
        ]
        md = reporter.to_markdown(report)
        assert "## Slowest Overall" in md
        assert "| slow | 200ms |" in md
