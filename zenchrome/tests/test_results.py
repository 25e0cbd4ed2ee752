"""Tests for zenchrome.results."""

import json
from pathlib import Path

import pytest

from zenchrome.results import ResultStore, row_to_result
from zenchrome.tab import TestResult


@pytest.fixture
def store(tmp_path: Path) -> ResultStore:
    return ResultStore(db_path=tmp_path / "test.db")


def make_result(**overrides) -> TestResult:
    defaults = dict(
        run_id=1,
        full_name="math adds",
        error=None,
        stack=None,
        time=120,
    )
    defaults.update(overrides)
    return TestResult(**defaults)


class TestResultStore:
    def test_init_creates_db(self, tmp_path: Path):
        db_path = tmp_path / "sub" / "test.db"
        ResultStore(db_path=db_path)
        assert db_path.exists()

    def test_store_and_retrieve(self, store: ResultStore):
        store.store(make_result(), run_group="group-1", timestamp=1000.0)
        rows = store.get_recent_results(full_name="math adds")
        assert len(rows) == 1
        assert rows[0]["full_name"] == "math adds"
        assert rows[0]["passed"] == 1
        assert rows[0]["time_ms"] == 120
        assert rows[0]["run_group"] == "group-1"

    def test_store_failed_result(self, store: ResultStore):
        store.store(make_result(error="expected 1 to equal 2", stack="it t.js:3"))
        row = store.get_recent_results()[0]
        assert row["passed"] == 0
        assert row["error"] == "expected 1 to equal 2"
        assert row["stack"] == "it t.js:3"

    def test_extra_fields_round_trip(self, store: ResultStore):
        store.store(make_result(extra={"log": ["hi"]}))
        row = store.get_recent_results()[0]
        assert json.loads(row["extra"]) == {"log": ["hi"]}
        result = row_to_result(row)
        assert result.extra == {"log": ["hi"]}
        assert result.run_id == "1"

    def test_get_pass_rate(self, store: ResultStore):
        for i in range(3):
            store.store(make_result(), timestamp=1000.0 + i)
        store.store(make_result(error="boom"), timestamp=1003.0)
        assert store.get_pass_rate("math adds") == 0.75

    def test_get_pass_rate_empty(self, store: ResultStore):
        assert store.get_pass_rate("nonexistent") == 0.0

    def test_get_slowest(self, store: ResultStore):
        store.store(make_result(full_name="fast", time=10))
        store.store(make_result(full_name="slow", time=900))
        store.store(make_result(full_name="slow", time=1100))
        slowest = store.get_slowest()
        assert slowest[0] == ("slow", 1000.0)
        assert slowest[1] == ("fast", 10.0)

    def test_get_recent_results_limit(self, store: ResultStore):
        for i in range(10):
            store.store(make_result(run_id=i), timestamp=1000.0 + i)
        rows = store.get_recent_results(last_n=3)
        assert [r["run_id"] for r in rows] == ["9", "8", "7"]
