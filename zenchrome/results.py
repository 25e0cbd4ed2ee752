"""Storage for test results across runs."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any

from zenchrome.tab import TestResult

DEFAULT_DB_PATH = ".zen/results.db"


class ResultStore:
    """Keeps test results in SQLite so runs can be compared over time."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_group TEXT,
                    run_id TEXT,
                    full_name TEXT,
                    passed BOOLEAN,
                    error TEXT,
                    stack TEXT,
                    time_ms INTEGER,
                    extra TEXT,
                    timestamp REAL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_results_name ON results(full_name)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_results_timestamp ON results(timestamp)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_results_group ON results(run_group)"
            )
            conn.commit()
        finally:
            conn.close()

    def store(
        self,
        result: TestResult,
        run_group: str | None = None,
        timestamp: float | None = None,
    ):
        """Store a test result in the database."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute(
                """INSERT INTO results (
                    run_group, run_id, full_name, passed, error, stack,
                    time_ms, extra, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    run_group,
                    str(result.run_id),
                    result.full_name,
                    result.passed,
                    result.error,
                    result.stack,
                    result.time,
                    json.dumps(result.extra),
                    timestamp if timestamp is not None else time.time(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_pass_rate(self, full_name: str, last_n: int = 10) -> float:
        """Get pass rate for a test over its last N results."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cursor = conn.execute(
                "SELECT passed FROM results WHERE full_name = ? ORDER BY timestamp DESC LIMIT ?",
                (full_name, last_n),
            )
            rows = cursor.fetchall()
        finally:
            conn.close()
        if not rows:
            return 0.0
        return sum(1 for r in rows if r[0]) / len(rows)

    def get_slowest(self, last_n: int = 10) -> list[tuple[str, float]]:
        """Average duration per test name, slowest first."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cursor = conn.execute(
                "SELECT full_name, AVG(time_ms) AS avg_ms FROM results "
                "GROUP BY full_name ORDER BY avg_ms DESC LIMIT ?",
                (last_n,),
            )
            rows = cursor.fetchall()
        finally:
            conn.close()
        return [(r[0], r[1]) for r in rows]

    def get_recent_results(
        self, full_name: str | None = None, last_n: int = 20
    ) -> list[dict[str, Any]]:
        """Get recent results, optionally filtered by test name."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.row_factory = sqlite3.Row
            if full_name:
                cursor = conn.execute(
                    "SELECT * FROM results WHERE full_name = ? ORDER BY timestamp DESC LIMIT ?",
                    (full_name, last_n),
                )
            else:
                cursor = conn.execute(
                    "SELECT * FROM results ORDER BY timestamp DESC LIMIT ?",
                    (last_n,),
                )
            rows = [dict(r) for r in cursor.fetchall()]
        finally:
            conn.close()
        return rows


def row_to_result(row: dict[str, Any]) -> TestResult:
    """Convert a stored row back into a TestResult."""
    return TestResult(
        run_id=row["run_id"],
        full_name=row["full_name"],
        error=row["error"],
        stack=row["stack"],
        time=row["time_ms"] or 0,
        extra=json.loads(row["extra"] or "{}"),
    )
