"""Report generation for test runs."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

from zenchrome.results import ResultStore
from zenchrome.tab import TestResult


@dataclass
class RunReport:
    """Summary of one batch of test results."""

    name: str
    total: int
    passed: int
    failed: int
    pass_rate: float
    total_time_ms: int
    avg_time_ms: float
    failures: list[dict[str, Any]]
    slowest: list[dict[str, Any]]
    slowest_overall: list[dict[str, Any]]
    regressions: list[dict[str, Any]]


class ReportGenerator:
    """Generates reports from test results."""

    def __init__(self, store: ResultStore, slowest_n: int = 5):
        self.store = store
        self.slowest_n = slowest_n

    def generate(self, results: list[TestResult], name: str = "") -> RunReport:
        total = len(results)
        passed = sum(1 for r in results if r.passed)
        total_time = sum(r.time for r in results)

        failures = [
            {
                "run_id": r.run_id,
                "full_name": r.full_name,
                "error": r.error,
                "stack": r.stack,
            }
            for r in results
            if not r.passed
        ]

        slowest = [
            {"full_name": r.full_name, "time_ms": r.time}
            for r in sorted(results, key=lambda r: r.time, reverse=True)[: self.slowest_n]
        ]

        # Across every stored run, not just this one
        slowest_overall = [
            {"full_name": test_name, "avg_time_ms": avg_ms}
            for test_name, avg_ms in self.store.get_slowest(self.slowest_n)
        ]

        # Regressions: tests that usually pass but failed now
        regressions = []
        for r in results:
            if not r.passed and r.full_name:
                historical_rate = self.store.get_pass_rate(r.full_name)
                if historical_rate > 0.7:
                    regressions.append(
                        {
                            "full_name": r.full_name,
                            "historical_pass_rate": historical_rate,
                            "error": r.error,
                        }
                    )

        return RunReport(
            name=name,
            total=total,
            passed=passed,
            failed=total - passed,
            pass_rate=passed / total if total > 0 else 0,
            total_time_ms=total_time,
            avg_time_ms=total_time / total if total > 0 else 0,
            failures=failures,
            slowest=slowest,
            slowest_overall=slowest_overall,
            regressions=regressions,
        )

    def to_text(self, report: RunReport) -> str:
        lines = [
            "=" * 50,
            f"Results: {report.passed}/{report.total} passed ({report.pass_rate:.0%})",
            f"Total time: {report.total_time_ms / 1000:.1f}s",
        ]
        for f in report.failures:
            lines.append(f"  FAIL {f['full_name']}: {f['error']}")
        return "\n".join(lines)

    def to_markdown(self, report: RunReport) -> str:
        """Render report as Markdown."""
        lines = [
            f"# Test Report: {report.name}",
            "",
            f"**Pass Rate:** {report.passed}/{report.total} ({report.pass_rate:.0%})",
            f"**Total Time:** {report.total_time_ms / 1000:.1f}s",
            f"**Avg Time/Test:** {report.avg_time_ms:.0f}ms",
        ]

        if report.slowest:
            lines.extend(
                ["", "## Slowest", "", "| Test | Time |", "|------|------|"]
            )
            for s in report.slowest:
                lines.append(f"| {s['full_name']} | {s['time_ms']}ms |")

        if report.slowest_overall:
            lines.extend(
                ["", "## Slowest Overall", "", "| Test | Avg Time |", "|------|----------|"]
            )
            for s in report.slowest_overall:
                lines.append(f"| {s['full_name']} | {s['avg_time_ms']:.0f}ms |")

        if report.failures:
            lines.extend(["", "## Failures", ""])
            for f in report.failures:
                lines.append(f"- **{f['full_name']}** (run {f['run_id']}): {f['error']}")

        if report.regressions:
            lines.extend(["", "## Regressions", ""])
            for r in report.regressions:
                lines.append(
                    f"- **{r['full_name']}**: was passing "
                    f"{r['historical_pass_rate']:.0%}, now failing: {r['error']}"
                )

        return "\n".join(lines)

    def to_json(self, report: RunReport) -> str:
        """Render report as JSON."""
        return json.dumps(asdict(report), indent=2)
