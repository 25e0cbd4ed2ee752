"""CLI entry point for running browser tests in Chrome tabs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

from zenchrome.browser import ChromeBrowser
from zenchrome.config import ChromeConfig
from zenchrome.manifest import Manifest
from zenchrome.report import ReportGenerator
from zenchrome.results import DEFAULT_DB_PATH, ResultStore, row_to_result
from zenchrome.runner import TestRunner


def load_tests(path: str) -> list[dict]:
    """Read test descriptors; plain strings are treated as test names."""
    data = json.loads(Path(path).read_text())
    return [{"testName": t} if isinstance(t, str) else t for t in data]


def load_manifest(path: str) -> Manifest:
    return Manifest.from_dict(json.loads(Path(path).read_text()))


def _print_report(reporter: ReportGenerator, report, fmt: str):
    if fmt == "markdown":
        print(reporter.to_markdown(report))
    elif fmt == "json":
        print(reporter.to_json(report))
    else:
        print(reporter.to_text(report))


async def cmd_run(args: argparse.Namespace) -> int:
    """Open tabs, run the tests, store and print the results."""
    config = ChromeConfig.from_env(
        port=args.port,
        chrome_path=args.chrome_path,
        fail_on_exceptions=args.fail_on_exceptions or None,
        skip_hot_reload=args.skip_hot_reload or None,
        test_timeout=args.test_timeout,
    )
    manifest = load_manifest(args.manifest) if args.manifest else None
    url = args.url or (f"{manifest.proxy_url.rstrip('/')}/index.html" if manifest else None)
    if not url:
        print("Either --url or --manifest is required.")
        return 2
    tests = load_tests(args.tests)

    browser = ChromeBrowser(config)
    try:
        if args.connect:
            await browser.connect_to_running()
        else:
            await browser.launch()
        tabs = [
            await browser.open_tab(url, f"tab{i}", manifest) for i in range(args.tabs)
        ]

        runner = TestRunner(tabs)
        if args.code_hash:
            runner.set_code_hash(args.code_hash)

        print(f"Running {len(tests)} test(s) on {len(tabs)} tab(s)...\n")
        results = await runner.run_tests(tests)
    finally:
        await browser.close()

    store = ResultStore(args.db)
    reporter = ReportGenerator(store)
    # Compare against history before this run is added to it
    report = reporter.generate(results, args.name)
    run_group = args.name or uuid.uuid4().hex[:8]
    for result in results:
        store.store(result, run_group=run_group)

    _print_report(reporter, report, args.format)
    return 0 if report.failed == 0 else 1


async def cmd_report(args: argparse.Namespace) -> int:
    """Generate report from stored results."""
    store = ResultStore(args.db)
    recent = store.get_recent_results(last_n=args.last_n)

    if not recent:
        print("No test results found. Run tests first.")
        return 0

    reporter = ReportGenerator(store)
    report = reporter.generate([row_to_result(r) for r in recent], "stored")
    _print_report(reporter, report, args.format)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Run test bundles in Chrome tabs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="Result database path")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run tests")
    run_parser.add_argument("--tests", required=True, help="JSON list of tests")
    run_parser.add_argument("--url", help="Page that loads the test bundle")
    run_parser.add_argument("--manifest", help="Manifest JSON to serve the bundle from")
    run_parser.add_argument("--code-hash", help="Code version to hot reload before running")
    run_parser.add_argument("--tabs", type=int, default=1, help="Number of tabs")
    run_parser.add_argument("--port", type=int, help="Remote debugging port")
    run_parser.add_argument("--chrome-path", help="Chrome binary to launch")
    run_parser.add_argument(
        "--connect",
        action="store_true",
        help="Attach to an already running Chrome instead of launching one",
    )
    run_parser.add_argument("--fail-on-exceptions", action="store_true")
    run_parser.add_argument("--skip-hot-reload", action="store_true")
    run_parser.add_argument("--test-timeout", type=float, help="Seconds per test")
    run_parser.add_argument("--name", default="", help="Name for this run")
    run_parser.add_argument(
        "--format", choices=["text", "json", "markdown"], default="text"
    )

    report_parser = subparsers.add_parser(
        "report", help="Generate reports from stored results"
    )
    report_parser.add_argument(
        "--last-n", type=int, default=50, help="Number of recent results"
    )
    report_parser.add_argument(
        "--format", choices=["text", "json", "markdown"], default="markdown"
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        sys.exit(asyncio.run(cmd_run(args)))
    elif args.command == "report":
        sys.exit(asyncio.run(cmd_report(args)))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
