"""Tests for zenchrome.cli helpers and commands that need no browser."""

import argparse
import json

import pytest

from zenchrome import cli
from zenchrome.results import ResultStore
from zenchrome.tab import TestResult


class TestLoaders:
    def test_load_tests_accepts_names_and_descriptors(self, tmp_path):
        path = tmp_path / "tests.json"
        path.write_text(json.dumps(["math adds", {"testName": "dom", "grep": "x"}]))
        assert cli.load_tests(str(path)) == [
            {"testName": "math adds"},
            {"testName": "dom", "grep": "x"},
        ]

    def test_load_manifest(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text(
            json.dumps(
                {
                    "proxyUrl": "http://zen.local",
                    "index": "<html/>",
                    "files": {"/a.js": "k"},
                    "storageBaseUrl": "https://cdn",
                }
            )
        )
        manifest = cli.load_manifest(str(path))
        assert manifest.proxy_url == "http://zen.local"
        assert manifest.lookup("a.js") == "k"


class TestCommands:
    @pytest.mark.asyncio
    async def test_report_without_results(self, tmp_path, capsys):
        args = argparse.Namespace(db=str(tmp_path / "r.db"), last_n=10, format="markdown")
        assert await cli.cmd_report(args) == 0
        assert "No test results found" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_report_from_store(self, tmp_path, capsys):
        db = tmp_path / "r.db"
        ResultStore(db).store(TestResult(run_id=1, full_name="math", time=5))
        args = argparse.Namespace(db=str(db), last_n=10, format="markdown")
        assert await cli.cmd_report(args) == 0
        assert "1/1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_run_requires_url_or_manifest(self, tmp_path, capsys):
        tests = tmp_path / "tests.json"
        tests.write_text("[]")
        args = argparse.Namespace(
            db=str(tmp_path / "r.db"),
            tests=str(tests),
            url=None,
            manifest=None,
            code_hash=None,
            tabs=1,
            port=None,
            chrome_path=None,
            connect=False,
            fail_on_exceptions=False,
            skip_hot_reload=False,
            test_timeout=None,
            name="",
            format="text",
        )
        assert await cli.cmd_run(args) == 2
