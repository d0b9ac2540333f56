"""Integration-style tests for the publish CLI runner."""

from __future__ import annotations

import json
import os
from pathlib import Path
import shlex
import sys
from typing import Any

import pytest

from blogdeploy.scripts import publish
from blogdeploy.services.history import LocalSQLitePublishLog
from blogdeploy.tests.helpers import BlogCheckout, branch_exists, git


def _json_from_stdout(output: str) -> dict[str, Any]:
    """Return the final JSON object emitted by the CLI."""

    lines = [line for line in output.splitlines() if line.strip()]
    json_line = next(line for line in reversed(lines) if line.lstrip().startswith("{"))
    return json.loads(json_line)


@pytest.fixture()
def cli_env(monkeypatch: pytest.MonkeyPatch, blog: BlogCheckout) -> BlogCheckout:
    """Point the CLI at the test checkout through the environment, as CI does."""

    for key in list(os.environ):
        if key.startswith("BLOGDEPLOY_") or key in {"REPOSITORY", "GITHUB_ACTOR"}:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GITHUB_ACTOR", "ci-bot")
    monkeypatch.setenv("BLOGDEPLOY_GENERATOR", shlex.join([sys.executable, str(blog.generator_script)]))
    monkeypatch.setenv("BLOGDEPLOY_SYNC_SUBMODULES", "false")
    return blog


def test_cli_publishes_with_message_argument(cli_env: BlogCheckout, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = publish.run(["release v1", "--repo", str(cli_env.source)])

    assert exit_code == 0
    summary = _json_from_stdout(capsys.readouterr().out)
    assert summary["outcome"] == "published"
    assert summary["commit_message"] == "release v1"
    assert summary["target_branch"] == "gh-pages"
    newest = git("log", "-1", "--pretty=%B", "refs/heads/gh-pages", cwd=cli_env.remote).stdout.strip()
    assert newest == "release v1"


def test_cli_reports_unchanged_site_as_success(cli_env: BlogCheckout, capsys: pytest.CaptureFixture[str]) -> None:
    assert publish.run(["--repo", str(cli_env.source)]) == 0
    capsys.readouterr()

    assert publish.run(["--repo", str(cli_env.source)]) == 0

    summary = _json_from_stdout(capsys.readouterr().out)
    assert summary["outcome"] == "unchanged"
    assert summary["committed"] is False
    assert summary["commit_message"].startswith("publishing site ")


def test_cli_exits_non_zero_on_dirty_tree(cli_env: BlogCheckout, capsys: pytest.CaptureFixture[str]) -> None:
    (cli_env.source / "content" / "hello.md").write_text("work in progress\n", encoding="utf-8")

    exit_code = publish.run(["--repo", str(cli_env.source)])

    assert exit_code == 1
    summary = _json_from_stdout(capsys.readouterr().out)
    assert summary == {
        "error": "DirtyWorkingTree",
        "message": "Working tree has uncommitted changes; commit or stash them before publishing",
        "outcome": "failed",
    }
    assert not branch_exists(cli_env.remote, "gh-pages")


def test_cli_propagates_generator_exit_code(
    cli_env: BlogCheckout,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("BLOGDEPLOY_GENERATOR", shlex.join([sys.executable, "-c", "raise SystemExit(4)"]))

    exit_code = publish.run(["--repo", str(cli_env.source)])

    assert exit_code == 4
    assert _json_from_stdout(capsys.readouterr().out)["error"] == "GenerationFailed"
    assert not branch_exists(cli_env.remote, "gh-pages")


def test_cli_records_history_when_configured(
    tmp_path: Path, cli_env: BlogCheckout, capsys: pytest.CaptureFixture[str]
) -> None:
    db_path = tmp_path / "history.db"

    assert publish.run(["release v3", "--repo", str(cli_env.source), "--history-db", str(db_path)]) == 0

    records = LocalSQLitePublishLog(db_path).latest()
    assert [record.outcome for record in records] == ["published"]
    assert records[0].commit_message == "release v3"


def test_cli_rejects_invalid_configuration(
    cli_env: BlogCheckout, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("BLOGDEPLOY_OUTPUT_DIR", "../outside")

    assert publish.run(["--repo", str(cli_env.source)]) == 1
    assert _json_from_stdout(capsys.readouterr().out)["error"] == "ConfigurationError"
