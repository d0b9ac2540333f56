"""Build the blog with the site generator and publish it to the hosting branch.

This utility is the single entry point used both by operators and by the CI
workflow that runs on every push to the main branch. It resolves settings from
``.blogdeploy.yml``, the environment and the command line, runs the publisher
and prints a JSON summary as its final line.

Environment:
- GITHUB_ACTOR names the commit identity (``<actor>@users.noreply.github.com``).
- REPOSITORY (or BLOGDEPLOY_REMOTE_URL) overrides the push destination; it may
  embed a token, which is never logged.
- BLOGDEPLOY_LOG_LEVEL controls verbosity (default INFO).
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from blogdeploy.services.errors import ConfigurationError, PublishError
from blogdeploy.services.history import LocalSQLitePublishLog
from blogdeploy.services.publisher import WorktreePublisher
from blogdeploy.services.settings import PublisherSettings, load_settings
from blogdeploy.utils.text import redact_credentials, tail_lines

LOGGER = logging.getLogger("blogdeploy.publish")

if not LOGGER.handlers:  # avoid duplicates on re-import
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.INFO)
    LOGGER.propagate = False


def _configure_logging() -> None:
    """Configure root logging based on ``BLOGDEPLOY_LOG_LEVEL``."""
    level_name = os.getenv("BLOGDEPLOY_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    LOGGER.setLevel(level)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate the blog and force-push it to the hosting branch.")
    parser.add_argument(
        "message",
        nargs="?",
        default=None,
        help="Commit message for the published tree (default: 'publishing site <timestamp>').",
    )
    parser.add_argument(
        "--repo",
        default=os.getenv("BLOGDEPLOY_REPO", "."),
        help="Path to the authoring checkout (default from BLOGDEPLOY_REPO or the current directory).",
    )
    parser.add_argument("--config", default=None, help="YAML settings file (default: .blogdeploy.yml).")
    parser.add_argument("--remote", default=None, help="Remote name to push to (default: origin).")
    parser.add_argument("--target-branch", default=None, help="Hosting branch (default: gh-pages).")
    parser.add_argument("--output-dir", default=None, help="Generator output directory (default: public).")
    parser.add_argument("--history-db", default=None, help="Record the run in this SQLite database.")
    return parser.parse_args(argv)


def _load(args: argparse.Namespace) -> PublisherSettings:
    return load_settings(
        Path(args.repo),
        config_path=Path(args.config) if args.config else None,
        remote=args.remote,
        target_branch=args.target_branch,
        output_dir=args.output_dir,
        history_db=args.history_db,
    )


def _emit_summary(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, sort_keys=True))


def run(argv: list[str] | None = None) -> int:
    _configure_logging()
    args = _parse_args(argv)

    try:
        settings = _load(args)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        _emit_summary({"outcome": "failed", "error": "ConfigurationError", "message": str(exc)})
        return 1

    history = LocalSQLitePublishLog(settings.history_db) if settings.history_db else None
    publisher = WorktreePublisher(settings=settings)
    started_at = datetime.now(timezone.utc)

    try:
        result = publisher.publish(args.message)
    except PublishError as exc:
        message = redact_credentials(str(exc), settings.secrets)
        LOGGER.error("%s", message)
        if exc.output:
            LOGGER.error("%s", redact_credentials(tail_lines(exc.output, limit=50), settings.secrets))
        if history is not None:
            history.record_failure(exc, started_at=started_at, commit_message=args.message)
            history.close()
        _emit_summary({"outcome": "failed", "error": type(exc).__name__, "message": message})
        return exc.returncode

    if history is not None:
        history.record_success(result, started_at=started_at)
        history.close()

    if result.committed:
        LOGGER.info("Published %s at %s", result.target_branch, result.commit_hash)
    else:
        LOGGER.warning("No changes to publish; %s already matches the generated site.", result.target_branch)
    _emit_summary(result.to_dict())
    return 0


def main() -> None:  # pragma: no cover - console script entry point
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
