"""SQLite-backed ledger of publish runs.

The CLI and the webhook app append one row per run so operators can see what
was pushed and why a run failed without digging through CI logs.

Default location (if not provided):  ~/blogdeploy/data/history.db
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sqlite3
import threading
from typing import Final

from blogdeploy.models.publisher import PublicationResult, PublishRecord
from blogdeploy.services.errors import PublishError


DEFAULT_DB_PATH: Final[Path] = Path.home() / "blogdeploy" / "data" / "history.db"
DEFAULT_TABLE: Final[str] = "publish_runs"


def _to_iso8601(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso8601(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class LocalSQLitePublishLog:
    """Append-only store of :class:`PublishRecord` rows."""

    def __init__(self, db_path: str | Path | None = None, *, table: str = DEFAULT_TABLE) -> None:
        self._db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._table = table
        self._lock = threading.Lock()

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute("PRAGMA journal_mode = WAL;")
        self._bootstrap()

    @property
    def db_path(self) -> Path:
        return self._db_path

    # --- schema ----------------------------------------------------------------

    def _bootstrap(self) -> None:
        """Create the runs table and its ordering index if they don't exist."""
        with self._conn:
            self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    started_at TEXT NOT NULL,
                    finished_at TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    commit_message TEXT,
                    commit_hash TEXT,
                    error_type TEXT,
                    error TEXT
                );
                """
            )
            self._conn.execute(
                f"""CREATE INDEX IF NOT EXISTS idx_{self._table}_finished
                    ON {self._table}(finished_at DESC);"""
            )

    # --- writes ------------------------------------------------------------------

    def record_success(self, result: PublicationResult, *, started_at: datetime) -> PublishRecord:
        """Store a successful (or unchanged) publish."""

        record = PublishRecord(
            id=None,
            started_at=started_at,
            finished_at=result.published_at,
            outcome=result.outcome,
            commit_message=result.commit_message,
            commit_hash=result.commit_hash,
        )
        return self._insert(record)

    def record_failure(
        self,
        error: PublishError,
        *,
        started_at: datetime,
        commit_message: str | None = None,
    ) -> PublishRecord:
        """Store a failed publish together with the error that aborted it."""

        record = PublishRecord(
            id=None,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            outcome="failed",
            commit_message=commit_message,
            error_type=type(error).__name__,
            error=str(error),
        )
        return self._insert(record)

    def _insert(self, record: PublishRecord) -> PublishRecord:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                f"""
                INSERT INTO {self._table}
                    (started_at, finished_at, outcome, commit_message, commit_hash, error_type, error)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    _to_iso8601(record.started_at),
                    _to_iso8601(record.finished_at),
                    record.outcome,
                    record.commit_message,
                    record.commit_hash,
                    record.error_type,
                    record.error,
                ),
            )
        record.id = int(cursor.lastrowid)
        return record

    # --- reads -------------------------------------------------------------------

    def latest(self, *, limit: int = 10) -> list[PublishRecord]:
        """Return the newest runs first."""
        rows = self._conn.execute(
            f"""
            SELECT id, started_at, finished_at, outcome, commit_message, commit_hash, error_type, error
            FROM {self._table}
            ORDER BY finished_at DESC, id DESC
            LIMIT ?;
            """,
            (int(limit),),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PublishRecord:
        return PublishRecord(
            id=row["id"],
            started_at=_from_iso8601(row["started_at"]),
            finished_at=_from_iso8601(row["finished_at"]),
            outcome=row["outcome"],
            commit_message=row["commit_message"],
            commit_hash=row["commit_hash"],
            error_type=row["error_type"],
            error=row["error"],
        )

    def close(self) -> None:
        self._conn.close()


__all__ = ["DEFAULT_DB_PATH", "LocalSQLitePublishLog"]
