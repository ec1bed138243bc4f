"""SQLiteRunStore — local file-based run history.

Schema:
  runs — one row per completed review run. Open fingerprints are kept as a
         JSON array column; they are only ever read back whole.
"""

from __future__ import annotations

import json
import sqlite3

from prwarden_store.base import RunHistoryStore
from prwarden_store.models import RunRecord

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    repo              TEXT NOT NULL,
    pr_number         INTEGER NOT NULL,
    iteration_id      INTEGER NOT NULL,
    reviewed_at       TEXT,
    vote              TEXT,
    error_count       INTEGER DEFAULT 0,
    warning_count     INTEGER DEFAULT 0,
    warn_budget       INTEGER DEFAULT 0,
    created           INTEGER DEFAULT 0,
    retriggered       INTEGER DEFAULT 0,
    resolved          INTEGER DEFAULT 0,
    failed            INTEGER DEFAULT 0,
    dry_run           INTEGER DEFAULT 0,
    fingerprints_json TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_runs_repo ON runs (repo);
CREATE INDEX IF NOT EXISTS idx_runs_pr   ON runs (repo, pr_number);
"""


class SQLiteRunStore(RunHistoryStore):
    """Stores run history in a local SQLite database file.

    The database file path defaults to `.prwarden.db` in the current working
    directory. Configure via .prwarden.yml: `history_path: /path/to/prwarden.db`.
    """

    def __init__(self, db_path: str = ".prwarden.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: RunRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO runs
              (repo, pr_number, iteration_id, reviewed_at, vote, error_count, warning_count,
               warn_budget, created, retriggered, resolved, failed, dry_run, fingerprints_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.repo,
                record.pr_number,
                record.iteration_id,
                record.reviewed_at,
                record.vote,
                record.error_count,
                record.warning_count,
                record.warn_budget,
                record.created,
                record.retriggered,
                record.resolved,
                record.failed,
                int(record.dry_run),
                json.dumps(record.open_fingerprints),
            ),
        )
        self._conn.commit()

    def list_runs(self, repo: str, pr_number: int | None = None) -> list[RunRecord]:
        if pr_number is not None:
            rows = self._conn.execute(
                "SELECT * FROM runs WHERE repo=? AND pr_number=? ORDER BY reviewed_at, id",
                (repo, pr_number),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM runs WHERE repo=? ORDER BY reviewed_at, id",
                (repo,),
            ).fetchall()

        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            repo=row["repo"],
            pr_number=row["pr_number"],
            iteration_id=row["iteration_id"],
            reviewed_at=row["reviewed_at"] or "",
            vote=row["vote"] or "",
            error_count=row["error_count"],
            warning_count=row["warning_count"],
            warn_budget=row["warn_budget"],
            created=row["created"],
            retriggered=row["retriggered"],
            resolved=row["resolved"],
            failed=row["failed"],
            dry_run=bool(row["dry_run"]),
            open_fingerprints=json.loads(row["fingerprints_json"] or "[]"),
        )
