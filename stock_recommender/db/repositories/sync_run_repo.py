"""
Repository for ``sync_runs``, the audit trail of full / incremental syncs.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from stock_recommender.db.repositories.base import BaseRepository
from stock_recommender.models.sync import SyncRun
from stock_recommender.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class SyncRunRepository(BaseRepository):
    """Read/write access to ``sync_runs``."""

    def insert_run(self, run: SyncRun) -> int:
        """Insert a new run record and return its ``run_id``."""
        self.execute(
            """
            INSERT INTO sync_runs (
                run_slug, mode, status, rows_written,
                error_message, started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                run.run_slug,
                run.mode,
                run.status,
                run.rows_written,
                run.error_message,
                to_db_timestamp(run.started_at),
                to_db_timestamp(run.finished_at) if run.finished_at else None,
            ),
        )
        return self.last_insert_rowid()

    def update_run(self, run: SyncRun) -> None:
        """Update the mutable fields of an existing run.

        Raises:
            ValueError: If ``run.run_id`` is ``None``.
        """
        if run.run_id is None:
            raise ValueError("Cannot update SyncRun without a run_id.")
        self.execute(
            """
            UPDATE sync_runs SET
                status        = ?,
                rows_written  = ?,
                error_message = ?,
                finished_at   = ?
            WHERE run_id = ?;
            """,
            (
                run.status,
                run.rows_written,
                run.error_message,
                to_db_timestamp(run.finished_at) if run.finished_at else None,
                run.run_id,
            ),
        )

    def get_recent_runs(self, mode: Optional[str] = None, limit: int = 20) -> list[SyncRun]:
        """Fetch recent runs, most recent first, optionally filtered by mode."""
        if mode:
            rows = self.fetchall(
                """
                SELECT * FROM sync_runs
                WHERE mode = ?
                ORDER BY started_at DESC, run_id DESC LIMIT ?;
                """,
                (mode, limit),
            )
        else:
            rows = self.fetchall(
                "SELECT * FROM sync_runs ORDER BY started_at DESC, run_id DESC LIMIT ?;",
                (limit,),
            )
        return [_row_to_run(r) for r in rows]


def _row_to_run(row: sqlite3.Row) -> SyncRun:
    return SyncRun(
        run_id=row["run_id"],
        run_slug=row["run_slug"],
        mode=row["mode"],
        status=row["status"],
        rows_written=row["rows_written"],
        error_message=row["error_message"],
        started_at=from_db_timestamp(row["started_at"]),
        finished_at=(
            from_db_timestamp(row["finished_at"]) if row["finished_at"] else None
        ),
    )
