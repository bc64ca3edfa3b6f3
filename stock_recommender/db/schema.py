"""
SQLite schema DDL.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent:
safe to call on every process start and in every test.

Tables:
  1. recommendations - one row per (ticker, time); upsert target of syncs.
  2. sync_runs       - audit log of full / incremental sync executions.

Timestamps are fixed-width UTC text (see ``utils.time_utils``) so that
lexical ordering equals chronological ordering.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS recommendations (
    ticker       TEXT    NOT NULL,
    target_from  TEXT    NOT NULL DEFAULT '',
    target_to    TEXT    NOT NULL DEFAULT '',
    company      TEXT    NOT NULL DEFAULT '',
    action       TEXT    NOT NULL DEFAULT '',
    brokerage    TEXT    NOT NULL DEFAULT '',
    rating_from  TEXT    NOT NULL DEFAULT '',
    rating_to    TEXT    NOT NULL DEFAULT '',
    time         TEXT    NOT NULL,
    PRIMARY KEY (ticker, time)
);
CREATE INDEX IF NOT EXISTS idx_recommendations_ticker ON recommendations (ticker);
CREATE INDEX IF NOT EXISTS idx_recommendations_time   ON recommendations (time);
"""

_DDL_SYNC_RUNS = """
CREATE TABLE IF NOT EXISTS sync_runs (
    run_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug       TEXT    NOT NULL UNIQUE,
    mode           TEXT    NOT NULL CHECK (mode IN ('full', 'incremental')),
    status         TEXT    NOT NULL CHECK (status IN ('started', 'success', 'failed')),
    rows_written   INTEGER NOT NULL DEFAULT 0,
    error_message  TEXT,
    started_at     TEXT    NOT NULL,
    finished_at    TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_runs_started ON sync_runs (started_at);
"""

_ALL_DDL = [_DDL_RECOMMENDATIONS, _DDL_SYNC_RUNS]

ALL_TABLE_NAMES = ["recommendations", "sync_runs"]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent; safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
