"""
SQLite-backed ``Store`` implementation.

Each public method opens its own short-lived connection via
``get_connection()`` and therefore runs in its own transaction. That makes
the store safe to call from the request threads, the sync worker and the
similarity pool at the same time, and it gives ``insert_recommendations``
its one-transaction-per-batch semantics.

``sqlite3.Error`` is re-raised as ``StoreError`` (cause chained) so callers
and the retry policy see one store failure type.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import timedelta
from typing import Generator, Optional, Sequence

from stock_recommender.config import DatabaseConfig
from stock_recommender.db.connection import get_connection
from stock_recommender.db.repositories.recommendation_repo import RecommendationRepository
from stock_recommender.db.schema import apply_schema
from stock_recommender.errors import StoreError
from stock_recommender.models.recommendation import FeatureVector, Recommendation

logger = logging.getLogger(__name__)


class SqliteStore:
    """Durable recommendation store on a single SQLite file.

    Attributes:
        db_path: Path to the database file.
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        if db_path == ":memory:":
            # Every call opens a fresh connection, so an in-memory DB would
            # be empty on each call.
            raise ValueError("SqliteStore needs a file path; ':memory:' is not shared.")
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "SqliteStore":
        return cls(
            db_path=config.db_path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    @contextmanager
    def _repo(self, operation: str) -> Generator[RecommendationRepository, None, None]:
        try:
            with get_connection(
                self.db_path,
                wal_mode=self.wal_mode,
                busy_timeout_ms=self.busy_timeout_ms,
            ) as conn:
                yield RecommendationRepository(conn)
        except sqlite3.Error as exc:
            logger.error("Store operation '%s' failed: %s", operation, exc)
            raise StoreError(f"{operation} failed: {exc}") from exc

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            with get_connection(
                self.db_path,
                wal_mode=self.wal_mode,
                busy_timeout_ms=self.busy_timeout_ms,
            ) as conn:
                apply_schema(conn)
        except sqlite3.Error as exc:
            raise StoreError(f"schema initialization failed: {exc}") from exc

    # ── Store protocol ────────────────────────────────────────────────────────

    def get_recent_recommendations(self, window: timedelta) -> list[Recommendation]:
        with self._repo("get_recent_recommendations") as repo:
            return repo.get_recent(window)

    def get_recommendations(
        self, ticker: str, page: int, limit: int
    ) -> tuple[list[Recommendation], int]:
        with self._repo("get_recommendations") as repo:
            return repo.get_page(ticker.strip().upper(), page, limit)

    def get_latest_recommendation(self) -> Optional[Recommendation]:
        with self._repo("get_latest_recommendation") as repo:
            return repo.get_latest()

    def insert_recommendations(self, batch: Sequence[Recommendation]) -> int:
        if not batch:
            return 0
        with self._repo("insert_recommendations") as repo:
            written = repo.upsert_many(batch)
        logger.debug("Upserted %d recommendations", written)
        return written

    def delete_all_recommendations(self) -> int:
        with self._repo("delete_all_recommendations") as repo:
            deleted = repo.delete_all()
        logger.info("Deleted %d stored recommendations", deleted)
        return deleted

    def get_available_tickers(self) -> list[str]:
        with self._repo("get_available_tickers") as repo:
            return repo.get_tickers()

    def get_stock_features(self, ticker: str) -> FeatureVector:
        with self._repo("get_stock_features") as repo:
            return repo.get_features(ticker.strip().upper())

    def get_all_stock_features(self) -> list[tuple[str, FeatureVector]]:
        """Feature vectors for every known ticker (one aggregate per ticker)."""
        with self._repo("get_all_stock_features") as repo:
            return [(t, repo.get_features(t)) for t in repo.get_tickers()]

    def ping(self) -> None:
        with self._repo("ping") as repo:
            repo.fetchone("SELECT 1;")
