"""
Shared pytest fixtures for the stock recommender test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``sqlite_store``: A file-backed ``SqliteStore`` under ``tmp_path``.
  - ``app_config``: An ``AppConfig`` pointing at ``tmp_path`` with every
    sync delay set to 0.
  - ``FakeFeed`` / ``FakeStore``: in-memory collaborators that record calls
    and can be told to fail.
  - ``make_rec``: factory for ``Recommendation`` objects.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, Optional, Sequence

import pytest

from stock_recommender.config import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    SyncConfig,
)
from stock_recommender.db.schema import apply_schema
from stock_recommender.db.store import SqliteStore
from stock_recommender.errors import FeedError, StoreError
from stock_recommender.models.recommendation import (
    FeatureVector,
    FeedPage,
    Recommendation,
)
from stock_recommender.utils.time_utils import utcnow

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeFeed:
    """Serves a fixed list of pages; page tokens are the page index as text.

    ``failures`` makes the next N ``get_page`` calls raise ``FeedError``.
    """

    def __init__(
        self, pages: Sequence[Sequence[Recommendation]] = (), failures: int = 0
    ) -> None:
        self.pages = [list(p) for p in pages]
        self.failures = failures
        self.calls: list[str] = []

    def get_page(self, page_token: str = "") -> FeedPage:
        self.calls.append(page_token)
        if self.failures:
            self.failures -= 1
            raise FeedError("feed unavailable", status_code=503)
        if not self.pages:
            return FeedPage(items=[], next_page="")
        index = int(page_token) if page_token else 0
        next_page = str(index + 1) if index + 1 < len(self.pages) else ""
        return FeedPage(items=self.pages[index], next_page=next_page)


class FakeStore:
    """Dict-backed ``Store`` keyed on ``(ticker, time)``.

    ``insert_failures`` makes the next N inserts raise ``StoreError``.
    """

    def __init__(
        self,
        recommendations: Sequence[Recommendation] = (),
        features: Optional[dict[str, FeatureVector]] = None,
    ) -> None:
        self.rows: dict = {r.key: r for r in recommendations}
        self.features = dict(features or {})
        self.insert_batches: list[int] = []
        self.insert_failures = 0
        self.delete_calls = 0
        self.recent_calls = 0
        self.feature_calls = 0

    def _newest_first(self) -> list[Recommendation]:
        return sorted(self.rows.values(), key=lambda r: r.time, reverse=True)

    def get_recent_recommendations(self, window: timedelta) -> list[Recommendation]:
        self.recent_calls += 1
        cutoff = utcnow() - window
        return [r for r in self._newest_first() if r.time > cutoff]

    def get_recommendations(
        self, ticker: str, page: int, limit: int
    ) -> tuple[list[Recommendation], int]:
        ticker = ticker.strip().upper()
        items = [r for r in self._newest_first() if not ticker or r.ticker == ticker]
        start = (page - 1) * limit
        return items[start:start + limit], len(items)

    def get_latest_recommendation(self) -> Optional[Recommendation]:
        ordered = self._newest_first()
        return ordered[0] if ordered else None

    def insert_recommendations(self, batch: Sequence[Recommendation]) -> int:
        if self.insert_failures:
            self.insert_failures -= 1
            raise StoreError("insert_recommendations failed: database is locked")
        self.insert_batches.append(len(batch))
        for rec in batch:
            self.rows[rec.key] = rec
        return len(batch)

    def delete_all_recommendations(self) -> int:
        self.delete_calls += 1
        deleted = len(self.rows)
        self.rows.clear()
        return deleted

    def get_available_tickers(self) -> list[str]:
        return sorted({r.ticker for r in self.rows.values()})

    def get_stock_features(self, ticker: str) -> FeatureVector:
        self.feature_calls += 1
        return dict(self.features.get(ticker, {}))

    def get_all_stock_features(self) -> list[tuple[str, FeatureVector]]:
        return [(t, dict(v)) for t, v in sorted(self.features.items())]

    def ping(self) -> None:
        return None


# ── Factories ─────────────────────────────────────────────────────────────────

@pytest.fixture
def make_rec() -> Callable[..., Recommendation]:
    """Return a factory building a ``Recommendation`` with sensible defaults."""

    def _make(
        ticker: str = "AAPL",
        time: Optional[datetime] = None,
        hours_ago: Optional[float] = None,
        **fields,
    ) -> Recommendation:
        if time is None:
            time = utcnow() - timedelta(hours=hours_ago if hours_ago is not None else 1)
        values = dict(
            target_from="$150.00",
            target_to="$175.00",
            company=f"{ticker} Inc.",
            action="target raised by",
            brokerage="Goldman Sachs",
            rating_from="Neutral",
            rating_to="Buy",
        )
        values.update(fields)
        return Recommendation(ticker=ticker, time=time, **values)

    return _make


@pytest.fixture
def sample_recommendation() -> Recommendation:
    """A valid ``Recommendation`` at ``FIXED_NOW``."""
    return Recommendation(
        ticker="AAPL",
        target_from="$150.00",
        target_to="$175.00",
        company="Apple Inc.",
        action="target raised by",
        brokerage="Goldman Sachs",
        rating_from="Neutral",
        rating_to="Buy",
        time=FIXED_NOW,
    )


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_store(tmp_path) -> SqliteStore:
    """An initialized file-backed store in the test's temp directory."""
    store = SqliteStore(str(tmp_path / "store.db"))
    store.initialize()
    return store


@pytest.fixture
def fast_sync_config() -> SyncConfig:
    """Sync settings with every delay at 0."""
    return SyncConfig(
        batch_size=100,
        full_sync_page_delay_seconds=0,
        incremental_page_delay_seconds=0,
        batch_delay_seconds=0,
        max_retries=2,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
        worker_interval_seconds=0.01,
        bootstrap_timeout_seconds=5,
    )


@pytest.fixture
def app_config(tmp_path, fast_sync_config: SyncConfig) -> AppConfig:
    """An ``AppConfig`` rooted in ``tmp_path`` with zero sync delays."""
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "app.db")),
        sync=fast_sync_config,
        logging=LoggingConfig(log_file=str(tmp_path / "logs" / "test.log")),
    )
