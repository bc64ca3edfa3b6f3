"""
Recommendation service facade.

``RecommendationService`` is the one object callers (the CLI, the sync
worker, an HTTP layer) talk to. It wires the store, the feed, both caches and
the synchronizer together and adds:

  - a ``sync_runs`` audit row per sync (``started`` → ``success``/``failed``),
  - ``SyncError`` wrapping of sync failures (original error chained),
  - the paged recommendation listing with its lenient page/limit rules.

Usage::

    config = load_config()
    with build_service(config) as service:
        run = service.incremental_sync()
        best = service.get_best_stocks(10)
"""

from __future__ import annotations

import logging
from typing import Callable, Optional
from uuid import uuid4

from stock_recommender.config import AppConfig
from stock_recommender.db.connection import get_connection
from stock_recommender.db.repositories.sync_run_repo import SyncRunRepository
from stock_recommender.db.store import SqliteStore
from stock_recommender.errors import SyncError
from stock_recommender.interfaces import FeedSource, Store
from stock_recommender.models.recommendation import Recommendation, SimilarStock
from stock_recommender.models.sync import SyncRun
from stock_recommender.recommendations.best_stocks import BestStocksCache
from stock_recommender.recommendations.similarity import SimilarityEngine
from stock_recommender.sync.synchronizer import Synchronizer
from stock_recommender.utils.cancel import CancelToken
from stock_recommender.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


class RecommendationService:
    """Facade over sync, ranking and lookup operations.

    Args:
        config: Application configuration.
        store: Recommendation store.
        feed: External feed; ``None`` disables the sync operations.
    """

    def __init__(
        self,
        config: AppConfig,
        store: Store,
        feed: Optional[FeedSource] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.feed = feed
        self.best_stocks = BestStocksCache(store, config.scoring)
        self.similarity = SimilarityEngine(store, config.similarity)
        self.synchronizer: Optional[Synchronizer] = None
        if feed is not None:
            self.synchronizer = Synchronizer(
                feed,
                store,
                config.sync,
                max_pages=config.feed.max_pages,
                invalidators=(self.best_stocks.invalidate, self.similarity.invalidate),
            )

    def close(self) -> None:
        close = getattr(self.feed, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "RecommendationService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Sync ──────────────────────────────────────────────────────────────────

    def sync_recommendations(self, token: Optional[CancelToken] = None) -> SyncRun:
        """Run a full sync and record it in ``sync_runs``.

        Raises:
            SyncError: The sync failed; the cause is chained.
        """
        return self._run_sync("full", lambda s: s.full_sync(token))

    def incremental_sync(self, token: Optional[CancelToken] = None) -> SyncRun:
        """Run an incremental sync and record it in ``sync_runs``.

        Raises:
            SyncError: The sync failed; the cause is chained.
        """
        return self._run_sync("incremental", lambda s: s.incremental_sync(token))

    def recent_sync_runs(self, limit: int = 20, mode: Optional[str] = None) -> list[SyncRun]:
        with get_connection(
            self.config.database.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            return SyncRunRepository(conn).get_recent_runs(mode=mode, limit=limit)

    # ── Ranking ───────────────────────────────────────────────────────────────

    def get_best_stocks(
        self, limit: int, token: Optional[CancelToken] = None
    ) -> list[Recommendation]:
        return self.best_stocks.get_best_stocks(limit, token)

    def find_similar_stocks(
        self, ticker: str, k: int, token: Optional[CancelToken] = None
    ) -> list[SimilarStock]:
        return self.similarity.find_similar(ticker, k, token)

    # ── Lookups ───────────────────────────────────────────────────────────────

    def get_recommendations(
        self, ticker: str = "", page: int = 1, limit: int = DEFAULT_PAGE_LIMIT
    ) -> tuple[list[Recommendation], int]:
        """One page of stored recommendations, newest first, and the total.

        ``page < 1`` is treated as 1; a ``limit`` outside ``[1, 100]`` falls
        back to 50. An empty ``ticker`` lists every ticker.
        """
        if page < 1:
            page = 1
        if limit < 1 or limit > MAX_PAGE_LIMIT:
            limit = DEFAULT_PAGE_LIMIT
        return self.store.get_recommendations(ticker, page, limit)

    def get_available_tickers(self) -> list[str]:
        return self.store.get_available_tickers()

    def health_check(self) -> None:
        """Raise ``StoreError`` if the store cannot answer a trivial query."""
        self.store.ping()

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _run_sync(self, mode: str, action: Callable[[Synchronizer], int]) -> SyncRun:
        if self.synchronizer is None:
            raise SyncError(mode, "no feed configured (set feed.base_url)")

        run = SyncRun(run_slug=str(uuid4()), mode=mode, started_at=utcnow())
        logger.info("Sync [%s] starting | run_slug=%s", mode, run.run_slug)
        self._persist_run(run)

        try:
            run.rows_written = action(self.synchronizer)
            run.status = "success"
            run.finished_at = utcnow()
            logger.info(
                "Sync [%s] completed | rows=%d | run_slug=%s",
                mode, run.rows_written, run.run_slug,
            )
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Sync [%s] FAILED: %s | run_slug=%s", mode, exc, run.run_slug
            )
            self._persist_run(run)
            raise SyncError(mode, str(exc)) from exc

        self._persist_run(run)
        return run

    def _persist_run(self, run: SyncRun) -> None:
        """Insert or update the audit row.

        Persistence failures are logged, never raised, so they cannot mask
        the sync outcome.
        """
        try:
            with get_connection(
                self.config.database.db_path,
                wal_mode=self.config.database.wal_mode,
                busy_timeout_ms=self.config.database.busy_timeout_ms,
            ) as conn:
                repo = SyncRunRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error(
                "Failed to persist SyncRun for run_slug=%s: %s", run.run_slug, exc
            )


def build_service(
    config: AppConfig, feed: Optional[FeedSource] = None
) -> RecommendationService:
    """Build a service on the configured SQLite store.

    When ``feed`` is not given, an httpx ``FeedClient`` is created if
    ``config.feed.base_url`` is set; otherwise the service is read-only.
    """
    from stock_recommender.ingestion.feed_client import FeedClient

    store = SqliteStore.from_config(config.database)
    store.initialize()
    if feed is None and config.feed.base_url:
        feed = FeedClient.from_config(config.feed)
    return RecommendationService(config, store, feed)
