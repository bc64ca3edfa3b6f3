"""
Feed → store reconciliation.

Two modes:

full_sync()
    Page through the whole feed (``full_sync_page_delay_seconds`` between
    pages). An empty feed is logged and leaves the store untouched.
    Otherwise delete every stored recommendation, then upsert the fetched set
    in sequential batches of ``batch_size`` (one transaction per batch,
    ``batch_delay_seconds`` between batches). The delete and the batches are
    not one atomic unit: a failure part-way leaves the store empty or
    partially repopulated until the next successful full sync.

incremental_sync()
    Read the newest stored recommendation as the boundary (none = no
    boundary, i.e. backfill everything). Page the feed from the start
    (``incremental_page_delay_seconds`` between pages) buffering items until
    the first item whose time is not strictly after the boundary, then write
    the buffer in one upsert. If the feed ends first, the whole buffer is
    written. Relies on the newest-first feed ordering contract.

Every feed fetch, the delete, each batch insert and the boundary lookup run
through ``call_with_retry``. Pauses and retries sleep on the caller's cancel
token. After a successful sync every registered invalidator is called so the
best-stocks and similarity caches never outlive the data they were built
from. Failures propagate unchanged and skip invalidation.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from stock_recommender.config import SyncConfig
from stock_recommender.ingestion.feed_client import get_all_recommendations
from stock_recommender.interfaces import FeedSource, Store
from stock_recommender.models.recommendation import FeedPage, Recommendation
from stock_recommender.sync.retry import RetryPolicy, call_with_retry
from stock_recommender.utils.cancel import CancelToken, background

logger = logging.getLogger(__name__)

Invalidator = Callable[[], None]


class Synchronizer:
    """Keeps a ``Store`` in step with a ``FeedSource``.

    Args:
        feed: Newest-first paginated feed.
        store: Destination store.
        config: Batch size, pacing delays and retry settings.
        max_pages: Stop pagination after this many pages; 0 means no bound.
        invalidators: Callables run after every successful sync.
    """

    def __init__(
        self,
        feed: FeedSource,
        store: Store,
        config: Optional[SyncConfig] = None,
        max_pages: int = 0,
        invalidators: Iterable[Invalidator] = (),
    ) -> None:
        self.feed = feed
        self.store = store
        self.config = config or SyncConfig()
        self.max_pages = max_pages
        self.retry_policy = RetryPolicy.from_config(self.config)
        self._invalidators: list[Invalidator] = list(invalidators)

    def add_invalidator(self, invalidator: Invalidator) -> None:
        self._invalidators.append(invalidator)

    # ── Full sync ─────────────────────────────────────────────────────────────

    def full_sync(self, token: Optional[CancelToken] = None) -> int:
        """Replace the store contents with the current feed.

        Returns:
            Number of recommendations written (0 for an empty feed).

        Raises:
            FeedError: Feed fetch failed after retries.
            StoreError: Delete or a batch insert failed after retries.
            OperationCancelled: ``token`` fired mid-sync.
        """
        token = token or background()
        items = get_all_recommendations(
            self.feed,
            page_delay_seconds=self.config.full_sync_page_delay_seconds,
            max_pages=self.max_pages,
            sleep=token.sleep,
            fetch=lambda page_token: self._fetch_page(page_token, token),
        )

        if not items:
            logger.info("Full sync: feed returned no recommendations; store left untouched")
            return 0

        deleted = call_with_retry(
            self.store.delete_all_recommendations, self.retry_policy, token, "delete-all"
        )
        logger.info("Full sync: cleared %d stored recommendations", deleted)

        size = self.config.batch_size
        written = 0
        n_batches = (len(items) + size - 1) // size
        for index, start in enumerate(range(0, len(items), size), start=1):
            batch = items[start:start + size]
            written += call_with_retry(
                lambda: self.store.insert_recommendations(batch),
                self.retry_policy,
                token,
                f"insert-batch-{index}",
            )
            logger.debug("Full sync: batch %d/%d (%d rows)", index, n_batches, len(batch))
            if index < n_batches:
                token.sleep(self.config.batch_delay_seconds)

        logger.info(
            "Full sync complete: %d recommendations in %d batches", written, n_batches
        )
        self._invalidate_caches()
        return written

    # ── Incremental sync ──────────────────────────────────────────────────────

    def incremental_sync(self, token: Optional[CancelToken] = None) -> int:
        """Append feed items newer than the newest stored recommendation.

        Returns:
            Number of recommendations written.

        Raises:
            FeedError: A feed fetch failed after retries.
            StoreError: The boundary lookup or the insert failed after retries.
            OperationCancelled: ``token`` fired mid-sync.
        """
        token = token or background()
        latest = call_with_retry(
            self.store.get_latest_recommendation, self.retry_policy, token, "get-latest"
        )
        boundary = latest.time if latest is not None else None
        if boundary is None:
            logger.info("Incremental sync: store is empty, backfilling the whole feed")
        else:
            logger.info("Incremental sync: boundary %s", boundary.isoformat())

        buffer: list[Recommendation] = []
        previous: Optional[Recommendation] = None
        order_warned = False
        page_token = ""
        pages = 0
        reached_boundary = False

        while not reached_boundary:
            page = self._fetch_page(page_token, token)
            pages += 1

            for item in page.items:
                if previous is not None and item.time > previous.time and not order_warned:
                    logger.warning(
                        "Feed ordering violated: %s@%s follows older %s@%s; "
                        "incremental sync may stop early or late",
                        item.ticker, item.time.isoformat(),
                        previous.ticker, previous.time.isoformat(),
                    )
                    order_warned = True
                previous = item

                if boundary is not None and not item.time > boundary:
                    reached_boundary = True
                    break
                buffer.append(item)

            if reached_boundary or not page.next_page:
                break
            if self.max_pages and pages >= self.max_pages:
                logger.warning(
                    "Incremental sync: stopping at max_pages=%d before the boundary",
                    self.max_pages,
                )
                break
            page_token = page.next_page
            token.sleep(self.config.incremental_page_delay_seconds)

        written = call_with_retry(
            lambda: self.store.insert_recommendations(buffer),
            self.retry_policy,
            token,
            "insert-incremental",
        )
        logger.info(
            "Incremental sync complete: %d new recommendations across %d pages%s",
            written, pages, " (boundary reached)" if reached_boundary else "",
        )
        self._invalidate_caches()
        return written

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _fetch_page(self, page_token: str, token: CancelToken) -> FeedPage:
        return call_with_retry(
            lambda: self.feed.get_page(page_token),
            self.retry_policy,
            token,
            f"feed-page[{page_token or 'first'}]",
        )

    def _invalidate_caches(self) -> None:
        for invalidate in self._invalidators:
            invalidate()
