"""
Best-stocks ranking with a short-TTL cache.

Pipeline on a cache miss:
  1. Read every recommendation from the last ``recent_window_days`` days.
  2. ``rank_tickers()``: mean composite score per ticker, best first.
  3. Walk the ranking and fetch the newest stored recommendation of each
     ticker as its representative, until ``limit`` have been resolved.
  4. Replace the cached list (and its refresh time) in one write.

A hit serves the cached list truncated to ``limit``. If the cache holds fewer
items than asked for, the shorter list is returned as-is. An empty cached
list counts as a miss.

Concurrent callers racing on an expired cache each recompute the pipeline
independently; there is no request coalescing.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from stock_recommender.config import ScoringConfig
from stock_recommender.interfaces import Store
from stock_recommender.models.recommendation import Recommendation
from stock_recommender.models.weights import DEFAULT_WEIGHTS, ModelWeights
from stock_recommender.recommendations.cache import TTLSlotCache
from stock_recommender.recommendations.scorer import rank_tickers
from stock_recommender.utils.cancel import CancelToken, background
from stock_recommender.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class BestStocksCache:
    """Serves the globally best-ranked recommendations.

    Args:
        store: Recommendation store to rank from.
        config: TTL, window and limit settings.
        weights: Scoring weights (static for the process lifetime).
        clock: Monotonic seconds source for the TTL.
        now: Wall-clock source used as the recency reference.
    """

    def __init__(
        self,
        store: Store,
        config: Optional[ScoringConfig] = None,
        weights: ModelWeights = DEFAULT_WEIGHTS,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.config = config or ScoringConfig()
        self.weights = weights
        self._now = now
        self._cache: TTLSlotCache[list[Recommendation]] = TTLSlotCache(
            self.config.best_stocks_ttl_seconds, clock=clock
        )

    def clamp_limit(self, limit: int) -> int:
        """Map a limit outside ``[1, max_limit]`` to ``default_limit``."""
        if limit < 1 or limit > self.config.max_limit:
            return self.config.default_limit
        return limit

    def get_best_stocks(
        self, limit: int, token: Optional[CancelToken] = None
    ) -> list[Recommendation]:
        """Return up to ``limit`` representative recommendations, best first.

        Raises:
            StoreError: Propagated from the store on a cache miss.
            OperationCancelled: If ``token`` fires while resolving tickers.
        """
        token = token or background()
        limit = self.clamp_limit(limit)

        cached = self._cache.get()
        if cached:
            logger.debug("Best stocks cache hit (%d cached)", len(cached))
            return cached[:limit]

        generation = self._cache.generation
        window = timedelta(days=self.config.recent_window_days)
        recent = self.store.get_recent_recommendations(window)
        ranked = rank_tickers(recent, now=self._now(), weights=self.weights)

        best: list[Recommendation] = []
        for entry in ranked:
            if len(best) >= limit:
                break
            token.raise_if_cancelled()
            items, _ = self.store.get_recommendations(entry.ticker, 1, 1)
            if items:
                best.append(items[0])

        if not self._cache.put(best, generation):
            logger.debug("Best stocks not cached: invalidated mid-computation")
        logger.info(
            "Best stocks recomputed: %d recent recs, %d tickers ranked, %d returned",
            len(recent), len(ranked), len(best),
        )
        return best

    def invalidate(self) -> None:
        self._cache.invalidate()
        logger.debug("Best stocks cache invalidated")
