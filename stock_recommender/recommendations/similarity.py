"""
Nearest-neighbour search over per-ticker feature vectors.

Similarity is cosine similarity between the query ticker's feature vector and
every other ticker's vector:

    dot   = sum(a[k] * b.get(k, 0) for k in a)      # over the query's keys
    |a|   = sqrt(sum(v * v for v in a.values()))     # each over its own keys
    sim   = dot / (|a| * |b|),  or 0.0 if either magnitude is 0

Candidates are scored in batches on a bounded thread pool. The call waits for
every batch (no partial results) unless the caller's cancel token fires, in
which case queued batches are dropped and ``OperationCancelled`` is raised.

Results are cached per query ticker as the full sorted candidate list and
re-sliced to ``k`` on every call, so a hit honours the current ``k``.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Optional

from stock_recommender.config import SimilarityConfig
from stock_recommender.errors import OperationCancelled
from stock_recommender.interfaces import Store
from stock_recommender.models.recommendation import FeatureVector, SimilarStock
from stock_recommender.recommendations.cache import KeyedCache
from stock_recommender.utils.cancel import CancelToken, background

logger = logging.getLogger(__name__)

# Upper bound on a single wait() so a cancelled token is noticed promptly
_POLL_SECONDS = 0.1


def _magnitude(vector: FeatureVector) -> float:
    return math.sqrt(sum(v * v for v in vector.values()))


def cosine_similarity(a: FeatureVector, b: FeatureVector) -> float:
    """Cosine similarity of ``a`` and ``b``; 0.0 if either has zero magnitude."""
    mag_a = _magnitude(a)
    mag_b = _magnitude(b)
    if mag_a == 0 or mag_b == 0:
        return 0.0
    dot = sum(value * b.get(key, 0.0) for key, value in a.items())
    return dot / (mag_a * mag_b)


def _score_batch(
    target: FeatureVector, batch: list[tuple[str, FeatureVector]]
) -> list[SimilarStock]:
    return [
        SimilarStock(ticker=ticker, similarity=cosine_similarity(target, vector))
        for ticker, vector in batch
    ]


class SimilarityEngine:
    """Finds the tickers whose feature vectors are closest to a query ticker.

    Args:
        store: Source of feature vectors.
        config: Worker pool and default ``k`` settings.
    """

    def __init__(self, store: Store, config: Optional[SimilarityConfig] = None) -> None:
        self.store = store
        self.config = config or SimilarityConfig()
        self._cache: KeyedCache[list[SimilarStock]] = KeyedCache()

    def find_similar(
        self, ticker: str, k: int, token: Optional[CancelToken] = None
    ) -> list[SimilarStock]:
        """Return the ``k`` most similar tickers, most similar first.

        The query ticker never appears in its own result. A ``k`` below 1
        falls back to ``config.default_k``.

        Raises:
            StoreError: Propagated from the store on a cache miss.
            OperationCancelled: If ``token`` fires before scoring finishes.
        """
        token = token or background()
        ticker = ticker.strip().upper()
        if k < 1:
            k = self.config.default_k

        cached = self._cache.get(ticker)
        if cached is not None:
            logger.debug("Similarity cache hit for %s", ticker)
            return cached[:k]

        generation = self._cache.generation
        target = self.store.get_stock_features(ticker)
        candidates = [
            (other, vector)
            for other, vector in self.store.get_all_stock_features()
            if other != ticker
        ]
        token.raise_if_cancelled()

        ranked = self._score_all(target, candidates, token)
        ranked.sort(key=lambda s: (-s.similarity, s.ticker))

        if not self._cache.put(ticker, ranked, generation):
            logger.debug("Similarity for %s not cached: invalidated mid-search", ticker)
        logger.info(
            "Similarity computed for %s over %d candidates", ticker, len(ranked)
        )
        return ranked[:k]

    def invalidate(self) -> None:
        self._cache.invalidate()
        logger.debug("Similarity cache invalidated")

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _score_all(
        self,
        target: FeatureVector,
        candidates: list[tuple[str, FeatureVector]],
        token: CancelToken,
    ) -> list[SimilarStock]:
        if not candidates:
            return []

        size = self.config.batch_size
        batches = [candidates[i:i + size] for i in range(0, len(candidates), size)]
        workers = min(self.config.max_workers, len(batches))

        executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="similarity"
        )
        results: list[SimilarStock] = []
        try:
            pending: set[Future] = {
                executor.submit(_score_batch, target, batch) for batch in batches
            }
            while pending:
                if token.cancelled:
                    raise OperationCancelled(
                        f"Similarity search cancelled with {len(pending)} batches pending."
                    )
                done, pending = wait(
                    pending, timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED
                )
                for future in done:
                    results.extend(future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results
