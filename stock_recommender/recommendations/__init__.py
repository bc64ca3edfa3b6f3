"""
Recommendation engine: scores brokerage recommendations, ranks tickers and
finds similar stocks.

Modules
-------
scorer      : action/rating/brokerage/recency sub-scores, composite_score()
              and rank_tickers(); pure functions, no DB or I/O.
cache       : ReadWriteLock, TTLSlotCache and KeyedCache.
best_stocks : BestStocksCache: ranked best stocks with a 5-minute TTL.
similarity  : cosine_similarity() + SimilarityEngine (bounded thread pool).
"""
