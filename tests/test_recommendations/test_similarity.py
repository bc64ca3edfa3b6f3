"""
Tests for cosine_similarity() and SimilarityEngine.

What we test
------------
cosine_similarity():
  - Symmetric for non-zero vectors.
  - 0.0 when either vector has zero magnitude.
  - Dot product runs over the query's keys only.
  - Identical direction → 1.0.

SimilarityEngine.find_similar():
  - Query ticker never appears in its own result.
  - Sorted by similarity descending, truncated to k.
  - Batching over a small pool gives the same answer as one batch.
  - Cache hit skips the store and re-slices to the current k.
  - invalidate() clears the cache.
  - An invalidation during a search keeps the pre-sync result out of the cache.
  - Unknown ticker → all similarities 0.
  - Cancelled token raises OperationCancelled.
"""

from __future__ import annotations

import math

import pytest

from conftest import FakeStore
from stock_recommender.config import SimilarityConfig
from stock_recommender.errors import OperationCancelled
from stock_recommender.recommendations.similarity import SimilarityEngine, cosine_similarity
from stock_recommender.utils.cancel import CancelToken

FEATURES = {
    "AAPL": {"total_recommendations": 10.0, "buy_rating": 0.8, "unique_brokers": 4.0},
    "MSFT": {"total_recommendations": 9.0, "buy_rating": 0.7, "unique_brokers": 4.0},
    "TSLA": {"total_recommendations": 2.0, "buy_rating": 0.1, "unique_brokers": 9.0},
    "XOM": {"total_recommendations": 0.0, "buy_rating": 0.0, "unique_brokers": 0.0},
    "NVDA": {"total_recommendations": 20.0, "buy_rating": 1.6, "unique_brokers": 8.0},
}


class TestCosineSimilarity:
    def test_symmetric(self):
        a = {"x": 1.0, "y": 2.0, "z": -0.5}
        b = {"x": 0.3, "y": -1.0, "z": 4.0}
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_magnitude_is_zero(self):
        assert cosine_similarity({"x": 0.0}, {"x": 1.0}) == 0.0
        assert cosine_similarity({"x": 1.0}, {}) == 0.0

    def test_same_direction_is_one(self):
        assert cosine_similarity({"x": 1.0, "y": 2.0}, {"x": 2.0, "y": 4.0}) == pytest.approx(1.0)

    def test_candidate_only_keys_count_in_magnitude_not_dot(self):
        a = {"x": 1.0}
        b = {"x": 1.0, "y": 1.0}
        assert cosine_similarity(a, b) == pytest.approx(1 / math.sqrt(2))


class TestFindSimilar:
    def test_excludes_query_ticker(self):
        engine = SimilarityEngine(FakeStore(features=FEATURES))
        result = engine.find_similar("AAPL", 10)
        assert "AAPL" not in {s.ticker for s in result}
        assert len(result) == len(FEATURES) - 1

    def test_sorted_descending_and_truncated(self):
        engine = SimilarityEngine(FakeStore(features=FEATURES))
        result = engine.find_similar("AAPL", 2)
        assert len(result) == 2
        assert result[0].ticker == "NVDA"  # same direction as AAPL
        assert result[0].similarity >= result[1].similarity

    def test_lowercase_ticker_is_normalized(self):
        engine = SimilarityEngine(FakeStore(features=FEATURES))
        assert "AAPL" not in {s.ticker for s in engine.find_similar("aapl", 10)}

    def test_small_batches_match_single_batch(self):
        store = FakeStore(features=FEATURES)
        batched = SimilarityEngine(store, SimilarityConfig(max_workers=2, batch_size=1))
        single = SimilarityEngine(store, SimilarityConfig(max_workers=1, batch_size=64))
        assert batched.find_similar("MSFT", 10) == single.find_similar("MSFT", 10)

    def test_unknown_ticker_similar_to_nothing(self):
        engine = SimilarityEngine(FakeStore(features=FEATURES))
        result = engine.find_similar("ZZZZ", 3)
        assert all(s.similarity == 0.0 for s in result)

    def test_zero_vector_candidate_scores_zero(self):
        engine = SimilarityEngine(FakeStore(features=FEATURES))
        by_ticker = {s.ticker: s.similarity for s in engine.find_similar("AAPL", 10)}
        assert by_ticker["XOM"] == 0.0

    def test_non_positive_k_uses_default(self):
        engine = SimilarityEngine(
            FakeStore(features=FEATURES), SimilarityConfig(default_k=2)
        )
        assert len(engine.find_similar("AAPL", 0)) == 2

    def test_empty_universe(self):
        assert SimilarityEngine(FakeStore()).find_similar("AAPL", 5) == []


class _SyncDuringSearchStore(FakeStore):
    """Swaps in new features and fires ``on_read`` while candidates are read."""

    def __init__(self, features, after) -> None:
        super().__init__(features=features)
        self.after = after
        self.on_read = None

    def get_all_stock_features(self):
        snapshot = super().get_all_stock_features()
        if self.on_read is not None:
            on_read, self.on_read = self.on_read, None
            self.features = dict(self.after)
            on_read()
        return snapshot


class TestSimilarityCache:
    def test_hit_skips_store(self):
        store = FakeStore(features=FEATURES)
        engine = SimilarityEngine(store)
        first = engine.find_similar("AAPL", 3)
        second = engine.find_similar("AAPL", 3)
        assert first == second
        assert store.feature_calls == 1

    def test_hit_reslices_to_current_k(self):
        store = FakeStore(features=FEATURES)
        engine = SimilarityEngine(store)
        two = engine.find_similar("AAPL", 2)
        four = engine.find_similar("AAPL", 4)
        assert len(four) == 4
        assert four[:2] == two
        assert store.feature_calls == 1

    def test_invalidate_clears(self):
        store = FakeStore(features=FEATURES)
        engine = SimilarityEngine(store)
        engine.find_similar("AAPL", 3)
        engine.invalidate()
        engine.find_similar("AAPL", 3)
        assert store.feature_calls == 2


def test_cancelled_token_raises():
    token = CancelToken()
    token.cancel()
    engine = SimilarityEngine(FakeStore(features=FEATURES))
    with pytest.raises(OperationCancelled):
        engine.find_similar("AAPL", 3, token)


def test_invalidate_during_search_is_not_overwritten():
    store = _SyncDuringSearchStore(
        {"AAPL": FEATURES["AAPL"], "MSFT": FEATURES["MSFT"]},
        after={"AAPL": FEATURES["AAPL"], "TSLA": FEATURES["TSLA"]},
    )
    engine = SimilarityEngine(store)
    store.on_read = engine.invalidate

    in_flight = engine.find_similar("AAPL", 5)
    assert [s.ticker for s in in_flight] == ["MSFT"]

    # The result computed before the invalidation must not be served again
    assert [s.ticker for s in engine.find_similar("AAPL", 5)] == ["TSLA"]
