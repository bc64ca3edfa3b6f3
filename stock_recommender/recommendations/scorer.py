"""
Recommendation scoring: turns one Recommendation into a composite score and
a list of recommendations into a ranked ticker list.

Score formula (arithmetic mean of four sub-scores)
--------------------------------------------------
    composite = (
        action_score(action)
        + rating_score(rating_to)
        + brokerage_score(brokerage)
        + recency_score(time)
    ) / 4

Sub-scores
----------
action / rating / brokerage:
    Normalize the text (strip, lower-case) and walk the matching weight table
    in declaration order; the first pattern contained in the text wins.
    No match → 0.0 (neutral, never an error).

recency:
    h = hours elapsed since the recommendation.
    h <= 0 (future-dated) → recentness_weight.
    otherwise             → recentness_weight * exp(-0.05 * h)
    (half-life ≈ 13.9 hours).

Ranking
-------
rank_tickers() averages composite scores per ticker and sorts by mean score
descending, ties broken by ticker ascending so output is reproducible.

All functions are pure given the weights and ``now``.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from stock_recommender.models.recommendation import Recommendation, TickerScore
from stock_recommender.models.weights import DEFAULT_WEIGHTS, ModelWeights, WeightTable
from stock_recommender.utils.time_utils import hours_since, utcnow

RECENCY_DECAY_LAMBDA = 0.05
N_SUB_SCORES = 4


def normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def lookup_weight(table: WeightTable, text: Optional[str]) -> float:
    """Return the weight of the first pattern contained in ``text``, else 0.0."""
    normalized = normalize(text)
    if not normalized:
        return 0.0
    for pattern, weight in table:
        if pattern in normalized:
            return weight
    return 0.0


def action_score(action: Optional[str], weights: ModelWeights = DEFAULT_WEIGHTS) -> float:
    return lookup_weight(weights.action_weights, action)


def rating_score(rating: Optional[str], weights: ModelWeights = DEFAULT_WEIGHTS) -> float:
    return lookup_weight(weights.rating_weights, rating)


def brokerage_score(
    brokerage: Optional[str], weights: ModelWeights = DEFAULT_WEIGHTS
) -> float:
    return lookup_weight(weights.brokerage_weights, brokerage)


def recency_score(
    timestamp: datetime,
    now: Optional[datetime] = None,
    weights: ModelWeights = DEFAULT_WEIGHTS,
) -> float:
    """Exponentially decayed recency weight.

    Future-dated timestamps (``hours <= 0``) receive the full weight.
    """
    hours = hours_since(timestamp, now)
    if hours <= 0:
        return weights.recentness_weight
    return weights.recentness_weight * math.exp(-RECENCY_DECAY_LAMBDA * hours)


def composite_score(
    rec: Recommendation,
    now: Optional[datetime] = None,
    weights: ModelWeights = DEFAULT_WEIGHTS,
) -> float:
    """Mean of the action, rating, brokerage and recency sub-scores."""
    total = (
        action_score(rec.action, weights)
        + rating_score(rec.rating_to, weights)
        + brokerage_score(rec.brokerage, weights)
        + recency_score(rec.time, now, weights)
    )
    return total / N_SUB_SCORES


def rank_tickers(
    recommendations: Iterable[Recommendation],
    now: Optional[datetime] = None,
    weights: ModelWeights = DEFAULT_WEIGHTS,
) -> list[TickerScore]:
    """Average composite scores per ticker and sort best-first.

    ``now`` is fixed once for the whole batch so every recommendation is
    decayed against the same instant.

    Returns:
        TickerScore list sorted by score descending, then ticker ascending.
    """
    reference = now or utcnow()
    sums: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)

    for rec in recommendations:
        sums[rec.ticker] += composite_score(rec, reference, weights)
        counts[rec.ticker] += 1

    ranked = [
        TickerScore(ticker=t, score=sums[t] / counts[t], n_recommendations=counts[t])
        for t in sums
    ]
    ranked.sort(key=lambda ts: (-ts.score, ts.ticker))
    return ranked
