"""
Static weight tables for the composite recommendation score.

Each table is an ordered tuple of ``(pattern, weight)`` pairs. Matching is
case-insensitive substring containment evaluated in declaration order, and
the first matching pattern wins. More specific patterns are therefore listed
before the generic ones they contain ("target raised" before "raised",
"morgan stanley" before "morgan", "underperform" before "perform").

The weights are not user-configurable: the scoring model is a hand-tuned
lookup table, not a learned model.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

WeightTable = tuple[tuple[str, float], ...]


class ModelWeights(BaseModel):
    """The four inputs of the composite score.

    Attributes:
        action_weights:    Patterns matched against ``Recommendation.action``.
        rating_weights:    Patterns matched against ``Recommendation.rating_to``.
        brokerage_weights: Patterns matched against ``Recommendation.brokerage``.
        recentness_weight: Recency score for a brand-new recommendation;
            decays exponentially with age.
    """

    model_config = ConfigDict(frozen=True)

    action_weights: WeightTable
    rating_weights: WeightTable
    brokerage_weights: WeightTable
    recentness_weight: float = 0.1

    @field_validator("action_weights", "rating_weights", "brokerage_weights")
    @classmethod
    def normalize_patterns(cls, v: WeightTable) -> WeightTable:
        cleaned = []
        for pattern, weight in v:
            pattern = pattern.strip().lower()
            if not pattern:
                raise ValueError("weight table patterns must not be empty.")
            cleaned.append((pattern, float(weight)))
        return tuple(cleaned)


DEFAULT_WEIGHTS = ModelWeights(
    action_weights=(
        ("target raised",  3.2),
        ("initiated",      2.5),
        ("updated",        2.0),
        ("reiterated",     1.8),
        ("maintained",     1.0),
        ("target lowered", -1.5),
    ),
    rating_weights=(
        ("underperform", -1.5),
        ("outperform",    2.7),
        ("superar",       2.8),
        ("buy",           3.0),
        ("comprar",       3.0),
        ("neutral",       1.0),
        ("market",        0.5),
        ("sell",         -2.5),
        ("vender",       -2.5),
    ),
    brokerage_weights=(
        ("goldman",        1.3),
        ("morgan stanley", 1.2),
        ("jpmorgan",       1.2),
        ("morgan",         1.2),
        ("jp",             1.2),
        ("bmo",            1.1),
        ("oppenheimer",    1.0),
        ("mizuho",         0.9),
    ),
    recentness_weight=0.1,
)
