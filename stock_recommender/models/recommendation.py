"""
Recommendation domain models.

``Recommendation`` is one analyst action on a ticker as published by the
external feed. Its natural key is ``(ticker, time)``: the store upserts on
that key, so a reappearing key replaces every other field.

``FeedPage`` is one page of the feed plus the token for the next page
(empty string = end of feed).

``SimilarStock`` and ``TickerScore`` are transient ranking outputs; neither
is persisted.

Target prices stay text (``"$150.00"``) exactly as the feed sends them; the
store parses them only when computing feature vectors.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stock_recommender.utils.time_utils import ensure_utc

FeatureVector = dict[str, float]

_NANO_FRACTION = re.compile(r"^(.*T\d{2}:\d{2}:\d{2}\.\d{6})\d+(.*)$")


class Recommendation(BaseModel):
    """A single brokerage recommendation for a ticker.

    Attributes:
        ticker: Trading symbol, upper-cased (e.g. ``"AAPL"``).
        target_from: Previous / lower price target, currency-prefixed text.
        target_to: New / upper price target, currency-prefixed text.
        company: Company display name.
        action: Free-form action text, e.g. ``"target raised by"``.
        brokerage: Issuing brokerage name.
        rating_from: Rating before this action.
        rating_to: Rating after this action.
        time: UTC timestamp of the recommendation.
    """

    model_config = ConfigDict(frozen=True)

    ticker: str
    target_from: str = ""
    target_to: str = ""
    company: str = ""
    action: str = ""
    brokerage: str = ""
    rating_from: str = ""
    rating_to: str = ""
    time: datetime

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker must not be empty.")
        return v

    @field_validator("target_from", "target_to", mode="before")
    @classmethod
    def coerce_target(cls, v: Any) -> str:
        # Some feed revisions send bare numbers instead of "$12.50"
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return f"${v:.2f}"
        return str(v)

    @field_validator("time", mode="before")
    @classmethod
    def trim_fraction(cls, v: Any) -> Any:
        # The feed emits nanosecond fractions; datetime holds microseconds
        if isinstance(v, str):
            match = _NANO_FRACTION.match(v)
            if match:
                return match.group(1) + match.group(2)
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def key(self) -> tuple[str, datetime]:
        """Natural key used for upserts."""
        return (self.ticker, self.time)


class FeedPage(BaseModel):
    """One page of the external feed.

    Attributes:
        items: Recommendations on this page.
        next_page: Token for the following page; ``""`` means no more pages.
    """

    model_config = ConfigDict(frozen=True)

    items: list[Recommendation] = Field(default_factory=list)
    next_page: str = ""

    @field_validator("items", mode="before")
    @classmethod
    def coerce_items(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("next_page", mode="before")
    @classmethod
    def coerce_next_page(cls, v: Any) -> str:
        return "" if v is None else str(v)


class SimilarStock(BaseModel):
    """A ticker and its cosine similarity to a query ticker."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    similarity: float


class TickerScore(BaseModel):
    """Mean composite score of one ticker over a set of recommendations."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    score: float
    n_recommendations: int
