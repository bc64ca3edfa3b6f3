"""
Repository for the ``recommendations`` table: paged reads, upserts, and the
per-ticker aggregates that make up a similarity feature vector.

Feature vector keys
-------------------
    total_recommendations   number of stored recommendations for the ticker
    target_range            mean of (target_to - target_from)
    upgrade_probability     share of actions mentioning a raise / upgrade
    downgrade_probability   share of actions mentioning a cut / downgrade
    buy_rating              share of rating_to values that are buy-side
    sell_rating             share of rating_to values that are sell-side
    target_volatility       sample std-dev of (target_to - target_from)
    unique_brokers          distinct brokerages covering the ticker
    broker_diversity        unique_brokers / total_recommendations

Target prices are stored as the feed sends them ("$1,250.00"). Values that
do not parse after stripping currency symbols and separators are left out of
the range statistics rather than failing the whole vector.
"""

from __future__ import annotations

import logging
import sqlite3
import statistics
from datetime import datetime, timedelta
from typing import Optional, Sequence

from stock_recommender.db.repositories.base import BaseRepository
from stock_recommender.models.recommendation import FeatureVector, Recommendation
from stock_recommender.utils.time_utils import (
    from_db_timestamp,
    to_db_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

_COLUMNS = (
    "ticker, target_from, target_to, company, action, "
    "brokerage, rating_from, rating_to, time"
)

# Substring patterns (case-insensitive LIKE) used by the feature aggregates.
# Spanish forms cover feeds served in Spanish; the scorer tables weight both.
UPGRADE_PATTERNS = ("raised", "upgraded", "aumentado")
DOWNGRADE_PATTERNS = ("lowered", "downgraded", "bajado")
BUY_PATTERNS = ("buy", "outperform", "comprar", "superar")
SELL_PATTERNS = ("sell", "underperform", "vender")

_CURRENCY_CHARS = "$€£¥, "

FEATURE_KEYS = (
    "total_recommendations",
    "target_range",
    "upgrade_probability",
    "downgrade_probability",
    "buy_rating",
    "sell_rating",
    "target_volatility",
    "unique_brokers",
    "broker_diversity",
)


class RecommendationRepository(BaseRepository):
    """Read/write access to ``recommendations``."""

    def upsert_many(self, recommendations: Sequence[Recommendation]) -> int:
        """Insert or update recommendations keyed on ``(ticker, time)``.

        Every non-key column is replaced when the key already exists. The
        caller's connection scope decides the transaction boundary.

        Returns:
            Number of rows submitted.
        """
        if not recommendations:
            return 0
        self.executemany(
            f"""
            INSERT INTO recommendations ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(ticker, time) DO UPDATE SET
                target_from = excluded.target_from,
                target_to   = excluded.target_to,
                company     = excluded.company,
                action      = excluded.action,
                brokerage   = excluded.brokerage,
                rating_from = excluded.rating_from,
                rating_to   = excluded.rating_to;
            """,
            [_rec_to_params(r) for r in recommendations],
        )
        return len(recommendations)

    def delete_all(self) -> int:
        """Delete every recommendation and return the number of rows removed."""
        return self.execute("DELETE FROM recommendations;").rowcount

    def get_page(
        self,
        ticker: str,
        page: int,
        limit: int,
    ) -> tuple[list[Recommendation], int]:
        """Return one page of recommendations (newest first) and the total.

        Args:
            ticker: Filter ticker; ``""`` selects all tickers.
            page: 1-based page number.
            limit: Page size.
        """
        offset = (page - 1) * limit
        rows = self.fetchall(
            f"""
            SELECT {_COLUMNS} FROM recommendations
            WHERE (? = '' OR ticker = ?)
            ORDER BY time DESC
            LIMIT ? OFFSET ?;
            """,
            (ticker, ticker, limit, offset),
        )
        total_row = self.fetchone(
            "SELECT COUNT(*) AS n FROM recommendations WHERE (? = '' OR ticker = ?);",
            (ticker, ticker),
        )
        total = int(total_row["n"]) if total_row else 0
        return [_row_to_rec(r) for r in rows], total

    def get_since(self, cutoff: datetime) -> list[Recommendation]:
        """Return recommendations strictly newer than ``cutoff``, newest first."""
        rows = self.fetchall(
            f"""
            SELECT {_COLUMNS} FROM recommendations
            WHERE time > ?
            ORDER BY time DESC;
            """,
            (to_db_timestamp(cutoff),),
        )
        return [_row_to_rec(r) for r in rows]

    def get_recent(
        self, window: timedelta, now: Optional[datetime] = None
    ) -> list[Recommendation]:
        return self.get_since((now or utcnow()) - window)

    def get_latest(self) -> Optional[Recommendation]:
        row = self.fetchone(
            f"SELECT {_COLUMNS} FROM recommendations ORDER BY time DESC LIMIT 1;"
        )
        return _row_to_rec(row) if row else None

    def get_tickers(self) -> list[str]:
        rows = self.fetchall("SELECT DISTINCT ticker FROM recommendations ORDER BY ticker;")
        return [r["ticker"] for r in rows]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM recommendations;")
        return int(row["n"]) if row else 0

    def get_features(self, ticker: str) -> FeatureVector:
        """Compute the aggregate feature vector for one ticker.

        An unknown ticker yields an all-zero vector (zero magnitude, so it is
        similar to nothing).
        """
        agg = self.fetchone(
            f"""
            SELECT
                COUNT(*)                                   AS total,
                AVG(CASE WHEN {_like_any("action", UPGRADE_PATTERNS)}
                         THEN 1.0 ELSE 0.0 END)            AS upgrade_prob,
                AVG(CASE WHEN {_like_any("action", DOWNGRADE_PATTERNS)}
                         THEN 1.0 ELSE 0.0 END)            AS downgrade_prob,
                AVG(CASE WHEN {_like_any("rating_to", BUY_PATTERNS)}
                         THEN 1.0 ELSE 0.0 END)            AS buy_rating,
                AVG(CASE WHEN {_like_any("rating_to", SELL_PATTERNS)}
                         THEN 1.0 ELSE 0.0 END)            AS sell_rating,
                COUNT(DISTINCT brokerage)                  AS unique_brokers
            FROM recommendations
            WHERE ticker = ?;
            """,
            (ticker,),
        )
        total = int(agg["total"]) if agg else 0

        ranges: list[float] = []
        for row in self.fetchall(
            "SELECT target_from, target_to FROM recommendations WHERE ticker = ?;",
            (ticker,),
        ):
            low = parse_price(row["target_from"])
            high = parse_price(row["target_to"])
            if low is not None and high is not None:
                ranges.append(high - low)

        unique_brokers = int(agg["unique_brokers"]) if agg and total else 0
        return {
            "total_recommendations": float(total),
            "target_range": statistics.fmean(ranges) if ranges else 0.0,
            "upgrade_probability": _float_or_zero(agg, "upgrade_prob"),
            "downgrade_probability": _float_or_zero(agg, "downgrade_prob"),
            "buy_rating": _float_or_zero(agg, "buy_rating"),
            "sell_rating": _float_or_zero(agg, "sell_rating"),
            "target_volatility": statistics.stdev(ranges) if len(ranges) >= 2 else 0.0,
            "unique_brokers": float(unique_brokers),
            "broker_diversity": unique_brokers / total if total else 0.0,
        }


# ── Private helpers ────────────────────────────────────────────────────────────

def parse_price(text: Optional[str]) -> Optional[float]:
    """Parse currency-prefixed text such as ``"$1,250.00"`` into a float."""
    if not text:
        return None
    cleaned = text.strip()
    for ch in _CURRENCY_CHARS:
        cleaned = cleaned.replace(ch, "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _like_any(column: str, patterns: tuple[str, ...]) -> str:
    # Patterns are module constants, never user input.
    return "(" + " OR ".join(f"{column} LIKE '%{p}%'" for p in patterns) + ")"


def _float_or_zero(row: Optional[sqlite3.Row], key: str) -> float:
    if row is None or row[key] is None:
        return 0.0
    return float(row[key])


def _rec_to_params(rec: Recommendation) -> tuple[str, ...]:
    return (
        rec.ticker,
        rec.target_from,
        rec.target_to,
        rec.company,
        rec.action,
        rec.brokerage,
        rec.rating_from,
        rec.rating_to,
        to_db_timestamp(rec.time),
    )


def _row_to_rec(row: sqlite3.Row) -> Recommendation:
    return Recommendation(
        ticker=row["ticker"],
        target_from=row["target_from"],
        target_to=row["target_to"],
        company=row["company"],
        action=row["action"],
        brokerage=row["brokerage"],
        rating_from=row["rating_from"],
        rating_to=row["rating_to"],
        time=from_db_timestamp(row["time"]),
    )
