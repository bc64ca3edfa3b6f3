"""
Collaborator contracts consumed by the sync and ranking engine.

``Store`` is implemented by ``db.store.SqliteStore``; ``FeedSource`` by
``ingestion.feed_client.FeedClient``. Tests substitute in-memory fakes.

Feed ordering contract
----------------------
``FeedSource.get_page`` must serve items newest-first across the whole
page sequence (reverse-chronological). Incremental sync stops at the first
item that is not strictly newer than the newest stored recommendation; if a
feed breaks this ordering, incremental sync stops too early or too late.
The synchronizer logs a warning when it observes a violation but does not
change its stopping rule.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Protocol, Sequence, runtime_checkable

from stock_recommender.models.recommendation import (
    FeatureVector,
    FeedPage,
    Recommendation,
)


@runtime_checkable
class Store(Protocol):
    """Durable keyed storage for recommendations."""

    def get_recent_recommendations(self, window: timedelta) -> list[Recommendation]:
        """Recommendations newer than ``now - window``, newest first."""
        ...

    def get_recommendations(
        self, ticker: str, page: int, limit: int
    ) -> tuple[list[Recommendation], int]:
        """One page of recommendations (newest first) and the total count.

        An empty ``ticker`` selects every ticker.
        """
        ...

    def get_latest_recommendation(self) -> Optional[Recommendation]:
        """The newest stored recommendation, or ``None`` for an empty store."""
        ...

    def insert_recommendations(self, batch: Sequence[Recommendation]) -> int:
        """Upsert ``batch`` in one transaction keyed on ``(ticker, time)``."""
        ...

    def delete_all_recommendations(self) -> int:
        ...

    def get_available_tickers(self) -> list[str]:
        ...

    def get_stock_features(self, ticker: str) -> FeatureVector:
        ...

    def get_all_stock_features(self) -> list[tuple[str, FeatureVector]]:
        ...

    def ping(self) -> None:
        ...


@runtime_checkable
class FeedSource(Protocol):
    """Paginated, read-only, newest-first recommendation feed."""

    def get_page(self, page_token: str = "") -> FeedPage:
        """Fetch one page; ``""`` requests the first page.

        An empty ``FeedPage.next_page`` signals the end of the feed.
        """
        ...
