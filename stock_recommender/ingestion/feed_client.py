"""
External recommendation feed client (httpx).

Wire format (JSON, one page per request)::

    GET {base_url}[?next_page=<token>]
    Authorization: Bearer <api_token>

    {"items": [{"ticker": "AAPL", "target_from": "$150.00",
                "target_to": "$175.00", "company": "Apple Inc.",
                "action": "target raised by", "brokerage": "Goldman Sachs",
                "rating_from": "Neutral", "rating_to": "Buy",
                "time": "2025-01-15T00:30:05.813548892Z"}, ...],
     "next_page": "AAPL"}

An empty ``next_page`` ends pagination. Pages are served newest-first
(see the ordering contract in ``interfaces``).

Credential setup (.env, gitignored)::

    STOCK_RECOMMENDER_FEED_BASE_URL=https://...
    STOCK_RECOMMENDER_FEED_API_TOKEN=...
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from stock_recommender.config import FeedConfig
from stock_recommender.errors import FeedError
from stock_recommender.interfaces import FeedSource
from stock_recommender.models.recommendation import FeedPage, Recommendation

logger = logging.getLogger(__name__)


class FeedClient:
    """Reads one feed page per call.

    Usage::

        with FeedClient.from_config(config.feed) as client:
            page = client.get_page()

    Attributes:
        base_url: Feed endpoint.
        page_param: Query parameter carrying the page token.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout_seconds: float = 30.0,
        page_param: str = "next_page",
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: Feed endpoint URL.
            api_token: Bearer token; omitted from headers when empty.
            timeout_seconds: Per-request timeout.
            page_param: Query parameter name for the page token.
            http_client: Pre-built ``httpx.Client`` (tests pass one backed by
                ``httpx.MockTransport``). Owned by the caller when given.
        """
        if not base_url:
            raise ValueError(
                "Feed base_url is empty. Set STOCK_RECOMMENDER_FEED_BASE_URL in .env."
            )
        self.base_url = base_url
        self.page_param = page_param
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_seconds)
        self._headers = headers

    @classmethod
    def from_config(
        cls, config: FeedConfig, http_client: Optional[httpx.Client] = None
    ) -> "FeedClient":
        return cls(
            base_url=config.base_url,
            api_token=config.api_token,
            timeout_seconds=config.timeout_seconds,
            page_param=config.page_param,
            http_client=http_client,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "FeedClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_page(self, page_token: str = "") -> FeedPage:
        """Fetch one page of the feed.

        Raises:
            FeedError: On transport failure, non-2xx status, or a payload that
                does not decode into a ``FeedPage``.
        """
        params = {self.page_param: page_token} if page_token else None
        try:
            resp = self._client.get(self.base_url, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            raise FeedError(f"Feed request failed: {exc}") from exc

        if resp.status_code != httpx.codes.OK:
            raise FeedError(
                f"Feed returned non-success status {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            page = FeedPage.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise FeedError(f"Could not decode feed page: {exc}") from exc

        logger.debug(
            "Feed page token=%r -> %d items, next=%r",
            page_token, len(page.items), page.next_page,
        )
        return page


def get_all_recommendations(
    feed: FeedSource,
    page_delay_seconds: float = 2.0,
    max_pages: int = 0,
    sleep: Callable[[float], None] = time.sleep,
    fetch: Optional[Callable[[str], FeedPage]] = None,
) -> list[Recommendation]:
    """Page through the whole feed and return every item in feed order.

    Args:
        feed: The feed to read.
        page_delay_seconds: Pause between page fetches (feed rate limit).
        max_pages: Stop after this many pages; 0 means no bound.
        sleep: Pause function (a cancel token's ``sleep`` in the synchronizer).
        fetch: Page fetcher; defaults to ``feed.get_page``. The synchronizer
            passes a retrying wrapper.

    Raises:
        FeedError: Propagated from the first failing page.
    """
    fetch = fetch or feed.get_page
    items: list[Recommendation] = []
    token = ""
    pages = 0
    while True:
        page = fetch(token)
        pages += 1
        items.extend(page.items)

        if not page.next_page:
            break
        if max_pages and pages >= max_pages:
            logger.warning(
                "Stopping feed pagination at max_pages=%d (more pages available)",
                max_pages,
            )
            break
        token = page.next_page
        sleep(page_delay_seconds)

    logger.info("Fetched %d recommendations across %d feed pages", len(items), pages)
    return items
