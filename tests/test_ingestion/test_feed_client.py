"""
Tests for FeedClient and get_all_recommendations() using httpx.MockTransport.

No network access: every request is answered by an in-process handler.
"""

from __future__ import annotations

import httpx
import pytest

from stock_recommender.config import FeedConfig
from stock_recommender.errors import FeedError
from stock_recommender.ingestion.feed_client import FeedClient, get_all_recommendations

BASE_URL = "https://feed.example.com/list"

ITEM = {
    "ticker": "aapl",
    "target_from": "$150.00",
    "target_to": "$175.00",
    "company": "Apple Inc.",
    "action": "target raised by",
    "brokerage": "Goldman Sachs",
    "rating_from": "Neutral",
    "rating_to": "Buy",
    "time": "2025-01-15T00:30:05.813548892Z",
}


def _client(handler, **kwargs) -> FeedClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return FeedClient(BASE_URL, http_client=http, **kwargs)


class TestGetPage:
    def test_decodes_page(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [ITEM], "next_page": "AAPL"})

        page = _client(handler).get_page()
        assert page.next_page == "AAPL"
        assert len(page.items) == 1
        rec = page.items[0]
        assert rec.ticker == "AAPL"
        assert rec.time.microsecond == 813548
        assert rec.time.utcoffset().total_seconds() == 0

    def test_sends_page_token_and_bearer(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [], "next_page": ""})

        _client(handler, api_token="secret").get_page("XYZ")
        assert seen[0].url.params["next_page"] == "XYZ"
        assert seen[0].headers["Authorization"] == "Bearer secret"

    def test_first_page_has_no_token_and_no_auth_without_token(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": None, "next_page": None})

        page = _client(handler).get_page()
        assert "next_page" not in seen[0].url.params
        assert "Authorization" not in seen[0].headers
        assert page.items == [] and page.next_page == ""

    def test_non_success_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="busy")

        with pytest.raises(FeedError) as exc_info:
            _client(handler).get_page()
        assert exc_info.value.status_code == 503

    def test_undecodable_body_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(FeedError):
            _client(handler).get_page()

    def test_invalid_item_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [{"ticker": ""}], "next_page": ""})

        with pytest.raises(FeedError):
            _client(handler).get_page()

    def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FeedError):
            _client(handler).get_page()


class TestConstruction:
    def test_empty_base_url_rejected(self):
        with pytest.raises(ValueError):
            FeedClient("")

    def test_from_config(self):
        client = FeedClient.from_config(
            FeedConfig(base_url=BASE_URL, page_param="cursor")
        )
        with client:
            assert client.base_url == BASE_URL
            assert client.page_param == "cursor"


class TestGetAllRecommendations:
    def test_follows_pages_until_empty_token(self):
        pages = {
            "": {"items": [ITEM], "next_page": "p2"},
            "p2": {"items": [dict(ITEM, ticker="MSFT")], "next_page": "p3"},
            "p3": {"items": [dict(ITEM, ticker="TSLA")], "next_page": ""},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            token = request.url.params.get("next_page", "")
            return httpx.Response(200, json=pages[token])

        sleeps: list[float] = []
        items = get_all_recommendations(
            _client(handler), page_delay_seconds=2.0, sleep=sleeps.append
        )
        assert [r.ticker for r in items] == ["AAPL", "MSFT", "TSLA"]
        assert sleeps == [2.0, 2.0]

    def test_max_pages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [ITEM], "next_page": "more"})

        items = get_all_recommendations(
            _client(handler), max_pages=3, sleep=lambda s: None
        )
        assert len(items) == 3
