"""Tests for RetryPolicy and call_with_retry()."""

from __future__ import annotations

import pytest

from stock_recommender.config import SyncConfig
from stock_recommender.errors import FeedError, OperationCancelled, StoreError
from stock_recommender.sync.retry import RetryPolicy, call_with_retry
from stock_recommender.utils.cancel import CancelToken


class _Flaky:
    def __init__(self, failures: int, exc: Exception) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


NO_WAIT = RetryPolicy(max_retries=3, base_delay=0, max_delay=0)


class TestRetryPolicy:
    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(max_retries=5, base_delay=0.5, max_delay=3.0)
        assert [policy.delay(a) for a in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_from_config(self):
        policy = RetryPolicy.from_config(
            SyncConfig(max_retries=7, retry_base_delay_seconds=0.1, retry_max_delay_seconds=2)
        )
        assert policy == RetryPolicy(max_retries=7, base_delay=0.1, max_delay=2.0)


class TestCallWithRetry:
    def test_success_first_try(self):
        fn = _Flaky(0, FeedError("x"))
        assert call_with_retry(fn, NO_WAIT, CancelToken(), "op") == "ok"
        assert fn.calls == 1

    @pytest.mark.parametrize("exc", [FeedError("down"), StoreError("locked")])
    def test_retries_transient_errors(self, exc):
        fn = _Flaky(2, exc)
        assert call_with_retry(fn, NO_WAIT, CancelToken(), "op") == "ok"
        assert fn.calls == 3

    def test_gives_up_after_max_retries(self):
        fn = _Flaky(10, FeedError("down"))
        with pytest.raises(FeedError):
            call_with_retry(fn, NO_WAIT, CancelToken(), "op")
        assert fn.calls == 4

    def test_zero_retries_disables_retrying(self):
        fn = _Flaky(1, StoreError("locked"))
        with pytest.raises(StoreError):
            call_with_retry(fn, RetryPolicy(max_retries=0), CancelToken(), "op")
        assert fn.calls == 1

    def test_other_errors_are_not_retried(self):
        fn = _Flaky(1, ValueError("bug"))
        with pytest.raises(ValueError):
            call_with_retry(fn, NO_WAIT, CancelToken(), "op")
        assert fn.calls == 1

    def test_cancelled_token_stops_before_calling(self):
        token = CancelToken()
        token.cancel()
        fn = _Flaky(0, FeedError("x"))
        with pytest.raises(OperationCancelled):
            call_with_retry(fn, NO_WAIT, token, "op")
        assert fn.calls == 0

    def test_deadline_inside_backoff_cancels(self):
        fn = _Flaky(5, FeedError("down"))
        policy = RetryPolicy(max_retries=5, base_delay=10.0, max_delay=10.0)
        with pytest.raises(OperationCancelled):
            call_with_retry(fn, policy, CancelToken.with_timeout(0.05), "op")
        assert fn.calls == 1
