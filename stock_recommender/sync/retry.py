"""
Bounded exponential backoff for feed and store calls made during a sync.

Only ``FeedError`` and ``StoreError`` are retried; anything else (including
``OperationCancelled``) propagates on the first occurrence. Backoff pauses go
through the caller's cancel token, so a cancelled sync stops waiting.

    delay(attempt) = min(base_delay * 2 ** attempt, max_delay)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from stock_recommender.config import SyncConfig
from stock_recommender.errors import FeedError, StoreError
from stock_recommender.utils.cancel import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (FeedError, StoreError)


@dataclass(frozen=True)
class RetryPolicy:
    """Controls retries of transient feed and store failures.

    ``max_retries = 0`` disables retrying: the first failure propagates.
    """
    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    @classmethod
    def from_config(cls, config: SyncConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay_seconds,
            max_delay=config.retry_max_delay_seconds,
        )

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (``attempt`` is 0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    token: CancelToken,
    label: str,
) -> T:
    """Call ``fn`` and retry retryable failures per ``policy``.

    Args:
        fn: Zero-argument callable to invoke.
        policy: Retry bound and backoff.
        token: Cancel token; checked before each attempt and used to sleep.
        label: Short operation name for log lines.

    Returns:
        Whatever ``fn`` returns on its first successful attempt.

    Raises:
        FeedError | StoreError: The last failure once retries are exhausted.
        OperationCancelled: If ``token`` fires before or between attempts.
    """
    attempt = 0
    while True:
        token.raise_if_cancelled()
        try:
            return fn()
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.max_retries:
                if policy.max_retries:
                    logger.error(
                        "%s failed after %d retries: %s", label, policy.max_retries, exc
                    )
                raise
            pause = policy.delay(attempt)
            attempt += 1
            logger.warning(
                "%s failed (%s); retry %d/%d in %.2fs",
                label, exc, attempt, policy.max_retries, pause,
            )
            token.sleep(pause)
