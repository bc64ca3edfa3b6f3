"""
Cooperative cancellation for long-running sync and similarity calls.

A ``CancelToken`` plays the role of a request context: callers may cancel it
explicitly (e.g. from a signal handler) or give it a deadline. Work loops call
``raise_if_cancelled()`` between steps, and every inter-step pause goes
through ``sleep()`` so that a cancelled caller does not keep waiting.

Usage::

    token = CancelToken.with_timeout(60)
    synchronizer.full_sync(token)
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from stock_recommender.errors import OperationCancelled


class CancelToken:
    """Cancellation flag with an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        """Create a token that reports itself cancelled after ``seconds``."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or ``None`` when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("Operation cancelled or deadline exceeded.")

    def sleep(self, seconds: float) -> None:
        """Pause for ``seconds``, waking early and raising if cancelled.

        Raises:
            OperationCancelled: If the token is cancelled before or during
                the pause, or the deadline falls inside it.
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            raise OperationCancelled("Deadline exceeded while waiting.")
        if self._event.wait(seconds):
            raise OperationCancelled("Operation cancelled while waiting.")


def background() -> CancelToken:
    """Return a fresh token that is never cancelled unless asked to."""
    return CancelToken()
