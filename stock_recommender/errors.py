"""
Error taxonomy for the recommendation engine.

Two failure families cross the engine boundary:

  - ``FeedError``  - the external feed failed (transport error, non-2xx
    status, or a payload that does not decode into recommendations).
  - ``StoreError`` - the local store failed (query or transaction error).

Both propagate to the caller unchanged by the synchronizer (apart from the
bounded retry in ``sync.retry``). Scoring never raises, and absence
("no latest recommendation", "fewer cached results than requested") is a
normal outcome, never an error.

A failed ``full_sync`` may leave the store empty or partially repopulated:
delete and batch inserts are not one atomic unit. Recovery is a
caller-triggered full resync.
"""

from __future__ import annotations

from typing import Optional


class StockRecommenderError(Exception):
    """Base class for all errors raised by this package."""


class FeedError(StockRecommenderError):
    """The external recommendation feed could not be read.

    Attributes:
        status_code: HTTP status when the failure was a non-2xx response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoreError(StockRecommenderError):
    """A read or write against the recommendation store failed."""


class SyncError(StockRecommenderError):
    """A full or incremental sync did not complete.

    The store may be partially repopulated after a failed full sync; the
    remedy is to trigger another full sync.
    """

    def __init__(self, mode: str, message: str) -> None:
        super().__init__(f"{mode} sync failed: {message}")
        self.mode = mode


class OperationCancelled(StockRecommenderError):
    """The caller's cancel token fired before the operation finished."""
