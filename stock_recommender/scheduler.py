"""Background sync worker.

No external scheduler library is required; uses stdlib ``signal`` and
``threading`` only.

Typical usage via the CLI::

    stock-recommender start-worker

Or import directly::

    from stock_recommender.scheduler import SyncWorker
    worker = SyncWorker(service, config.sync)
    worker.start()  # blocks until Ctrl-C

Jobs executed:
  - **Bootstrap** - one ``full_sync`` at start, bounded by
    ``bootstrap_timeout_seconds``. Failure is logged and the worker carries
    on with incremental syncs.
  - **Incremental** - ``incremental_sync`` every ``worker_interval_seconds``.

A failure in one run is logged but does not stop the worker. SIGINT/SIGTERM
cancel the in-flight sync (through its cancel token) and end the loop.
"""

from __future__ import annotations

import logging
import platform
import signal
import threading
from typing import Optional

from stock_recommender.config import SyncConfig
from stock_recommender.errors import StockRecommenderError
from stock_recommender.service import RecommendationService
from stock_recommender.utils.cancel import CancelToken

log = logging.getLogger(__name__)


class SyncWorker:
    """Runs a bootstrap full sync, then periodic incremental syncs.

    Parameters
    ----------
    service:
        Service whose sync operations are driven (must have a feed).
    config:
        Interval and bootstrap timeout settings.
    skip_bootstrap:
        When *True*, skip the initial full sync and go straight to the
        incremental schedule.
    """

    def __init__(
        self,
        service: RecommendationService,
        config: Optional[SyncConfig] = None,
        skip_bootstrap: bool = False,
    ) -> None:
        self.service = service
        self.config = config or service.config.sync
        self.skip_bootstrap = skip_bootstrap
        self._stop = threading.Event()
        # Reentrant: the signal handler calls stop() on the thread that may
        # already hold the lock inside _run().
        self._lock = threading.RLock()
        self._active: Optional[CancelToken] = None
        self.runs_completed = 0
        self.runs_failed = 0

    # ── Jobs ──────────────────────────────────────────────────────────────────

    def run_bootstrap(self) -> bool:
        """Full sync under the bootstrap deadline. Returns ``True`` on success."""
        token = CancelToken.with_timeout(self.config.bootstrap_timeout_seconds)
        return self._run("bootstrap-full-sync", self.service.sync_recommendations, token)

    def run_incremental(self) -> bool:
        """One incremental sync. Returns ``True`` on success."""
        return self._run("incremental-sync", self.service.incremental_sync, CancelToken())

    # ── Main loop ─────────────────────────────────────────────────────────────

    def start(self, install_signal_handlers: bool = True) -> None:
        """Start the worker.  Blocks until ``stop()`` or Ctrl-C (SIGTERM on POSIX)."""
        if install_signal_handlers:
            def _shutdown(signum, frame):  # noqa: ANN001
                log.info("Signal %d received; stopping sync worker.", signum)
                self.stop()

            signal.signal(signal.SIGINT, _shutdown)
            if platform.system() != "Windows":
                signal.signal(signal.SIGTERM, _shutdown)

        log.info(
            "Sync worker started.  interval=%.0fs  bootstrap_timeout=%.0fs",
            self.config.worker_interval_seconds,
            self.config.bootstrap_timeout_seconds,
        )

        if not self.skip_bootstrap and not self._stop.is_set():
            self.run_bootstrap()

        while not self._stop.wait(self.config.worker_interval_seconds):
            self.run_incremental()

        log.info(
            "Sync worker stopped.  completed=%d  failed=%d",
            self.runs_completed, self.runs_failed,
        )

    def stop(self) -> None:
        """End the loop and cancel the sync in flight, if any."""
        self._stop.set()
        with self._lock:
            if self._active is not None:
                self._active.cancel()

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _run(self, label: str, job, token: CancelToken) -> bool:  # noqa: ANN001
        with self._lock:
            self._active = token
            if self._stop.is_set():
                self._active = None
                return False
        try:
            run = job(token)
            self.runs_completed += 1
            log.info("[%s] ok: %d rows written.", label, run.rows_written)
            return True
        except StockRecommenderError as exc:
            self.runs_failed += 1
            log.error("[%s] failed: %s", label, exc)
            return False
        finally:
            with self._lock:
                self._active = None
