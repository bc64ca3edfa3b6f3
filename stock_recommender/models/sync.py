"""
Sync run audit record.

``SyncRun`` is the only mutable model in the package: ``status``,
``rows_written``, ``error_message`` and ``finished_at`` are filled in as the
sync progresses. Every full and incremental sync triggered through the
service facade writes one row to ``sync_runs``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

VALID_SYNC_MODES = frozenset({"full", "incremental"})
VALID_SYNC_STATUSES = frozenset({"started", "success", "failed"})


class SyncRun(BaseModel):
    """Audit record for one sync execution.

    Attributes:
        run_id: Auto-assigned DB PK; ``None`` before insertion.
        run_slug: UUID string identifying the run in logs.
        mode: ``"full"`` or ``"incremental"``.
        status: ``"started"``, ``"success"`` or ``"failed"``.
        rows_written: Recommendations upserted by the run.
        error_message: Failure description when ``status == "failed"``.
        started_at: UTC start time.
        finished_at: UTC end time; ``None`` while running.
    """

    run_id: Optional[int] = None
    run_slug: str
    mode: str
    status: str = "started"
    rows_written: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in VALID_SYNC_MODES:
            raise ValueError(f"mode must be one of {sorted(VALID_SYNC_MODES)}, got '{v}'.")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_SYNC_STATUSES:
            raise ValueError(
                f"status must be one of {sorted(VALID_SYNC_STATUSES)}, got '{v}'."
            )
        return v
