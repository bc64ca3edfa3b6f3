"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      - committed static defaults
  2. ``config/local.toml``        - optional local overrides (gitignored)
  3. ``.env``                     - local secrets and env overrides (gitignored)
  4. Environment variables        - ``STOCK_RECOMMENDER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The synchronizer, the caches, the worker and every CLI command receive an
``AppConfig`` (or one of its sections) rather than reading env vars directly.
The scoring weights are deliberately absent: they are static for the process
lifetime and live in ``models.weights``.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/stock_recommender.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class FeedConfig(BaseModel):
    """External recommendation feed endpoint and HTTP client settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    api_token: str = ""
    timeout_seconds: float = 30.0
    page_param: str = "next_page"
    max_pages: int = 0          # 0 = follow next_page until the feed says stop

    @field_validator("max_pages")
    @classmethod
    def validate_max_pages(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_pages must be >= 0, got {v}.")
        return v


class SyncConfig(BaseModel):
    """Full / incremental sync pacing and retry settings.

    The delays are a courtesy rate limit towards the feed and the store;
    correctness does not depend on them, so tests set them to 0.
    """

    model_config = ConfigDict(frozen=True)

    batch_size: int = 100
    full_sync_page_delay_seconds: float = 2.0
    incremental_page_delay_seconds: float = 1.0
    batch_delay_seconds: float = 0.5
    max_retries: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 8.0
    worker_interval_seconds: float = 3600.0
    bootstrap_timeout_seconds: float = 60.0

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"batch_size must be >= 1, got {v}.")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must be >= 0, got {v}.")
        return v


class ScoringConfig(BaseModel):
    """Best-stocks ranking and cache settings."""

    model_config = ConfigDict(frozen=True)

    best_stocks_ttl_seconds: float = 300.0
    recent_window_days: int = 30
    default_limit: int = 10
    max_limit: int = 100

    @model_validator(mode="after")
    def validate_limits(self) -> "ScoringConfig":
        if not 1 <= self.max_limit <= 100:
            raise ValueError(f"max_limit must be in [1, 100], got {self.max_limit}.")
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError(
                f"default_limit ({self.default_limit}) must be in "
                f"[1, max_limit={self.max_limit}]."
            )
        return self


class SimilarityConfig(BaseModel):
    """Similarity search worker pool settings."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = 8
    batch_size: int = 64
    default_k: int = 5

    @field_validator("max_workers", "batch_size", "default_k")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/stock_recommender.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration, the single source of truth."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    feed: FeedConfig = FeedConfig()
    sync: SyncConfig = SyncConfig()
    scoring: ScoringConfig = ScoringConfig()
    similarity: SimilarityConfig = SimilarityConfig()
    logging: LoggingConfig = LoggingConfig()
    environment: str = "development"
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply STOCK_RECOMMENDER_* env vars to the raw config dict.

    Supported overrides:
      STOCK_RECOMMENDER_DB_PATH         → raw["database"]["db_path"]
      STOCK_RECOMMENDER_LOG_LEVEL       → raw["logging"]["level"]
      STOCK_RECOMMENDER_FEED_BASE_URL   → raw["feed"]["base_url"]
      STOCK_RECOMMENDER_FEED_API_TOKEN  → raw["feed"]["api_token"]
      STOCK_RECOMMENDER_ENVIRONMENT     → raw["environment"]
      STOCK_RECOMMENDER_DEBUG           → raw["debug"]
    """
    if db_path := os.environ.get("STOCK_RECOMMENDER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("STOCK_RECOMMENDER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if base_url := os.environ.get("STOCK_RECOMMENDER_FEED_BASE_URL"):
        raw.setdefault("feed", {})["base_url"] = base_url

    if api_token := os.environ.get("STOCK_RECOMMENDER_FEED_API_TOKEN"):
        raw.setdefault("feed", {})["api_token"] = api_token

    if environment := os.environ.get("STOCK_RECOMMENDER_ENVIRONMENT"):
        raw["environment"] = environment

    if debug := os.environ.get("STOCK_RECOMMENDER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        feed=FeedConfig(**raw.get("feed", {})),
        sync=SyncConfig(**raw.get("sync", {})),
        scoring=ScoringConfig(**raw.get("scoring", {})),
        similarity=SimilarityConfig(**raw.get("similarity", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        environment=raw.get("environment", project.get("environment", "development")),
        debug=raw.get("debug", project.get("debug", False)),
    )
