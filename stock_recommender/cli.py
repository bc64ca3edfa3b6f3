"""
Stock recommender CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, sync, ranking query, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    stock-recommender --help
    stock-recommender init-db
    stock-recommender validate-config
    stock-recommender sync --full
    stock-recommender sync --incremental
    stock-recommender best --limit 10
    stock-recommender similar AAPL --k 5
    stock-recommender recommendations --ticker AAPL --page 1 --limit 20
    stock-recommender tickers
    stock-recommender health
    stock-recommender sync-history
    stock-recommender start-worker
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stock-recommender",
    help="Stock recommendation sync and ranking engine (ops CLI).",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stock_recommender.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from stock_recommender.utils.logging import configure_logging
    configure_logging(config.logging)


def _build_service_or_exit(config, db_path: Optional[str] = None):
    """Build the service, applying a ``--db-path`` override."""
    from stock_recommender.errors import StockRecommenderError
    from stock_recommender.service import build_service

    if db_path:
        config = config.model_copy(
            update={"database": config.database.model_copy(update={"db_path": db_path})}
        )
    try:
        return build_service(config)
    except (StockRecommenderError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _format_rec(rec) -> str:
    return (
        f"  {rec.ticker:<6} | {rec.time.strftime('%Y-%m-%d %H:%M')} | "
        f"{rec.brokerage} | {rec.action} | {rec.rating_from} → {rec.rating_to} | "
        f"{rec.target_from} → {rec.target_to}"
    )


_DB_PATH_OPTION = typer.Option(
    None, "--db-path", help="Override DB path from config (e.g. data/db/test.db)."
)
_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from stock_recommender.db.connection import get_connection
    from stock_recommender.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Feed base URL:    {config.feed.base_url or '(not set)'}")
    typer.echo(f"  Feed token set:   {bool(config.feed.api_token)}")
    typer.echo(f"  Sync batch size:  {config.sync.batch_size}")
    typer.echo(f"  Max retries:      {config.sync.max_retries}")
    typer.echo(f"  Best-stocks TTL:  {config.scoring.best_stocks_ttl_seconds:.0f}s")
    typer.echo(f"  Similarity pool:  {config.similarity.max_workers} workers")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        dumped = config.model_dump()
        if dumped["feed"]["api_token"]:
            dumped["feed"]["api_token"] = "***"
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("sync")
def sync(
    full: bool = typer.Option(
        False, "--full", help="Replace the store with the whole feed."
    ),
    incremental: bool = typer.Option(
        False, "--incremental", help="Append feed items newer than the newest stored one."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Cancel the sync after this many seconds."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Synchronize the local store with the external feed.

    Exactly one of --full / --incremental is required.
    """
    from stock_recommender.errors import SyncError
    from stock_recommender.utils.cancel import CancelToken

    if full == incremental:
        typer.echo("[ERROR] Pass exactly one of --full or --incremental.", err=True)
        raise typer.Exit(code=1)

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    token = CancelToken.with_timeout(timeout) if timeout else CancelToken()
    mode = "full" if full else "incremental"
    typer.echo(f"Running {mode} sync ...")

    with _build_service_or_exit(config, db_path) as service:
        try:
            if full:
                run = service.sync_recommendations(token)
            else:
                run = service.incremental_sync(token)
        except SyncError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"  Rows written: {run.rows_written}")
    typer.echo(f"  Run slug:     {run.run_slug}")
    typer.echo(f"[OK] {mode.capitalize()} sync complete.")


@app.command("best")
def best(
    limit: int = typer.Option(10, "--limit", "-n", help="How many stocks (1–100)."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show the best-ranked stocks over the recent window."""
    from stock_recommender.errors import StockRecommenderError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        try:
            recs = service.get_best_stocks(limit)
        except StockRecommenderError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps([r.model_dump(mode="json") for r in recs], indent=2))
        return

    if not recs:
        typer.echo("No recent recommendations. Run `stock-recommender sync --full` first.")
        return
    typer.echo(f"Best {len(recs)} stock(s):")
    for rank, rec in enumerate(recs, start=1):
        typer.echo(f"{rank:>3}." + _format_rec(rec))


@app.command("similar")
def similar(
    ticker: str = typer.Argument(..., help="Ticker to find neighbours for."),
    k: int = typer.Option(5, "--k", "-k", help="Number of similar stocks."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show the stocks whose feature vectors are closest to TICKER."""
    from stock_recommender.errors import StockRecommenderError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        try:
            results = service.find_similar_stocks(ticker, k)
        except StockRecommenderError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps([s.model_dump() for s in results], indent=2))
        return

    typer.echo(f"Stocks similar to {ticker.upper()}:")
    for s in results:
        typer.echo(f"  {s.ticker:<6} | similarity={s.similarity:.4f}")
    if not results:
        typer.echo("  (none)")


@app.command("recommendations")
def recommendations(
    ticker: str = typer.Option("", "--ticker", "-t", help="Filter by ticker (default: all)."),
    page: int = typer.Option(1, "--page", help="1-based page number."),
    limit: int = typer.Option(50, "--limit", "-n", help="Page size (1–100)."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List stored recommendations, newest first."""
    from stock_recommender.errors import StockRecommenderError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        try:
            items, total = service.get_recommendations(ticker, page, limit)
        except StockRecommenderError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"Showing {len(items)} of {total} recommendation(s):")
    for rec in items:
        typer.echo(_format_rec(rec))


@app.command("tickers")
def tickers(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List every ticker with stored recommendations."""
    from stock_recommender.errors import StockRecommenderError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        try:
            available = service.get_available_tickers()
        except StockRecommenderError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"{len(available)} ticker(s):")
    if available:
        typer.echo("  " + ", ".join(available))


@app.command("health")
def health(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Check that the store answers queries."""
    from stock_recommender.errors import StockRecommenderError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        try:
            service.health_check()
        except StockRecommenderError as exc:
            typer.echo(f"[ERROR] Store unhealthy: {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo("[OK] Store healthy.")


@app.command("sync-history")
def sync_history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show."),
    mode: Optional[str] = typer.Option(
        None, "--mode", help="Filter by mode: full or incremental."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show recent sync runs from the audit table."""
    from stock_recommender.models.sync import VALID_SYNC_MODES

    if mode is not None and mode not in VALID_SYNC_MODES:
        typer.echo(f"[ERROR] --mode must be one of {sorted(VALID_SYNC_MODES)}.", err=True)
        raise typer.Exit(code=1)

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with _build_service_or_exit(config, db_path) as service:
        runs = service.recent_sync_runs(limit=limit, mode=mode)

    if not runs:
        typer.echo("No sync runs recorded.")
        return
    for run in runs:
        finished = run.finished_at.strftime("%Y-%m-%d %H:%M:%S") if run.finished_at else "-"
        line = (
            f"  {run.started_at.strftime('%Y-%m-%d %H:%M:%S')} | {run.mode:<11} | "
            f"{run.status:<7} | rows={run.rows_written:<6} | finished={finished}"
        )
        if run.error_message:
            line += f" | {run.error_message}"
        typer.echo(line)


@app.command("start-worker")
def start_worker(
    skip_bootstrap: bool = typer.Option(
        False,
        "--skip-bootstrap",
        help="Skip the initial full sync and only run incremental syncs.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run the background sync worker (blocks until Ctrl-C).

    \b
    Bootstrap:   one full sync bounded by sync.bootstrap_timeout_seconds.
    Incremental: one incremental sync every sync.worker_interval_seconds.
    """
    from stock_recommender.scheduler import SyncWorker

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not config.feed.base_url:
        typer.echo(
            "[ERROR] feed.base_url is not set. "
            "Set STOCK_RECOMMENDER_FEED_BASE_URL in .env.",
            err=True,
        )
        raise typer.Exit(code=1)

    with _build_service_or_exit(config, db_path) as service:
        typer.echo("Sync worker running. Press Ctrl-C to stop.")
        SyncWorker(service, config.sync, skip_bootstrap=skip_bootstrap).start()

    typer.echo("[OK] Worker stopped.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
