"""
Model Lifecycle Engine — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, training sweep, prediction, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    model-lifecycle --help
    model-lifecycle init-db
    model-lifecycle validate-config
    model-lifecycle train --tenant acme
    model-lifecycle predict --tenant acme --model-type sales_forecast --input "[1,2,3,4,5,6,7]"
    model-lifecycle status --tenant acme
    model-lifecycle score-transactions --tenant acme --amounts "120,95,4000"
    model-lifecycle forecast --values "5,6,7,6,8,9,8,10,11"
    model-lifecycle start-scheduler --tenant acme --tenant globex
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="model-lifecycle",
    help="Per-tenant adaptive model lifecycle engine.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from model_lifecycle.config import load_config

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
    from model_lifecycle.utils.logging import configure_logging
    configure_logging(config.logging)


def _build_orchestrator(config):
    from model_lifecycle.pipeline.orchestrator import LifecycleOrchestrator
    return LifecycleOrchestrator.from_config(config)


def _check_tenant_or_exit(tenant_id: str) -> None:
    from model_lifecycle.governance.registry import validate_tenant_id

    try:
        validate_tenant_id(tenant_id)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _parse_floats(raw: str) -> list[float]:
    try:
        return [float(v) for v in raw.split(",") if v.strip()]
    except ValueError:
        typer.echo(f"[ERROR] Expected comma-separated numbers, got: {raw}", err=True)
        raise typer.Exit(code=1)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override record DB path from config (e.g. data/db/test.db).",
    ),
    cache_path: Optional[str] = typer.Option(
        None,
        "--cache-path",
        help="Override model store path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Create the record tables and the model store.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from model_lifecycle.db.connection import open_db
    from model_lifecycle.db.schema import (
        RECORD_TABLE_NAMES,
        apply_schema,
        apply_store_schema,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    records_path = db_path or config.database.db_path
    store_path = cache_path or config.cache.db_path
    typer.echo(f"Initializing record store at: {records_path}")
    with open_db(config.database, records_path) as conn:
        apply_schema(conn)

    typer.echo(f"Initializing model store at:  {store_path}")
    with open_db(config.cache, store_path) as conn:
        apply_store_schema(conn)

    typer.echo(f"  Record tables: {', '.join(RECORD_TABLE_NAMES)}")
    typer.echo("[OK] Databases ready.")


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
    lc = config.lifecycle

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Record DB:        {config.database.db_path}")
    typer.echo(f"  Model store:      {config.cache.db_path}")
    typer.echo(f"  Tracked models:   {', '.join(lc.tracked_model_types)}")
    typer.echo(f"  Update interval:  {lc.update_interval_hours} h")
    typer.echo(f"  Confidence range: [{lc.confidence_low}, {lc.confidence_high})")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("train")
def train(
    tenant: str = typer.Option(..., "--tenant", help="Tenant (organization) id."),
    model_type: Optional[str] = typer.Option(
        None,
        "--model-type",
        help="Train only this model type (default: initialize + freshness sweep).",
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Train one model type, or run the full initialize sweep for a tenant."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _check_tenant_or_exit(tenant)
    orchestrator = _build_orchestrator(config)

    if model_type:
        try:
            outcome = asyncio.run(orchestrator.update_model(tenant, model_type))
        except ValueError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)
        outcomes = [outcome]
    else:
        result = asyncio.run(orchestrator.initialize(tenant))
        if not result.backend_available:
            typer.echo("[ERROR] Numeric backend unavailable.", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"  Loaded from cache: {', '.join(result.loaded) or '(none)'}")
        outcomes = result.outcomes

    for o in outcomes:
        detail = f"v{o.version} perf={o.performance:.3f}" if o.version else (o.error or "")
        typer.echo(f"  {o.model_type:<22} {o.status.value:<18} {detail}")

    if any(o.status.value == "failed" for o in outcomes):
        typer.echo("[WARN] Some model types failed; they will be retried on the next sweep.")
        raise typer.Exit(code=1)
    typer.echo("[OK] Training complete.")


@app.command("predict")
def predict(
    tenant: str = typer.Option(..., "--tenant", help="Tenant (organization) id."),
    model_type: str = typer.Option(..., "--model-type", help="Tracked model type."),
    input_json: str = typer.Option(
        ...,
        "--input",
        help='JSON array: 1-D (one row, standardized) or 2-D (rows, unscaled).',
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Predict with the cached model for a tenant."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _check_tenant_or_exit(tenant)

    try:
        input_data = json.loads(input_json)
    except json.JSONDecodeError as exc:
        typer.echo(f"[ERROR] --input is not valid JSON: {exc}", err=True)
        raise typer.Exit(code=1)

    orchestrator = _build_orchestrator(config)

    async def _run():
        await orchestrator.load_cached(tenant)
        return await orchestrator.predict(tenant, model_type, input_data)

    prediction = asyncio.run(_run())
    if prediction is None:
        typer.echo("[WARN] No prediction available.", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(prediction.model_dump()))


@app.command("status")
def status(
    tenant: str = typer.Option(..., "--tenant", help="Tenant (organization) id."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Show the cached state of every tracked model type."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _check_tenant_or_exit(tenant)
    orchestrator = _build_orchestrator(config)

    asyncio.run(orchestrator.load_cached(tenant))
    typer.echo(f"Tenant: {tenant}")
    for st in orchestrator.status(tenant):
        version = st.metadata.version if st.metadata else "-"
        age = (
            f"{st.freshness.age_hours:.1f}h"
            if st.freshness and st.freshness.age_hours is not None
            else "-"
        )
        typer.echo(f"  {st.model_type:<22} {st.state.value:<9} v{version:<8} age={age}")


@app.command("detect-outliers")
def detect_outliers(
    values: str = typer.Option(..., "--values", help="Comma-separated numbers."),
    threshold: Optional[float] = typer.Option(
        None, "--threshold", help="Z-score threshold (default from config)."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print the indices of z-score outliers in a batch."""
    from model_lifecycle.ml.anomaly import detect_outliers as _detect

    config = _load_config_or_exit(config_path)
    data = _parse_floats(values)
    indices = _detect(
        data,
        threshold=threshold if threshold is not None else config.anomaly.z_threshold,
        min_points=config.anomaly.min_points,
    )
    typer.echo(json.dumps(indices))


@app.command("forecast")
def forecast(
    values: str = typer.Option(..., "--values", help="Comma-separated series, oldest first."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Train a throwaway forecaster on one series and print the next value."""
    from model_lifecycle.errors import BackendUnavailableError
    from model_lifecycle.ml.backend import EstimatorBackend
    from model_lifecycle.ml.forecaster import Forecaster

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    series = _parse_floats(values)

    backend = EstimatorBackend(random_seed=config.lifecycle.random_seed)
    try:
        backend.initialize()
    except BackendUnavailableError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    forecaster = Forecaster.from_config(
        backend, config.forecaster, max_epochs=config.lifecycle.max_epochs
    )
    scaling = forecaster.train_model(series)
    if scaling is None:
        typer.echo(
            f"[ERROR] Need at least {forecaster.window_size + 1} values, got {len(series)}.",
            err=True,
        )
        raise typer.Exit(code=1)

    next_value = forecaster.predict_next(series[-forecaster.window_size:], scaling)
    typer.echo(json.dumps({"next": next_value, "window_size": forecaster.window_size}))


@app.command("score-transactions")
def score_transactions(
    tenant: str = typer.Option(..., "--tenant", help="Tenant (organization) id."),
    amounts: str = typer.Option(..., "--amounts", help="Comma-separated transaction amounts."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Score amounts with the tenant's cached fraud model and print flagged indices."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _check_tenant_or_exit(tenant)
    data = _parse_floats(amounts)
    orchestrator = _build_orchestrator(config)

    async def _run():
        await orchestrator.load_cached(tenant)
        return await orchestrator.score_transactions(tenant, data)

    scores = asyncio.run(_run())
    if scores is None:
        typer.echo("[WARN] No fraud model available.", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({
        "errors": scores.errors,
        "flagged": scores.flagged,
        "confidence": scores.confidence,
    }))


@app.command("risk-score")
def risk_score(
    balance: float = typer.Option(..., "--balance", help="Current debt balance."),
    credit_limit: float = typer.Option(..., "--credit-limit", help="Granted credit limit."),
    account_age_days: float = typer.Option(..., "--account-age-days", help="Customer age in days."),
    on_time_ratio: float = typer.Option(..., "--on-time-ratio", help="On-time payment ratio (0-1)."),
) -> None:
    """Compute the rule-based credit risk score for one customer."""
    from model_lifecycle.ml.risk_calculator import calculate_score, get_risk_assessment

    score = calculate_score(balance, credit_limit, account_age_days, on_time_ratio)
    assessment = get_risk_assessment(score)
    typer.echo(f"Score: {score}  ({assessment.label})")
    typer.echo(f"  {assessment.reason}")


@app.command("start-scheduler")
def start_scheduler(
    tenants: list[str] = typer.Option(..., "--tenant", help="Tenant id (repeatable)."),
    interval_minutes: Optional[float] = typer.Option(
        None, "--interval-minutes", help="Minutes between sweeps (default from config)."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run freshness sweeps for the given tenants until Ctrl-C."""
    from model_lifecycle.scheduler import SweepScheduler

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    for tenant in tenants:
        _check_tenant_or_exit(tenant)

    scheduler = SweepScheduler(
        _build_orchestrator(config),
        tenants,
        interval_minutes=interval_minutes or config.lifecycle.sweep_interval_minutes,
    )
    typer.echo(f"Scheduler running for: {', '.join(tenants)}  (Ctrl-C to stop)")
    try:
        asyncio.run(scheduler.start())
    except KeyboardInterrupt:
        typer.echo("\nScheduler stopped.")


if __name__ == "__main__":
    app()
