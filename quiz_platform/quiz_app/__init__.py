"""quiz_app package – application factory and blueprint registration."""

from __future__ import annotations

import os
import threading
from time import perf_counter

import click
from flask import Flask, current_app, g, request
from sqlalchemy import event

from config import resolve_config
from .blueprints import BLUEPRINTS
from .extensions import cors, db, migrate, limiter
from .logging_config import configure_logging, assign_request_id
from .metrics import record_request
from .services.assessment_client import build_assessment_client, build_reengagement_client
from .services.reconciliation_service import ReconciliationJob, ReconciliationScheduler
from .services.settlement_pipeline import SettlementPipeline

_scheduler_lock = threading.Lock()


def create_app(config_name: str | None = None, **components) -> Flask:
    """Application factory used by both CLI and runtime servers.

    Keyword arguments override the collaborators built from config
    (`assessment_client`, `reengagement_client`, `settlement_pipeline`,
    `reconciliation_job`), which is how tests inject fakes.
    """

    app = Flask(__name__)
    _configure_app(app, config_name)
    configure_logging(app)
    _register_extensions(app)
    _register_services(app, components)
    _register_blueprints(app)
    _register_shellcontext(app)
    _register_cli(app)
    _register_scheduler(app)
    _register_request_hooks(app)

    return app


def _configure_app(app: Flask, config_name: str | None) -> None:
    env_name = config_name or os.getenv("FLASK_CONFIG")
    config_obj = resolve_config(env_name)
    app.config.from_object(config_obj)


def _register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    _configure_sqlite_engine(app)
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
    )
    limiter.default_limits = app.config.get("RATE_LIMIT_DEFAULTS", [])
    limiter.init_app(app)


def _register_services(app: Flask, overrides: dict) -> None:
    """Build each collaborator once and keep it on `app.extensions`."""

    config = app.config
    assessment_client = overrides.get("assessment_client") or build_assessment_client(config)
    reengagement_client = overrides.get("reengagement_client") or build_reengagement_client(config)
    pipeline = overrides.get("settlement_pipeline") or SettlementPipeline(
        assessment_client,
        token_ttl_minutes=config.get("SESSION_TOKEN_TTL_MIN", 60),
    )
    job = overrides.get("reconciliation_job") or ReconciliationJob(
        reengagement_client,
        window_start_min=config.get("RECONCILIATION_WINDOW_START_MIN", 5),
        window_end_min=config.get("RECONCILIATION_WINDOW_END_MIN", 6),
    )
    app.extensions["assessment_client"] = assessment_client
    app.extensions["reengagement_client"] = reengagement_client
    app.extensions["settlement_pipeline"] = pipeline
    app.extensions["reconciliation_job"] = job


def _register_blueprints(app: Flask) -> None:
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)


def _register_shellcontext(app: Flask) -> None:
    # Lazy import inside function to avoid circular dependencies.
    from . import models

    @app.shell_context_processor
    def shell_context():
        return {
            "db": db,
            "QuizUser": models.QuizUser,
            "QuizSession": models.QuizSession,
            "SessionQuestion": models.SessionQuestion,
        }


def _register_scheduler(app: Flask) -> None:
    """Start the reconciliation scheduler with the first served request."""

    if app.config.get("TESTING") or not app.config.get("RECONCILIATION_ENABLED"):
        return

    @app.before_request
    def _start_reconciliation():
        if current_app.extensions.get("reconciliation_scheduler") is not None:
            return
        with _scheduler_lock:
            if current_app.extensions.get("reconciliation_scheduler") is not None:
                return
            scheduler = ReconciliationScheduler(
                current_app._get_current_object(),
                current_app.extensions["reconciliation_job"],
                interval_seconds=current_app.config.get("RECONCILIATION_INTERVAL_SEC", 60),
            )
            scheduler.start()
            current_app.extensions["reconciliation_scheduler"] = scheduler


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def start_request():
        assign_request_id()
        g.request_started_at = perf_counter()

    @app.after_request
    def finalize(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        started = getattr(g, "request_started_at", None)
        latency = perf_counter() - started if started else 0.0
        endpoint = request.endpoint or request.path
        record_request(request.method, endpoint, response.status_code, latency)
        return response


def _configure_sqlite_engine(app: Flask) -> None:
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not uri.startswith("sqlite"):
        return
    busy_timeout_ms = int(app.config.get("SQLITE_BUSY_TIMEOUT_MS", 15000))

    with app.app_context():
        engine = db.engine

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms};")
                cursor.execute("PRAGMA synchronous=NORMAL;")
                cursor.execute("PRAGMA foreign_keys=ON;")
            finally:
                cursor.close()


def _register_cli(app: Flask) -> None:
    @app.cli.command("reconcile")
    def reconcile() -> None:
        """Run one reconciliation tick and print its summary."""

        summary = app.extensions["reconciliation_job"].run_tick()
        click.echo(
            f"processed={summary['processed']} triggered={summary['triggered']} errors={summary['errors']}"
        )

    @app.cli.command("init-db")
    def init_db() -> None:
        """Create tables directly (local development without migrations)."""

        db.create_all()
        click.echo("Database tables created.")
