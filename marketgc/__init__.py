"""
Marketplace Garbage Collector
Flask Application Factory.

Usage:
    from marketgc import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from marketgc.config import config
from marketgc.models import db
from marketgc.middleware.logging_config import configure_logging
from marketgc.middleware.timing import init_request_timing
from marketgc.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse missing DATABASE_URL / SECRET_KEY
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from marketgc.models import marketplace as _marketplace_models            # noqa: F401
    from marketgc.models import abandoned_process as _abandoned_models        # noqa: F401
    from marketgc.models import scheduling as _scheduling_models              # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
            and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from marketgc.blueprints.garbage_collector_bp import garbage_collector_bp
    from marketgc.blueprints.health_bp import health_bp

    app.register_blueprint(garbage_collector_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "RATE_LIMITED",
                "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "INTERNAL_ERROR"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("marketgc.services.scheduled_jobs")  # registers @register_job handlers
    from marketgc.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    SchedulerService.ensure_jobs_registered()

    return app


def _register_cli(app):
    """Attach ``flask gc-scan`` and ``flask gc-cleanup``."""

    @app.cli.command("gc-scan")
    @click.option("--type", "process_types", multiple=True,
                  help="Process type to scan (repeatable). Defaults to all.")
    @click.option("--dry-run", is_flag=True, help="Report counts without tracking anything.")
    def gc_scan_cmd(process_types, dry_run):
        """Scan for abandoned processes."""
        from marketgc.services.abandoned_scanner import scan_abandoned_processes
        from marketgc.core.exceptions import ValidationError

        try:
            report = scan_abandoned_processes(list(process_types) or None, dry_run=dry_run)
        except ValidationError as exc:
            raise click.UsageError(f"{exc.code}: {exc}") from exc
        click.echo(json.dumps(report, indent=2))
        if report["errors"] and not report["scanResults"]:
            raise SystemExit(1)

    @app.cli.command("gc-cleanup")
    @click.option("--type", "process_types", multiple=True,
                  help="Process type to clean up (repeatable). Defaults to all.")
    @click.option("--older-than-days", type=int, default=None,
                  help="Retention window in days. Defaults to GC_RETENTION_DAYS.")
    @click.option("--dry-run", is_flag=True, help="Count without deleting.")
    def gc_cleanup_cmd(process_types, older_than_days, dry_run):
        """Delete resolved abandoned-process records past retention."""
        from marketgc.services.abandoned_cleanup import cleanup_resolved_processes
        from marketgc.core.exceptions import InternalError, ValidationError

        try:
            result = cleanup_resolved_processes(list(process_types) or None,
                                                older_than_days=older_than_days,
                                                dry_run=dry_run)
        except ValidationError as exc:
            raise click.UsageError(f"{exc.code}: {exc}") from exc
        except InternalError as exc:
            raise click.ClickException(f"{exc.code}: {exc}") from exc
        click.echo(json.dumps(result, indent=2))
