"""
Work-Tracking Configuration Reconciler
Flask Application Factory.

Usage:
    from flowconfig import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from flowconfig.config import config
from flowconfig.models import db
from flowconfig.middleware.logging_config import configure_logging
from flowconfig.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()


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
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from flowconfig.models import context as _context_models              # noqa: F401
    from flowconfig.models import datasource as _datasource_models        # noqa: F401
    from flowconfig.models import query_consumers as _query_models        # noqa: F401
    from flowconfig.models import work_item as _work_item_models          # noqa: F401
    from flowconfig.models import workflow as _workflow_models            # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()
        app.logger.debug("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from flowconfig.blueprints.datasource_bp import datasource_bp

    app.register_blueprint(datasource_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("reconcile-workflows")
    @click.option("--tenant", "tenant_id", required=True, help="Tenant id.")
    @click.option("--datasource", "datasource_id", required=True, help="Datasource id.")
    @click.option("--file", "payload_file", type=click.File("r"), required=True,
                  help="JSON file holding the desired work item type list ('-' for stdin).")
    @click.option("--no-veto", is_flag=True, help="Log dependent filters/rooms instead of blocking.")
    def reconcile_workflows_cmd(tenant_id, datasource_id, payload_file, no_veto):
        """Reconcile a datasource's workflow configuration from a JSON file."""
        from flowconfig.core.exceptions import NotFoundError, ValidationError
        from flowconfig.services.reconciliation_service import reconcile_workflows, require_datasource

        try:
            payload = json.load(payload_file)
            require_datasource(tenant_id, datasource_id)
            result = reconcile_workflows(
                tenant_id, datasource_id, payload, veto=False if no_veto else None,
            )
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid JSON: {exc}") from exc
        except (NotFoundError, ValidationError) as exc:
            raise click.ClickException(str(exc)) from exc

        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        if result.is_conflict:
            raise SystemExit(2)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Work-Tracking Configuration Reconciler"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
