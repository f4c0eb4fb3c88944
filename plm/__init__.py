"""
PLM core: parts, revisions, BOM graph and engineering change orders.

Usage:
    from plm import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from plm.config import config
from plm.middleware.logging_config import configure_logging
from plm.middleware.timing import init_request_timing
from plm.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()

_WRITE_METHODS = ("POST", "PUT", "PATCH")


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    """SQLite ignores FOREIGN KEY clauses unless asked per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _cors_origins(app):
    raw = app.config.get("CORS_ORIGINS") or ""
    if raw.strip() == "*":
        return "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def _register_models():
    # Table metadata must be complete before create_all() and autogenerate
    from plm.models import audit, auth, change_order, part, project  # noqa: F401


def _register_blueprints(app):
    from plm.blueprints.change_order_bp import change_order_bp
    from plm.blueprints.health_bp import health_bp
    from plm.blueprints.part_bp import part_bp

    for bp in (part_bp, change_order_bp, health_bp):
        app.register_blueprint(bp)


def create_app(config_name=None):
    """
    Build the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV environment variable.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    config_cls = config[config_name]

    app = Flask(__name__, instance_relative_config=True)
    # ProductionConfig checks its environment when instantiated
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app, origins=_cors_origins(app))
    init_request_timing(app)

    @app.before_request
    def _require_json_body():
        if request.method in _WRITE_METHODS and request.path.startswith("/api/"):
            if request.data and not request.is_json:
                abort(415, description="Content-Type must be application/json")

    _register_models()
    with app.app_context():
        try:
            os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
        except Exception as exc:
            app.logger.warning("db.create_all() failed: %s", exc)

    _register_blueprints(app)

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed", "method": request.method}, 405

    @app.errorhandler(415)
    def _unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    logger.debug("PLM app created (config=%s)", config_name)
    return app
