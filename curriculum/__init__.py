"""
Curriculum Progress Engine.

    from curriculum import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from curriculum.config import config
from curriculum.models import db
from curriculum.middleware.logging_config import configure_logging
from curriculum.middleware.rate_limiter import init_rate_limits
from curriculum.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are attached per blueprint in init_rate_limits.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # SQLite ships with FK checks off; progress rows cascade on student delete.
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def _load_config(app, config_name):
    cfg = config[config_name]
    # ProductionConfig checks its environment in __init__.
    app.config.from_object(cfg() if config_name == "production" else cfg)


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # "*" allows any origin, "" leaves cross-origin requests unanswered.
    origins = (app.config.get("CORS_ORIGINS") or "").strip()
    if origins == "*":
        CORS(app)
    elif origins:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])


def _create_tables(app):
    # Model modules register their tables on db.metadata at import.
    from curriculum.models import audit, curriculum, notification, progress  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            # Migrations own the schema where create_all cannot run.
            app.logger.warning("Table bootstrap skipped: %s", exc)
        else:
            app.logger.debug("Tables ready: %s", ", ".join(sorted(db.metadata.tables)))


def _register_blueprints(app):
    from curriculum.blueprints.notification_bp import notification_bp
    from curriculum.blueprints.student_bp import student_bp
    from curriculum.blueprints.tracking_bp import tracking_bp

    for bp in (tracking_bp, student_bp, notification_bp):
        app.register_blueprint(bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Curriculum Progress Engine"}


def _register_http_errors(app):
    @app.errorhandler(404)
    def _not_found(_e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _bad_method(_e):
        return {"error": "Method not allowed", "path": request.path}, 405

    @app.errorhandler(429)
    def _too_many(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _internal(e):
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return {"error": "Internal server error"}, 500


def create_app(config_name=None):
    """Build the progress engine app.

    Args:
        config_name: "development", "testing" or "production".
            Falls back to the APP_ENV environment variable.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    _load_config(app, config_name)
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _create_tables(app)
    _register_blueprints(app)
    _register_http_errors(app)
    # Needs the final view functions, so blueprints come first.
    init_rate_limits(app, limiter)

    logger.info("Curriculum Progress Engine started (config=%s)", config_name)
    return app
