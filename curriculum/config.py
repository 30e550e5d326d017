"""
Environment configurations for ``create_app``.

    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Engine tunables (all read from the environment at import):

    AUTOSAVE_DEBOUNCE_MS   inline edit autosave delay, default 500
    BULK_PASS_MAX_ITEMS    largest bulk pass request accepted, default 500
    BULK_PASS_RATE_LIMIT   Flask-Limiter string for bulk pass routes
    BULK_PASS_RUN_INLINE   run bulk pass jobs in the request thread
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _env_flag(name, default=False):
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    url = os.getenv("DATABASE_URL", "")
    if not url:
        return fallback
    # SQLAlchemy 2 only knows the postgresql:// scheme.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    DEBUG = False
    TESTING = False
    # Random per process unless set; sessions do not survive restarts.
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    AUTOSAVE_DEBOUNCE_MS = _env_int("AUTOSAVE_DEBOUNCE_MS", 500)
    BULK_PASS_MAX_ITEMS = _env_int("BULK_PASS_MAX_ITEMS", 500)
    BULK_PASS_RATE_LIMIT = os.getenv("BULK_PASS_RATE_LIMIT", "10/minute")
    BULK_PASS_RUN_INLINE = _env_flag("BULK_PASS_RUN_INLINE")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "sqlite:///" + os.path.join(basedir, "instance", "curriculum_dev.db")
    )


class TestingConfig(Config):
    """In-memory SQLite, no rate limits, bulk pass jobs finish before the response."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    # Empty so Flask-SQLAlchemy can choose StaticPool for :memory:.
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    BULK_PASS_RUN_INLINE = True


class ProductionConfig(Config):
    """Requires DATABASE_URL and SECRET_KEY; checked when instantiated."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    # No wildcard default; origins must be listed.
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production config needs {', '.join(missing)} in the environment")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
