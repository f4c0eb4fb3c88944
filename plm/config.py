"""
PLM service configuration.

``create_app(name)`` picks one of the classes in ``config`` by name
(``APP_ENV`` when no name is given). Every PLM_* knob can be overridden
from the environment.

    PLM_MAX_BOM_DEPTH      deepest BOM level before expansion fails (20)
    PLM_DEFAULT_PAGE_SIZE  list endpoints' default page size (20)
    PLM_MAX_PAGE_SIZE      upper bound for ?limit= (100)
    PLM_SLOW_REQUEST_MS    access-log WARNING threshold (1000)
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

SQLITE_DEV_URL = f"sqlite:///{os.path.join(basedir, 'instance', 'plm_dev.db')}"


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _database_url(default=None):
    # Hosted Postgres providers still hand out postgres://; SQLAlchemy 2 wants postgresql://
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or default


_POOL = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    """Shared defaults."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    PLM_MAX_BOM_DEPTH = _int_env("PLM_MAX_BOM_DEPTH", 20)
    PLM_DEFAULT_PAGE_SIZE = _int_env("PLM_DEFAULT_PAGE_SIZE", 20)
    PLM_MAX_PAGE_SIZE = _int_env("PLM_MAX_PAGE_SIZE", 100)
    PLM_SLOW_REQUEST_MS = _int_env("PLM_SLOW_REQUEST_MS", 1000)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(SQLITE_DEV_URL)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    # In-memory SQLite lives on one static connection; pool sizing does not apply
    SQLALCHEMY_ENGINE_OPTIONS = {}


class ProductionConfig(Config):
    """Requires DATABASE_URL and SECRET_KEY; CORS is closed unless CORS_ORIGINS is set."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL,
        "connect_args": {"options": "-c statement_timeout=30000 -c lock_timeout=10000"},
    }

    def __init__(self):
        missing = [name for name in ("DATABASE_URL", "SECRET_KEY") if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Missing required environment variable(s): {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
