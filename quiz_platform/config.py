"""Application configuration objects."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Type

from sqlalchemy.pool import NullPool


class BaseConfig:
    """Shared defaults across all environments."""

    APP_NAME = "Quiz Settlement"
    APP_VERSION = "1.0.0"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite+pysqlite:///quiz_dev.db",
    )
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    RATE_LIMIT_DEFAULTS = [limit.strip() for limit in os.getenv("RATE_LIMIT_DEFAULTS", "200 per minute;5000 per day").split(";") if limit.strip()]
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    JSON_SORT_KEYS = False

    ASSESSMENT_API_BASE = os.getenv("ASSESSMENT_API_BASE", "https://certified-new.learntube.ai")
    ASSESSMENT_ENTRY_URL = os.getenv(
        "ASSESSMENT_ENTRY_URL",
        f"{ASSESSMENT_API_BASE}/new_entry_test_v2",
    )
    ASSESSMENT_CPO = os.getenv("ASSESSMENT_CPO", "")
    ASSESSMENT_ORIGIN = os.getenv("ASSESSMENT_ORIGIN", "https://certified.learntube.ai")
    ASSESSMENT_TIMEOUT_SEC = int(os.getenv("ASSESSMENT_TIMEOUT_SEC", "30"))
    ASSESSMENT_GENERATE_TIMEOUT_SEC = int(os.getenv("ASSESSMENT_GENERATE_TIMEOUT_SEC", "15"))
    ASSESSMENT_ENTRY_TIMEOUT_SEC = int(os.getenv("ASSESSMENT_ENTRY_TIMEOUT_SEC", "10"))
    ASSESSMENT_UTM_SOURCE = os.getenv("ASSESSMENT_UTM_SOURCE", "certified_wa_flow")
    PAID_TEST_PRODUCT_SLUG = os.getenv("PAID_TEST_PRODUCT_SLUG", "certificate_type_3")

    REENGAGEMENT_URL = os.getenv("REENGAGEMENT_URL", "")
    REENGAGEMENT_TIMEOUT_SEC = int(os.getenv("REENGAGEMENT_TIMEOUT_SEC", "10"))
    # Set in exactly one process: every enabled worker runs its own timer.
    RECONCILIATION_ENABLED = os.getenv("RECONCILIATION_ENABLED", "false").lower() in {"1", "true", "yes"}
    RECONCILIATION_INTERVAL_SEC = int(os.getenv("RECONCILIATION_INTERVAL_SEC", "60"))
    RECONCILIATION_WINDOW_START_MIN = int(os.getenv("RECONCILIATION_WINDOW_START_MIN", "5"))
    RECONCILIATION_WINDOW_END_MIN = int(os.getenv("RECONCILIATION_WINDOW_END_MIN", "6"))

    SESSION_TOKEN_TTL_MIN = int(os.getenv("SESSION_TOKEN_TTL_MIN", "60"))

    SQLITE_TIMEOUT_SEC = int(os.getenv("SQLITE_TIMEOUT_SEC", "15"))
    SQLITE_BUSY_TIMEOUT_MS = int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "15000"))
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "poolclass": NullPool,
            "connect_args": {"timeout": SQLITE_TIMEOUT_SEC, "check_same_thread": False},
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_pre_ping": True,
            "pool_size": int(os.getenv("DB_POOL_SIZE", "10")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        }


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    # Let Flask-SQLAlchemy pick a StaticPool so every checkout sees the same in-memory DB.
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    RECONCILIATION_ENABLED = False
    REENGAGEMENT_URL = "https://reengage.test/api/re-trigger"
    ASSESSMENT_API_BASE = "https://assessment.test"
    ASSESSMENT_ENTRY_URL = "https://assessment.test/new_entry_test_v2"
    RATE_LIMIT_DEFAULTS: list[str] = []


CONFIG_ALIASES: dict[str, Type[BaseConfig]] = {
    "dev": DevConfig,
    "development": DevConfig,
    "prod": ProdConfig,
    "production": ProdConfig,
    "test": TestConfig,
    "testing": TestConfig,
}


@lru_cache
def resolve_config(name_or_class: Any) -> Any:
    """Resolve config argument to the object expected by `app.config.from_object`."""

    if name_or_class is None:
        return DevConfig
    if isinstance(name_or_class, str):
        return CONFIG_ALIASES.get(name_or_class, name_or_class)
    return name_or_class
