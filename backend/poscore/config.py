# backend/poscore/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/poscore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///poscore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Day boundaries for folio numbering follow the store's wall clock
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "UTC")

    FOLIO_PAD = int(os.environ.get("FOLIO_PAD", "4"))
    FOLIO_RETRY_ATTEMPTS = int(os.environ.get("FOLIO_RETRY_ATTEMPTS", "3"))

    # Reject sales whose caller-supplied total disagrees with the lines
    STRICT_SALE_TOTALS = _env_flag("STRICT_SALE_TOTALS")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STORE_TIMEZONE = "UTC"
    LOG_LEVEL = "DEBUG"
