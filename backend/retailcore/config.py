# backend/retailcore/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retailcore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite has no row locks; BEGIN IMMEDIATE takes the write lock up front instead.
    SQLITE_BEGIN_IMMEDIATE = _env_bool("SQLITE_BEGIN_IMMEDIATE", True)

    # Upper bound on waiting for a stock/document row lock before the unit aborts
    LOCK_TIMEOUT_MS = int(os.environ.get("LOCK_TIMEOUT_MS", "5000"))

    # Retry of whole units on deadlocks / serialization failures / lock timeouts
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_SECONDS = float(os.environ.get("RETRY_BACKOFF_SECONDS", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Default tenant return policy (used when no policy provider is injected)
    RETURNS_ENABLED = _env_bool("RETURNS_ENABLED", True)
    RETURN_REQUIRES_APPROVAL = _env_bool("RETURN_REQUIRES_APPROVAL", True)
    RETURN_DEADLINE_DAYS = int(os.environ.get("RETURN_DEADLINE_DAYS", "7"))
