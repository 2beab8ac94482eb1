# backend/app/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/hypepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///hypepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Run Alembic migrations once when the app is created.
    AUTO_MIGRATE = _env_bool("AUTO_MIGRATE", False)

    # Transfer code regeneration bound (collision on the unique code column)
    TRANSFER_CODE_MAX_ATTEMPTS = _env_int("TRANSFER_CODE_MAX_ATTEMPTS", 5)

    # Off: Confirm only increments the destination ledger.
    # On: Confirm also decrements the source ledger (clamped at zero).
    TRANSFER_DECREMENT_SOURCE = _env_bool("TRANSFER_DECREMENT_SOURCE", False)

    HOLD_LIST_LIMIT = _env_int("HOLD_LIST_LIMIT", 500)
    TRANSFER_LIST_LIMIT = _env_int("TRANSFER_LIST_LIMIT", 200)

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
