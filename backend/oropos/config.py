# backend/oropos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/oropos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///oropos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Customer display hub
    DISPLAY_SYNC_MAX_WAIT_SECONDS = _env_float("DISPLAY_SYNC_MAX_WAIT_SECONDS", 25.0)
    DISPLAY_SYNC_STALE_SECONDS = _env_int("DISPLAY_SYNC_STALE_SECONDS", 30 * 60)
    DISPLAY_SYNC_TERMINAL_TTL_SECONDS = _env_int("DISPLAY_SYNC_TERMINAL_TTL_SECONDS", 60)

    # Product search
    PRODUCT_SEARCH_DEFAULT_LIMIT = _env_int("PRODUCT_SEARCH_DEFAULT_LIMIT", 10)
    PRODUCT_SEARCH_MAX_LIMIT = _env_int("PRODUCT_SEARCH_MAX_LIMIT", 50)

    # Owner exception thresholds (per location, per day)
    NO_SALE_ALERT_THRESHOLD = _env_int("NO_SALE_ALERT_THRESHOLD", 5)
    NO_SALE_CRITICAL_THRESHOLD = _env_int("NO_SALE_CRITICAL_THRESHOLD", 10)
    SPIKE_ALERT_THRESHOLD = _env_int("SPIKE_ALERT_THRESHOLD", 3)
    SPIKE_CRITICAL_THRESHOLD = _env_int("SPIKE_CRITICAL_THRESHOLD", 5)
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 5)

    OFFLINE_TERMS_VERSION = os.environ.get("OFFLINE_TERMS_VERSION", "1.0")

    # Customer display and register web clients
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",") if o.strip()
    )

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
