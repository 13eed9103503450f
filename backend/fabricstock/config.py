# backend/fabricstock/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fabricstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fabricstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Header populated by the upstream auth provider with a pre-validated user id
    AUTH_USER_HEADER = os.environ.get("AUTH_USER_HEADER", "X-User-Id")

    # Delivered orders become Completed this many hours after release
    AUTO_COMPLETE_HOURS = int(os.environ.get("AUTO_COMPLETE_HOURS", "12"))
    # Released date/time are wall-clock values in this zone
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    # In-process sweep of due Delivered orders; set to false when a cron job runs `flask orders sweep`
    AUTO_COMPLETE_SWEEPER = _env_bool("AUTO_COMPLETE_SWEEPER", True)
    SWEEP_INTERVAL_SECONDS = int(os.environ.get("SWEEP_INTERVAL_SECONDS", "60"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "50"))

    EXPORT_SERVICE_URL = os.environ.get("EXPORT_SERVICE_URL", "")
    EXPORT_TIMEOUT_SECONDS = float(os.environ.get("EXPORT_TIMEOUT_SECONDS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTO_COMPLETE_SWEEPER = False
    BUSINESS_TIMEZONE = "UTC"
    EXPORT_SERVICE_URL = "http://export.test/api/export"
