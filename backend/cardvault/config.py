# backend/cardvault/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cardvault.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///cardvault.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Feature switches; a disabled feature's routes answer 404
    ENABLE_CARDS = _env_bool("ENABLE_CARDS", True)
    ENABLE_VOUCHERS = _env_bool("ENABLE_VOUCHERS", True)
    ENABLE_GIFT_CARDS = _env_bool("ENABLE_GIFT_CARDS", True)
    ENABLE_LOCAL_LOGIN = _env_bool("ENABLE_LOCAL_LOGIN", True)
    ENABLE_REGISTRATION = _env_bool("ENABLE_REGISTRATION", True)
    ENABLE_NOTIFICATIONS = _env_bool("ENABLE_NOTIFICATIONS", True)

    # Emails promoted to admin when they register
    ADMIN_EMAILS = _env_list("ADMIN_EMAILS")

    AUDIT_LOG_PAGE_SIZE = int(os.environ.get("AUDIT_LOG_PAGE_SIZE", "50"))
    NOTIFICATION_PAGE_SIZE = int(os.environ.get("NOTIFICATION_PAGE_SIZE", "20"))

    # Browser origins allowed to call the API (comma-separated)
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]
