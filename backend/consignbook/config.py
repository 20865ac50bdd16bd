# backend/consignbook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/consignbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///consignbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # When true, consignment confirm and direct sales may drive stock below zero.
    # Stock adjustment OUT is always guarded.
    ALLOW_NEGATIVE_STOCK = _env_flag("ALLOW_NEGATIVE_STOCK")

    # Channel name shared by every context that should see committed changes
    SYNC_CHANNEL_NAME = os.environ.get("SYNC_CHANNEL_NAME", "consignbook_sync")

    DEFAULT_MIN_STOCK_ALERT = int(os.environ.get("DEFAULT_MIN_STOCK_ALERT", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
