# backend/partsledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/partsledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///partsledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Invoice numbers look like JCB/02/NOV/25-26
    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "JCB")

    # Whole-transaction re-runs when an allocated number loses a race
    NUMBERING_RETRY_ATTEMPTS = int(os.environ.get("NUMBERING_RETRY_ATTEMPTS", "5"))

    # Reject SALE lines that would drive a part's stock below zero
    ENFORCE_STOCK_FLOOR = _env_bool("ENFORCE_STOCK_FLOOR", False)

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    # 0 disables the in-process read cache
    READ_CACHE_TTL_SECONDS = int(os.environ.get("READ_CACHE_TTL_SECONDS", "60"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
