# backend/filtertrack/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///filtertrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for a single ledger call (driver/busy timeout)
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "10"))

    # How long a scan waits for another in-flight scan of the same unit
    UNIT_LOCK_TIMEOUT_SECONDS = float(os.environ.get("UNIT_LOCK_TIMEOUT_SECONDS", "15"))

    # Zone used to stamp the ledger's DD/MM/YYYY + HH:MM:SS columns
    LEDGER_TIMEZONE = os.environ.get("LEDGER_TIMEZONE", "UTC")

    DEFAULT_REPLACEMENT_DAYS = int(os.environ.get("DEFAULT_REPLACEMENT_DAYS", "90"))

    RECENT_RECORDS_DEFAULT_LIMIT = 10
    RECENT_RECORDS_MAX_LIMIT = 500

    # Browser origins allowed to call the API (the scanner PWA)
    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
