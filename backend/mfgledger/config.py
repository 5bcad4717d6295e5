# backend/mfgledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///mfgledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded retry for lock contention / stale version conflicts
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))

    # Backdating is allowed; post-dating beyond this window is not
    LEDGER_FUTURE_TOLERANCE_SECONDS = int(os.environ.get("LEDGER_FUTURE_TOLERANCE_SECONDS", "120"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
