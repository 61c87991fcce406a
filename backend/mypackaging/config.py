# backend/mypackaging/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/mypackaging.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///mypackaging.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded wait for a ledger write before it is reported as unconfirmed
    LEDGER_COMMIT_TIMEOUT_SECONDS = int(os.environ.get("LEDGER_COMMIT_TIMEOUT_SECONDS", "15"))

    # Re-reads allowed when a concurrent operator changed the same row first
    LEDGER_CONFLICT_RETRIES = int(os.environ.get("LEDGER_CONFLICT_RETRIES", "3"))

    # Hutang older than this many days is reported as overdue
    CREDIT_OVERDUE_DAYS = int(os.environ.get("CREDIT_OVERDUE_DAYS", "30"))

    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "12"))
    SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "2"))

    # bcrypt cost factor for stored passwords
    BCRYPT_LOG_ROUNDS = int(os.environ.get("BCRYPT_LOG_ROUNDS", "12"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # POS terminals served from a separate dev server
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if o.strip()
    )


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_CONFLICT_RETRIES = 3
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = "WARNING"


def engine_options(database_uri: str, timeout_seconds: int) -> dict:
    """
    Driver options that bound how long a ledger write may wait.

    SQLite waits on its file lock for `timeout`; network databases give up
    connecting after `connect_timeout`.
    """
    options: dict = {"pool_pre_ping": True}
    if database_uri.startswith("sqlite"):
        options["connect_args"] = {"timeout": timeout_seconds}
    else:
        options["connect_args"] = {"connect_timeout": timeout_seconds}
    return options
