# Overview: Unit-of-work boundary for ledger writes; locking, conflict retry, commit classification.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError, ConnectivityError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns on Product, Sale and Purchase catch the lost update instead.
    """
    return query.with_for_update()


def ensure_connection() -> None:
    """Fail fast, before anything is written, when the database is unreachable."""
    try:
        db.session.execute(text("SELECT 1"))
    except DBAPIError as exc:
        db.session.rollback()
        logger.warning("Database unreachable before write: %s", exc)
        raise ConnectivityError(outcome_unknown=False) from exc


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Run `func` as one atomic unit of work and commit it.

    - func reads current state (locked), validates, and adds/flushes rows.
      It must never commit.
    - A version conflict (StaleDataError) means another operator got there
      first and nothing of ours was written: roll back and run func again so
      it re-reads the fresh state. After `attempts` tries the conflict is
      surfaced as ConcurrencyConflictError.
    - Any error before commit rolls everything back and propagates.
    - An error raised by commit itself leaves the outcome unknown; it is
      reported as ConnectivityError(outcome_unknown=True) and never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_CONFLICT_RETRIES", 3)
    attempts = max(1, attempts)

    ensure_connection()

    for attempt in range(attempts):
        try:
            result = func()
            db.session.flush()
        except StaleDataError as exc:
            db.session.rollback()
            logger.info("Version conflict on attempt %s/%s: %s", attempt + 1, attempts, exc)
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "The record was changed by another operator. Reload it and try again."
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
            continue
        except OperationalError as exc:
            db.session.rollback()
            logger.warning("Database error before commit, rolled back: %s", exc)
            raise ConnectivityError(outcome_unknown=False) from exc
        except Exception:
            db.session.rollback()
            raise

        _commit()
        return result


def _commit() -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            "The record was changed by another operator. Reload it and try again."
        ) from exc
    except DBAPIError as exc:
        db.session.rollback()
        logger.error("Commit not confirmed; outcome unknown: %s", exc)
        raise ConnectivityError(outcome_unknown=True) from exc
