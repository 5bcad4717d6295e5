# Overview: Locking and bounded-retry helpers for units of work.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflict


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() refreshes rows already in the identity map so the
    caller never validates against a snapshot read earlier in the request.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    on the locked row turns a lost race into a StaleDataError instead.
    """
    return query.with_for_update().populate_existing()


def _retry_settings(attempts, backoff_base):
    if has_app_context():
        if attempts is None:
            attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05)
    return max(1, attempts or 3), backoff_base if backoff_base is not None else 0.05


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries OperationalError (deadlocks, lock timeouts) and StaleDataError
    (lost compare-and-swap on a versioned row). Each attempt starts from a
    rolled-back session, so it re-reads and re-validates fresh state.

    Any other exception rolls the unit of work back and propagates
    unchanged. When the retry budget is exhausted ConcurrencyConflict is
    raised.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflict(
                    f"could not commit after {attempts} attempts: {exc.__class__.__name__}"
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

