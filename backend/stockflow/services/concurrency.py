# Overview: Locking and retry helpers shared by every mutating service operation.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write of stock and documents.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a unit of work as one atomic operation.

    - Any exception rolls the session back before propagating, so a rejected
      operation never leaves partial writes behind.
    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      version conflicts) re-run the whole unit with exponential backoff.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCKFLOW_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Concurrent update conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
