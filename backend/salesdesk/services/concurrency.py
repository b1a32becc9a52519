# Overview: Transaction helpers shared by every service that writes stock, sales or proposals.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)


def begin_write() -> None:
    """
    Open the write transaction before the first read of a unit of work.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE)
    so two requests cannot both read the same stock/proposal state and then
    both write. Other databases rely on row locks and guarded updates.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work, rolling back on any failure.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Other store failures are not retried and
    surface as PersistenceError; business errors propagate unchanged. In
    every failure case the session has been rolled back, so nothing from
    the unit of work is persisted.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise PersistenceError(
                    "Database busy; the operation was not applied",
                    details={"attempts": attempts},
                ) from exc
            logger.info("Concurrency conflict on attempt %d, retrying: %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Database error; unit of work rolled back")
            raise PersistenceError("Database error; the operation was not applied") from exc
        except Exception:
            db.session.rollback()
            raise
