# Overview: Unit-of-work helpers: row locking, rollback and retry on concurrency conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError, StockError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for stock-changing reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id check on
    Product/Sale is what catches a concurrent writer.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run one unit of work.

    func performs all reads and writes of a multi-step operation and commits
    once at the end. Any failure rolls the whole session back, so a partially
    applied sale or approval is never committed.

    StaleDataError (optimistic version conflict) and OperationalError
    (lock timeout, deadlock) re-run func from scratch with exponential
    backoff. Other datastore failures, and retries that run out, surface as
    PersistenceError with the original exception chained.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except StockError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "Concurrent update conflict; retries exhausted",
                    {"attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Concurrency conflict (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"Datastore failure: {exc.__class__.__name__}") from exc
        except Exception:
            db.session.rollback()
            raise
