# Overview: Transaction boundaries, row locking and retry policy for the sale and return units.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConnectionFailure, FolioCollision, PersistenceFailure, PosError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the unit holds the
    write lock from BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = (OperationalError, StaleDataError),
):
    """
    Execute a DB operation, retrying only on the given failure types.

    The session is rolled back before every retry.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying unit after %s (attempt %d of %d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


@contextmanager
def storage_guard(action: str):
    """
    Map driver-level failures to ConnectionFailure.

    Wraps reads that run outside `run_atomic` (cart lookups, sale lookups)
    and the opening of every write unit.
    """
    try:
        yield
    except (OperationalError, DBAPIError) as exc:
        db.session.rollback()
        current_app.logger.error("Could not %s: %s", action, exc)
        raise ConnectionFailure(
            "Storage is unavailable",
            details={"cause": str(getattr(exc, "orig", None) or exc)},
        ) from exc


def begin_write() -> None:
    """
    Open the write transaction for one unit of work.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE)
    so that folio allocation and stock increments are serialized.
    """
    with storage_guard("open transaction"):
        if db.engine.dialect.name == "sqlite":
            db.session.execute(text("BEGIN IMMEDIATE"))
        else:
            db.session.connection()


def run_atomic(op, *, action: str):
    """
    Run `op` as a single all-or-nothing unit.

    Commits when `op` returns; rolls back on any error. Folio collisions
    restart the whole unit up to FOLIO_RETRY_ATTEMPTS times. Storage errors
    surface as PersistenceFailure with the original error chained.
    """
    attempts = max(1, int(current_app.config.get("FOLIO_RETRY_ATTEMPTS", 3)))

    def _unit():
        begin_write()
        try:
            result = op()
            db.session.commit()
            return result
        except PosError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to %s; transaction rolled back", action)
            raise PersistenceFailure(
                f"Failed to {action}",
                details={"cause": str(getattr(exc, "orig", None) or exc)},
            ) from exc
        except BaseException:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_unit, attempts=attempts, backoff_base=0, retry_on=(FolioCollision,))
    except FolioCollision as exc:
        current_app.logger.error("Failed to %s: folio collisions after %d attempts", action, attempts)
        raise PersistenceFailure(
            f"Failed to {action}: could not allocate a unique folio",
            details=exc.details,
        ) from exc
