# Overview: Row locking, conditional writes and commit handling for shift transitions.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The conditional write in compare_and_set() is what guarantees a single
    winner on every backend.
    """
    return query.with_for_update()


def compare_and_set(model, entity_id: int, *, status_column: str, expected_status: str, patch: dict) -> bool:
    """
    UPDATE ... WHERE id = :id AND status = :expected.

    Returns True when exactly one row moved. A False return means another
    transaction changed the row's status first; the caller must not retry.
    Bumps version_id so optimistic readers holding the old row fail too.
    """
    status_col = getattr(model, status_column)
    stmt = (
        update(model)
        .where(model.id == entity_id, status_col == expected_status)
        .values(**patch, version_id=model.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def commit_or_raise(action: str) -> None:
    """Commit the current transaction, mapping store failures to PersistenceError."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("PersistenceError", f"Failed to {action}: store did not commit") from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an idempotent DB operation with retry on concurrency failures.

    Only used for configuration writes (dispenser price, station config).
    Shift open/close/resolve are never retried here.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise PersistenceError("PersistenceError", "Store is busy, please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
