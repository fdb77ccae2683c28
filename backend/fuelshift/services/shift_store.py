# Overview: Persistence operations the shift engine issues against the store.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import AuditWriteError, PersistenceError, StateConflictError
from ..extensions import db
from ..models import AuditLogEntry, Shift, SHIFT_ACTIVE
from .concurrency import compare_and_set


def find_active_shift_by_dispenser(dispenser_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(
        dispenser_id=dispenser_id,
        status=SHIFT_ACTIVE,
    ).first()


def insert_shift(shift: Shift) -> Shift:
    """
    Insert a new ACTIVE shift and commit.

    The partial unique index on (dispenser_id) WHERE status = 'ACTIVE'
    settles races between concurrent opens: the loser gets
    DuplicateActiveShift, never a second active row.
    """
    db.session.add(shift)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        existing = find_active_shift_by_dispenser(shift.dispenser_id)
        if existing:
            raise StateConflictError(
                "DuplicateActiveShift",
                f"Dispenser {shift.dispenser_id} already has an active shift (shift {existing.id})",
                field="dispenser_id",
            ) from exc
        raise PersistenceError("PersistenceError", "Failed to open shift: store rejected the insert") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("PersistenceError", "Failed to open shift: store did not commit") from exc
    return shift


def update_shift(shift_id: int, expected_status: str, patch: dict) -> bool:
    """Conditional write keyed on shift id + expected current status."""
    return compare_and_set(
        Shift,
        shift_id,
        status_column="status",
        expected_status=expected_status,
        patch=patch,
    )


def append_audit_log(entry: AuditLogEntry) -> AuditLogEntry:
    """Persist one audit entry in its own transaction."""
    db.session.add(entry)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise AuditWriteError(
            f"audit entry {entry.action} {entry.entity_type}:{entry.entity_id} not persisted"
        ) from exc
    return entry
