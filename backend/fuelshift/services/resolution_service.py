# Overview: Manager/owner workflow that clears a FLAGGED shift back to COMPLETED.

"""
Discrepancy Resolution

The only path out of FLAGGED. It records who resolved the discrepancy,
why and when, and moves the shift to COMPLETED. It never reopens a shift
and never touches readings or cash.
"""

from __future__ import annotations

from flask import current_app

from ..errors import StateConflictError
from ..extensions import db
from ..models import Dispenser, Shift, SHIFT_COMPLETED, SHIFT_FLAGGED
from ..permissions import ensure_can_resolve_discrepancy
from ..time_utils import utcnow
from ..validation import require_text
from . import notification_service
from .audit_service import record_audit
from .concurrency import commit_or_raise
from .shift_service import get_shift
from .shift_store import update_shift


def resolve_discrepancy(shift_id: int, resolver_id: str, resolver_role: str, reason: str) -> Shift:
    """
    Resolve a flagged shift.

    Raises:
        AuthorizationError: Forbidden, resolver is not OWNER or MANAGER
        ValidationError: MissingReason
        NotFoundError: shift does not exist
        StateConflictError: NotFlagged, shift is ACTIVE or already COMPLETED
    """
    ensure_can_resolve_discrepancy(resolver_role)
    text = require_text(reason, field="reason", code="MissingReason")
    resolver = require_text(resolver_id, field="resolver_id", code="MissingResolver")

    shift = get_shift(shift_id)
    if shift.status != SHIFT_FLAGGED:
        raise StateConflictError(
            "NotFlagged",
            f"Shift {shift_id} is {shift.status}; only FLAGGED shifts can be resolved",
            field="shift_id",
        )

    before = shift.to_dict()
    patch = {
        "status": SHIFT_COMPLETED,
        "discrepancy_resolved": True,
        "resolution_reason": text,
        "resolved_by": resolver,
        "resolved_at": utcnow(),
    }
    if not update_shift(shift.id, SHIFT_FLAGGED, patch):
        db.session.rollback()
        raise StateConflictError(
            "NotFlagged",
            f"Shift {shift_id} was resolved by another request",
            field="shift_id",
        )
    commit_or_raise("resolve discrepancy")

    shift = get_shift(shift_id)
    current_app.logger.info("Shift %s discrepancy resolved by %s", shift.id, resolver)
    record_audit(resolver, "RESOLVE", "shift", shift.id, before, shift.to_dict())
    notification_service.emit(notification_service.DiscrepancyResolved(
        shift_id=shift.id,
        station_id=shift.dispenser.station_id,
        resolver_id=resolver,
        reason=text,
    ))
    return shift


def list_unresolved(station_id: int | None = None) -> list[Shift]:
    """Flagged shifts awaiting resolution, oldest first."""
    query = db.session.query(Shift).filter(Shift.status == SHIFT_FLAGGED)
    if station_id is not None:
        query = query.join(Dispenser, Shift.dispenser_id == Dispenser.id).filter(Dispenser.station_id == station_id)
    return query.order_by(Shift.end_time.asc(), Shift.id.asc()).all()
