# Overview: Append-only audit trail for shift and dispenser mutations.

"""
Audit Invariants

- One entry per committed mutation: actor, action, entity, before/after.
- Entries are written after the primary transition commits. A transition
  that never commits leaves no audit entry behind.
- A failed audit write does NOT undo the transition. It is logged at
  ERROR and raised as an AuditWriteFailed alert event (degraded mode).
"""

from __future__ import annotations

from flask import current_app

from ..errors import AuditWriteError
from ..extensions import db
from ..models import AuditLogEntry
from . import notification_service
from .shift_store import append_audit_log


def build_entry(
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: int,
    before: dict | None,
    after: dict | None,
) -> AuditLogEntry:
    return AuditLogEntry(
        actor_id=str(actor_id),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=before,
        new_values=after,
    )


def record_audit(
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: int,
    before: dict | None,
    after: dict | None,
) -> AuditLogEntry | None:
    """
    Fire-and-forget append. Returns the entry, or None in degraded mode.
    """
    try:
        entry = build_entry(actor_id, action, entity_type, entity_id, before, after)
        return append_audit_log(entry)
    except AuditWriteError as exc:
        current_app.logger.error(
            "AUDIT WRITE FAILED actor=%s action=%s entity=%s:%s: %s",
            actor_id, action, entity_type, entity_id, exc,
        )
        notification_service.emit(notification_service.AuditWriteFailed(
            actor_id=str(actor_id),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            error=str(exc),
        ))
        return None


def get_entity_history(entity_type: str, entity_id: int) -> list[AuditLogEntry]:
    return db.session.query(AuditLogEntry).filter_by(
        entity_type=entity_type,
        entity_id=entity_id,
    ).order_by(AuditLogEntry.id.asc()).all()
