"""
Typed engine events and the in-process dispatcher that hands them to
delivery adapters (push, email, pager).

Events are dispatched after the transition they describe has committed.
Delivery belongs to the listeners; a failing listener is logged and the
remaining listeners still run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Callable

from flask import Flask, current_app

from ..time_utils import to_utc_z, utcnow


DISCREPANCY_FLAGGED_V1 = "shift.discrepancy.flagged.v1"
DISCREPANCY_RESOLVED_V1 = "shift.discrepancy.resolved.v1"
AUDIT_WRITE_FAILED_V1 = "audit.write_failed.v1"

EVENT_TYPES = (
    DISCREPANCY_FLAGGED_V1,
    DISCREPANCY_RESOLVED_V1,
    AUDIT_WRITE_FAILED_V1,
)

EXTENSION_KEY = "fuelshift.events"


def _now_z() -> str:
    return to_utc_z(utcnow())


@dataclass(frozen=True)
class DiscrepancyFlagged:
    shift_id: int
    dispenser_id: int
    station_id: int
    operator_id: str
    amount: str
    category: str
    occurred_at: str = field(default_factory=_now_z)
    event_type: str = DISCREPANCY_FLAGGED_V1


@dataclass(frozen=True)
class DiscrepancyResolved:
    shift_id: int
    station_id: int
    resolver_id: str
    reason: str
    occurred_at: str = field(default_factory=_now_z)
    event_type: str = DISCREPANCY_RESOLVED_V1


@dataclass(frozen=True)
class AuditWriteFailed:
    actor_id: str
    action: str
    entity_type: str
    entity_id: int
    error: str
    occurred_at: str = field(default_factory=_now_z)
    event_type: str = AUDIT_WRITE_FAILED_V1


class EventDispatcher:
    """Synchronous fan-out of engine events to registered listeners."""

    def __init__(self):
        self._listeners: dict[str, list[Callable]] = {event_type: [] for event_type in EVENT_TYPES}

    def subscribe(self, event_type: str, listener: Callable) -> None:
        if event_type not in self._listeners:
            raise ValueError(f"Unknown event type: {event_type}")
        self._listeners[event_type].append(listener)

    def dispatch(self, event) -> None:
        current_app.logger.info("Dispatching %s: %s", event.event_type, asdict(event))
        for listener in self._listeners.get(event.event_type, []):
            try:
                listener(event)
            except Exception:
                current_app.logger.exception("Listener %r failed for %s", listener, event.event_type)


def init_app(app: Flask) -> None:
    app.extensions[EXTENSION_KEY] = EventDispatcher()


def get_dispatcher() -> EventDispatcher:
    return current_app.extensions[EXTENSION_KEY]


def subscribe(event_type: str, listener: Callable) -> None:
    get_dispatcher().subscribe(event_type, listener)


def emit(event) -> None:
    get_dispatcher().dispatch(event)
