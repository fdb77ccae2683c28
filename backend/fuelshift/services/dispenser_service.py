"""
Station and Dispenser Configuration Service

DESIGN PRINCIPLES:
- Dispensers are never deleted, only deactivated (historical shifts keep them)
- A dispenser with an ACTIVE shift cannot be deactivated
- Price changes affect shifts opened afterwards only; open shifts keep
  the price they captured
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Dispenser, Shift, Station, FUEL_TYPES, SHIFT_ACTIVE
from ..validation import validate_cash_amount
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# STATIONS
# =============================================================================

def create_station(name: str, code: str | None = None, location: str | None = None) -> Station:
    if not name or not str(name).strip():
        raise ValidationError("MissingName", "Station name is required", field="name")

    station = Station(name=str(name).strip(), code=code, location=location, is_active=True)
    db.session.add(station)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise StateConflictError("DuplicateStationCode", f"Station code '{code}' already exists", field="code") from exc
    return station


def get_station(station_id: int) -> Station | None:
    return db.session.query(Station).filter_by(id=station_id).first()


# =============================================================================
# DISPENSERS
# =============================================================================

def _validate_price(unit_price) -> Decimal:
    return validate_cash_amount(unit_price, field="unit_price", allow_zero=True)


def create_dispenser(
    station_id: int,
    dispenser_code: str,
    fuel_type: str,
    unit_price,
    *,
    actor_id: str = "system",
) -> Dispenser:
    """
    Create a dispenser on a station.

    Raises:
        ValidationError: bad code, fuel type or price
        NotFoundError: station does not exist
        StateConflictError: dispenser_code already used on this station
    """
    code = str(dispenser_code or "").strip()
    if not code:
        raise ValidationError("MissingCode", "dispenser_code is required", field="dispenser_code")
    if len(code) > 20:
        raise ValidationError("OutOfRange", "dispenser_code exceeds max length 20", field="dispenser_code")

    kind = str(fuel_type or "").strip().upper()
    if kind not in FUEL_TYPES:
        raise ValidationError(
            "InvalidFuelType",
            f"fuel_type must be one of {', '.join(FUEL_TYPES)}",
            field="fuel_type",
        )

    price = _validate_price(unit_price)

    station = get_station(station_id)
    if not station:
        raise NotFoundError("NotFound", f"Station {station_id} not found", field="station_id")

    existing = db.session.query(Dispenser).filter_by(station_id=station_id, dispenser_code=code).first()
    if existing:
        raise StateConflictError(
            "DuplicateDispenserCode",
            f"Dispenser '{code}' already exists on this station",
            field="dispenser_code",
        )

    dispenser = Dispenser(
        station_id=station_id,
        dispenser_code=code,
        fuel_type=kind,
        unit_price=price,
        is_active=True,
    )
    db.session.add(dispenser)
    db.session.commit()

    record_audit(actor_id, "CREATE", "dispenser", dispenser.id, None, dispenser.to_dict())
    return dispenser


def get_dispenser(dispenser_id: int) -> Dispenser | None:
    return db.session.query(Dispenser).filter_by(id=dispenser_id).first()


def list_dispensers(station_id: int | None = None, *, include_inactive: bool = False) -> list[Dispenser]:
    query = db.session.query(Dispenser)
    if station_id is not None:
        query = query.filter_by(station_id=station_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Dispenser.station_id, Dispenser.dispenser_code).all()


def set_dispenser_price(dispenser_id: int, unit_price, *, actor_id: str) -> Dispenser:
    """
    Change a dispenser's unit price.

    Shifts already ACTIVE keep the price captured when they opened.
    """
    price = _validate_price(unit_price)

    def _op():
        dispenser = lock_for_update(db.session.query(Dispenser).filter_by(id=dispenser_id)).first()
        if not dispenser:
            raise NotFoundError("NotFound", f"Dispenser {dispenser_id} not found", field="dispenser_id")

        before = dispenser.to_dict()
        dispenser.unit_price = price
        db.session.commit()
        return dispenser, before

    dispenser, before = run_with_retry(_op)
    record_audit(actor_id, "UPDATE", "dispenser", dispenser.id, before, dispenser.to_dict())
    return dispenser


def deactivate_dispenser(dispenser_id: int, *, actor_id: str) -> Dispenser:
    """
    Deactivate a dispenser (soft delete).

    Inactive dispensers cannot open new shifts.
    """
    dispenser = lock_for_update(db.session.query(Dispenser).filter_by(id=dispenser_id)).first()
    if not dispenser:
        raise NotFoundError("NotFound", f"Dispenser {dispenser_id} not found", field="dispenser_id")

    active = db.session.query(Shift).filter_by(dispenser_id=dispenser_id, status=SHIFT_ACTIVE).first()
    if active:
        raise StateConflictError(
            "DispenserHasActiveShift",
            f"Cannot deactivate dispenser with active shift {active.id}. Close the shift first.",
            field="dispenser_id",
        )

    before = dispenser.to_dict()
    dispenser.is_active = False
    db.session.commit()

    record_audit(actor_id, "DEACTIVATE", "dispenser", dispenser.id, before, dispenser.to_dict())
    return dispenser


def get_last_closing_reading(dispenser_id: int) -> Decimal | None:
    """Closing reading of the dispenser's most recently closed shift, if any."""
    last = db.session.query(Shift).filter(
        Shift.dispenser_id == dispenser_id,
        Shift.closing_reading.isnot(None),
    ).order_by(Shift.end_time.desc(), Shift.id.desc()).first()
    return last.closing_reading if last else None
