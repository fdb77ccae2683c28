"""
Shift Lifecycle and Cash Reconciliation Service

Each shift is a period of accountability for one operator on one
dispenser, bounded by an opening and a closing meter reading.

    ACTIVE --close--> COMPLETED            (within tolerance)
    ACTIVE --close--> FLAGGED              (discrepancy beyond tolerance)
    FLAGGED --resolve--> COMPLETED         (resolution_service only)

DESIGN PRINCIPLES:
- One ACTIVE shift per dispenser, enforced by the store, not just checked
- Price is captured at open; expected cash never uses a later price
- Close is all-or-nothing: any failed precondition writes nothing
- Close is a conditional write on status=ACTIVE; a concurrent loser gets
  NotActive instead of overwriting the winner
- Audit entries follow the commit; see audit_service
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..errors import FuelShiftError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    Dispenser,
    Shift,
    SHIFT_ACTIVE,
    SHIFT_COMPLETED,
    SHIFT_FLAGGED,
    SHIFT_SLOTS,
    SHIFT_STATUSES,
)
from ..time_utils import utcnow
from ..validation import require_text, validate_cash_amount, validate_meter_reading
from . import notification_service
from .audit_service import record_audit
from .concurrency import commit_or_raise, lock_for_update
from .discrepancy_service import DiscrepancyOutcome, evaluate_discrepancy
from .dispenser_service import get_last_closing_reading
from .policy_service import ReconciliationPolicy, get_policy
from .shift_store import find_active_shift_by_dispenser, insert_shift, update_shift


CENT = Decimal("0.01")
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class ShiftTotals:
    fuel_sold: Decimal
    expected_cash: Decimal
    total_digital: Decimal
    total_received: Decimal
    net_expected: Decimal
    discrepancy_amount: Decimal


def compute_totals(
    opening_reading: Decimal,
    closing_reading: Decimal,
    unit_price: Decimal,
    actual_cash: Decimal,
    digital_payments: dict[str, Decimal],
    cash_used: Decimal,
) -> ShiftTotals:
    """
    Reconcile one shift. Order matters and is fixed:

    1. fuel_sold = closing - opening
    2. expected_cash = fuel_sold * unit_price (half-up to cents)
    3. total_digital = sum of digital sub-totals
    4. total_received = actual_cash + total_digital
    5. net_expected = expected_cash - cash_used
    6. discrepancy = total_received - net_expected
    """
    fuel_sold = closing_reading - opening_reading
    expected_cash = (fuel_sold * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)
    total_digital = sum(digital_payments.values(), Decimal("0.00"))
    total_received = actual_cash + total_digital
    net_expected = expected_cash - cash_used
    discrepancy_amount = total_received - net_expected
    return ShiftTotals(
        fuel_sold=fuel_sold,
        expected_cash=expected_cash,
        total_digital=total_digital,
        total_received=total_received,
        net_expected=net_expected,
        discrepancy_amount=discrepancy_amount,
    )


def _validate_digital_payments(digital_payments, policy: ReconciliationPolicy) -> dict[str, Decimal]:
    if digital_payments is None:
        return {}
    if not isinstance(digital_payments, dict):
        raise ValidationError(
            "InvalidDigitalPayments",
            "digital_payments must be an object of channel -> amount",
            field="digital_payments",
        )

    cleaned: dict[str, Decimal] = {}
    for channel, amount in digital_payments.items():
        name = str(channel).strip().lower()
        if name not in policy.digital_payment_channels:
            raise ValidationError(
                "UnknownPaymentChannel",
                f"Unknown digital payment channel '{channel}'; expected one of "
                f"{', '.join(policy.digital_payment_channels)}",
                field=f"digital_payments.{channel}",
            )
        if name in cleaned:
            raise ValidationError(
                "DuplicatePaymentChannel",
                f"Digital payment channel '{name}' is given more than once",
                field=f"digital_payments.{channel}",
            )
        cleaned[name] = validate_cash_amount(
            amount,
            field=f"digital_payments.{name}",
            allow_zero=True,
            max_amount=policy.max_cash_amount,
        )
    return cleaned


def _shift_or_404(shift_id: int, *, lock: bool = False) -> Shift:
    query = db.session.query(Shift).filter_by(id=shift_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if not shift:
        raise NotFoundError("NotFound", f"Shift {shift_id} not found", field="shift_id")
    return shift


# =============================================================================
# OPEN
# =============================================================================

def open_shift(
    dispenser_id: int,
    operator_id: str,
    shift_slot: str,
    opening_reading,
    *,
    notes: str | None = None,
    policy: ReconciliationPolicy | None = None,
) -> Shift:
    """
    Open a new shift on a dispenser.

    Captures the dispenser's current unit price onto the shift. The opening
    reading may not go below the dispenser's last closing reading.

    Raises:
        NotFoundError: dispenser does not exist
        StateConflictError: DuplicateActiveShift, InactiveDispenser
        ValidationError: bad slot, operator or reading
    """
    slot = str(shift_slot or "").strip().upper()
    if slot not in SHIFT_SLOTS:
        raise ValidationError(
            "InvalidShiftSlot",
            f"shift_slot must be one of {', '.join(SHIFT_SLOTS)}",
            field="shift_slot",
        )
    operator = require_text(operator_id, field="operator_id", code="MissingOperator")

    dispenser = db.session.query(Dispenser).filter_by(id=dispenser_id).first()
    if not dispenser:
        raise NotFoundError("NotFound", f"Dispenser {dispenser_id} not found", field="dispenser_id")
    if not dispenser.is_active:
        raise StateConflictError(
            "InactiveDispenser",
            f"Cannot open shift on inactive dispenser {dispenser.dispenser_code}",
            field="dispenser_id",
        )

    existing = find_active_shift_by_dispenser(dispenser_id)
    if existing:
        raise StateConflictError(
            "DuplicateActiveShift",
            f"Dispenser {dispenser.dispenser_code} already has an active shift (shift {existing.id})",
            field="dispenser_id",
        )

    policy = policy or get_policy(dispenser.station_id)
    reading = validate_meter_reading(
        opening_reading,
        get_last_closing_reading(dispenser_id),
        field="opening_reading",
        max_reading=policy.max_meter_reading,
    )

    shift = Shift(
        dispenser_id=dispenser_id,
        operator_id=operator,
        shift_slot=slot,
        status=SHIFT_ACTIVE,
        start_time=utcnow(),
        opening_reading=reading,
        unit_price=dispenser.unit_price,
        actual_cash=Decimal("0.00"),
        digital_payments={},
        cash_used=Decimal("0.00"),
        notes=notes,
    )
    insert_shift(shift)

    current_app.logger.info(
        "Shift %s opened on dispenser %s by %s at reading %s",
        shift.id, dispenser_id, operator, reading,
    )
    record_audit(operator, "CREATE", "shift", shift.id, None, shift.to_dict())
    return shift


# =============================================================================
# CLOSE
# =============================================================================

def close_shift(
    shift_id: int,
    closing_reading,
    actual_cash=0,
    digital_payments: dict | None = None,
    cash_used=0,
    cash_usage_reason: str | None = None,
    *,
    actor_id: str | None = None,
    notes: str | None = None,
    policy: ReconciliationPolicy | None = None,
) -> Shift:
    """
    Close a shift, reconcile cash and flag discrepancies.

    IMMUTABLE: Once closed, readings and cash fields never change again.

    Args:
        shift_id: Shift to close
        closing_reading: Meter reading at close, >= opening reading
        actual_cash: Cash handed in
        digital_payments: Channel -> amount (upi, wallet, card, other)
        cash_used: Cash removed mid-shift for declared purposes
        cash_usage_reason: Required when cash_used > 0
        actor_id: Who closed it (defaults to the shift operator)

    Returns:
        The closed shift, COMPLETED or FLAGGED
    """
    shift = _shift_or_404(shift_id, lock=True)
    try:
        if shift.status != SHIFT_ACTIVE:
            raise StateConflictError(
                "NotActive",
                f"Shift {shift_id} is {shift.status}; only ACTIVE shifts can be closed",
                field="shift_id",
            )

        policy = policy or get_policy(shift.dispenser.station_id)

        closing = validate_meter_reading(
            closing_reading,
            shift.opening_reading,
            field="closing_reading",
            max_reading=policy.max_meter_reading,
        )
        cash = validate_cash_amount(actual_cash, field="actual_cash", max_amount=policy.max_cash_amount)
        digital = _validate_digital_payments(digital_payments, policy)
        used = validate_cash_amount(cash_used, field="cash_used", max_amount=policy.max_cash_amount)

        reason = str(cash_usage_reason).strip() if cash_usage_reason is not None else None
        if used > 0:
            reason = require_text(
                cash_usage_reason,
                field="cash_usage_reason",
                code="MissingUsageReason",
                min_length=policy.min_cash_usage_reason_length,
            )

        totals = compute_totals(shift.opening_reading, closing, shift.unit_price, cash, digital, used)
        outcome = evaluate_discrepancy(totals.discrepancy_amount, policy.discrepancy_tolerance)
    except FuelShiftError:
        db.session.rollback()
        raise

    before = shift.to_dict()
    patch = {
        "end_time": utcnow(),
        "closing_reading": closing,
        "fuel_sold": totals.fuel_sold,
        "expected_cash": totals.expected_cash,
        "actual_cash": cash,
        "digital_payments": {name: str(amount) for name, amount in digital.items()},
        "cash_used": used,
        "cash_usage_reason": reason or None,
        "status": outcome.status,
    }
    if notes is not None:
        patch["notes"] = notes
    if outcome.record is not None:
        patch.update({
            "discrepancy_amount": outcome.record.amount,
            "discrepancy_category": outcome.record.category,
            "discrepancy_resolved": outcome.record.resolved,
        })

    if not update_shift(shift.id, SHIFT_ACTIVE, patch):
        db.session.rollback()
        raise StateConflictError(
            "NotActive",
            f"Shift {shift_id} was closed by another request",
            field="shift_id",
        )
    commit_or_raise("close shift")

    shift = _shift_or_404(shift_id)
    actor = actor_id or shift.operator_id
    current_app.logger.info(
        "Shift %s closed as %s: fuel_sold=%s expected=%s discrepancy=%s",
        shift.id, shift.status, totals.fuel_sold, totals.expected_cash, totals.discrepancy_amount,
    )
    record_audit(actor, "UPDATE", "shift", shift.id, before, shift.to_dict())
    _announce_flag(shift, outcome)
    return shift


def _announce_flag(shift: Shift, outcome: DiscrepancyOutcome) -> None:
    if not outcome.flagged:
        return
    current_app.logger.warning(
        "Shift %s FLAGGED: %s of %s",
        shift.id, outcome.record.category, outcome.record.amount,
    )
    notification_service.emit(notification_service.DiscrepancyFlagged(
        shift_id=shift.id,
        dispenser_id=shift.dispenser_id,
        station_id=shift.dispenser.station_id,
        operator_id=shift.operator_id,
        amount=str(outcome.record.amount),
        category=outcome.record.category,
    ))


# =============================================================================
# QUERIES
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    return _shift_or_404(shift_id)


def get_active_shift(dispenser_id: int) -> Shift | None:
    """Get the currently active shift for a dispenser, if any."""
    return find_active_shift_by_dispenser(dispenser_id)


def _filtered_query(
    *,
    station_id: int | None = None,
    status: str | None = None,
    operator_id: str | None = None,
    dispenser_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    query = db.session.query(Shift).join(Dispenser, Shift.dispenser_id == Dispenser.id)

    if station_id is not None:
        query = query.filter(Dispenser.station_id == station_id)
    if status:
        normalized = status.strip().upper()
        if normalized not in SHIFT_STATUSES:
            raise ValidationError(
                "InvalidStatus",
                f"status must be one of {', '.join(SHIFT_STATUSES)}",
                field="status",
            )
        query = query.filter(Shift.status == normalized)
    if operator_id:
        query = query.filter(Shift.operator_id == str(operator_id))
    if dispenser_id is not None:
        query = query.filter(Shift.dispenser_id == dispenser_id)
    if start is not None:
        query = query.filter(Shift.start_time >= start)
    if end is not None:
        query = query.filter(Shift.start_time <= end)
    return query


def list_shifts(
    *,
    station_id: int | None = None,
    status: str | None = None,
    operator_id: str | None = None,
    dispenser_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Newest-first page of shifts.

    Returns:
        {"shifts": [Shift], "pagination": {page, limit, total, pages}}
    """
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), MAX_PAGE_SIZE)

    query = _filtered_query(
        station_id=station_id,
        status=status,
        operator_id=operator_id,
        dispenser_id=dispenser_id,
        start=start,
        end=end,
    )
    total = query.with_entities(func.count(Shift.id)).scalar() or 0
    shifts = query.order_by(Shift.start_time.desc(), Shift.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return {
        "shifts": shifts,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


def get_shift_stats(
    *,
    station_id: int | None = None,
    operator_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Rollup of closed (COMPLETED and FLAGGED) shifts.

    Returns:
        Totals of fuel, expected cash, cash, digital, cash used; the flagged
        count; average fuel per shift; and the net discrepancy.
    """
    shifts = _filtered_query(
        station_id=station_id,
        operator_id=operator_id,
        start=start,
        end=end,
    ).filter(Shift.status.in_((SHIFT_COMPLETED, SHIFT_FLAGGED))).all()

    zero = Decimal("0.00")
    total_fuel = Decimal("0.000")
    total_expected = zero
    total_cash = zero
    total_digital = zero
    total_used = zero
    flagged = 0
    resolved = 0

    for shift in shifts:
        total_fuel += shift.fuel_sold or 0
        total_expected += shift.expected_cash or zero
        total_cash += shift.actual_cash or zero
        total_used += shift.cash_used or zero
        total_digital += sum((Decimal(v) for v in (shift.digital_payments or {}).values()), zero)
        if shift.status == SHIFT_FLAGGED:
            flagged += 1
        elif shift.discrepancy_resolved:
            resolved += 1

    count = len(shifts)
    average = (total_fuel / count).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP) if count else Decimal("0.000")
    net_discrepancy = (total_cash + total_digital) - (total_expected - total_used)

    return {
        "total_shifts": count,
        "total_fuel_sold": str(total_fuel),
        "total_expected_cash": str(total_expected),
        "total_actual_cash": str(total_cash),
        "total_digital_payments": str(total_digital),
        "total_cash_used": str(total_used),
        "flagged_shifts": flagged,
        "resolved_discrepancies": resolved,
        "avg_fuel_per_shift": str(average),
        "total_discrepancy": str(net_discrepancy),
    }
