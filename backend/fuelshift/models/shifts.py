from __future__ import annotations

from sqlalchemy import event, inspect

from ..errors import StateConflictError
from ..extensions import db
from ..time_utils import to_utc_z


SHIFT_ACTIVE = "ACTIVE"
SHIFT_COMPLETED = "COMPLETED"
SHIFT_FLAGGED = "FLAGGED"
SHIFT_STATUSES = (SHIFT_ACTIVE, SHIFT_COMPLETED, SHIFT_FLAGGED)

SHIFT_SLOTS = ("MORNING", "EVENING", "NIGHT")

DISCREPANCY_EXCESS = "excess"
DISCREPANCY_SHORTAGE = "shortage"

# Fixed by close; only the discrepancy resolution columns may change afterwards
IMMUTABLE_AFTER_CLOSE = (
    "dispenser_id",
    "operator_id",
    "start_time",
    "end_time",
    "opening_reading",
    "closing_reading",
    "unit_price",
    "fuel_sold",
    "expected_cash",
    "actual_cash",
    "digital_payments",
    "cash_used",
    "cash_usage_reason",
    "discrepancy_amount",
    "discrepancy_category",
)


def _num(value):
    return str(value) if value is not None else None


class Shift(db.Model):
    """
    One operator's tour of duty on one dispenser.

    LIFECYCLE:
    - ACTIVE: opened with a meter reading, price captured from the dispenser
    - COMPLETED: closed and reconciled within tolerance, or FLAGGED then resolved
    - FLAGGED: closed with a discrepancy beyond tolerance, awaiting resolution

    INVARIANTS:
    - At most one ACTIVE shift per dispenser (partial unique index)
    - closing_reading >= opening_reading
    - fuel_sold/expected_cash are written only by close, from readings and
      the captured price
    - Reading and cash columns are frozen once the shift leaves ACTIVE
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_active_per_dispenser",
            "dispenser_id",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
        db.Index("ix_shifts_dispenser_start", "dispenser_id", "start_time"),
        db.CheckConstraint("opening_reading >= 0", name="opening_reading_non_negative"),
        db.CheckConstraint(
            "closing_reading IS NULL OR closing_reading >= opening_reading",
            name="closing_reading_monotonic",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispenser_id = db.Column(db.Integer, db.ForeignKey("dispensers.id"), nullable=False, index=True)
    operator_id = db.Column(db.String(64), nullable=False, index=True)
    shift_slot = db.Column(db.String(16), nullable=False)  # MORNING, EVENING, NIGHT

    status = db.Column(db.String(16), nullable=False, default=SHIFT_ACTIVE, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Meter readings and fuel quantity
    opening_reading = db.Column(db.Numeric(12, 3), nullable=False)
    closing_reading = db.Column(db.Numeric(12, 3), nullable=True)
    fuel_sold = db.Column(db.Numeric(12, 3), nullable=True)

    # Price captured from the dispenser at open
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    # Money (set on close)
    expected_cash = db.Column(db.Numeric(14, 2), nullable=True)
    actual_cash = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    digital_payments = db.Column(db.JSON, nullable=False, default=dict)  # {"upi": "120.00", ...}
    cash_used = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cash_usage_reason = db.Column(db.Text, nullable=True)

    # Embedded discrepancy record; NULL amount means no discrepancy
    discrepancy_amount = db.Column(db.Numeric(14, 2), nullable=True)
    discrepancy_category = db.Column(db.String(16), nullable=True)  # excess, shortage
    discrepancy_resolved = db.Column(db.Boolean, nullable=True)
    resolution_reason = db.Column(db.Text, nullable=True)
    resolved_by = db.Column(db.String(64), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    dispenser = db.relationship("Dispenser", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == SHIFT_ACTIVE

    @property
    def discrepancy(self) -> dict | None:
        if self.discrepancy_amount is None:
            return None
        return {
            "amount": _num(self.discrepancy_amount),
            "category": self.discrepancy_category,
            "resolved": bool(self.discrepancy_resolved),
            "resolution_reason": self.resolution_reason,
            "resolved_by": self.resolved_by,
            "resolved_at": to_utc_z(self.resolved_at),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispenser_id": self.dispenser_id,
            "operator_id": self.operator_id,
            "shift_slot": self.shift_slot,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "opening_reading": _num(self.opening_reading),
            "closing_reading": _num(self.closing_reading),
            "fuel_sold": _num(self.fuel_sold),
            "unit_price": _num(self.unit_price),
            "expected_cash": _num(self.expected_cash),
            "actual_cash": _num(self.actual_cash),
            "digital_payments": dict(self.digital_payments or {}),
            "cash_used": _num(self.cash_used),
            "cash_usage_reason": self.cash_usage_reason,
            "discrepancy": self.discrepancy,
            "notes": self.notes,
            "version_id": self.version_id,
        }


@event.listens_for(Shift, "before_update")
def _refuse_edits_to_closed_shift(mapper, connection, target):
    state = inspect(target)
    status_history = state.attrs.status.history
    previous_status = status_history.deleted[0] if status_history.deleted else target.status
    if previous_status == SHIFT_ACTIVE:
        return

    changed = [name for name in IMMUTABLE_AFTER_CLOSE if state.attrs[name].history.deleted]
    if changed:
        raise StateConflictError(
            "NotActive",
            f"Shift {target.id} is {previous_status}; {', '.join(changed)} cannot be modified",
        )
