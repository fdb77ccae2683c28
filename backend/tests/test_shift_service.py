"""
Shift lifecycle tests: open, close, reconciliation and concurrency guards.
"""

from decimal import Decimal

import pytest

from fuelshift.errors import NotFoundError, StateConflictError, ValidationError
from fuelshift.extensions import db
from fuelshift.models import AuditLogEntry, Shift
from fuelshift.services import dispenser_service, policy_service, shift_service, shift_store
from fuelshift.services.policy_service import ReconciliationPolicy
from fuelshift.time_utils import utcnow


def _reload(shift_id: int) -> Shift:
    db.session.expire_all()
    return db.session.get(Shift, shift_id)


# =============================================================================
# OPEN
# =============================================================================


class TestOpenShift:

    def test_open_creates_active_shift(self, dispenser):
        shift = shift_service.open_shift(dispenser.id, "op-1", "MORNING", "1000.0")

        assert shift.status == "ACTIVE"
        assert shift.opening_reading == Decimal("1000.0")
        assert shift.closing_reading is None
        assert shift.end_time is None
        assert shift.start_time is not None
        assert shift.discrepancy is None

    def test_open_captures_dispenser_price(self, dispenser):
        shift = shift_service.open_shift(dispenser.id, "op-1", "EVENING", "10")
        assert shift.unit_price == Decimal("100.00")

    def test_open_writes_create_audit_entry(self, dispenser):
        shift = shift_service.open_shift(dispenser.id, "op-1", "NIGHT", "10")

        entries = db.session.query(AuditLogEntry).filter_by(entity_type="shift", entity_id=shift.id).all()
        assert len(entries) == 1
        assert entries[0].action == "CREATE"
        assert entries[0].actor_id == "op-1"
        assert entries[0].old_values is None
        assert entries[0].new_values["status"] == "ACTIVE"

    def test_duplicate_active_shift_rejected(self, dispenser, active_shift):
        with pytest.raises(StateConflictError) as exc:
            shift_service.open_shift(dispenser.id, "op-2", "EVENING", "1000.0")
        assert exc.value.code == "DuplicateActiveShift"
        assert db.session.query(Shift).filter_by(dispenser_id=dispenser.id).count() == 1

    def test_store_index_blocks_second_active_insert(self, dispenser, active_shift):
        """Two opens that both passed the pre-check: the store lets only one in."""
        racer = Shift(
            dispenser_id=dispenser.id,
            operator_id="op-2",
            shift_slot="EVENING",
            status="ACTIVE",
            start_time=utcnow(),
            opening_reading=Decimal("1000.0"),
            unit_price=Decimal("100.00"),
            digital_payments={},
        )
        with pytest.raises(StateConflictError) as exc:
            shift_store.insert_shift(racer)
        assert exc.value.code == "DuplicateActiveShift"
        assert db.session.query(Shift).filter_by(dispenser_id=dispenser.id, status="ACTIVE").count() == 1

    def test_opening_reading_must_not_go_below_last_closing(self, dispenser, active_shift):
        shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")

        with pytest.raises(ValidationError) as exc:
            shift_service.open_shift(dispenser.id, "op-2", "EVENING", "1100.0")
        assert exc.value.code == "NotMonotonic"
        assert exc.value.field == "opening_reading"

        nxt = shift_service.open_shift(dispenser.id, "op-2", "EVENING", "1150.0")
        assert nxt.status == "ACTIVE"

    def test_invalid_slot_rejected(self, dispenser):
        with pytest.raises(ValidationError) as exc:
            shift_service.open_shift(dispenser.id, "op-1", "AFTERNOON", "10")
        assert exc.value.code == "InvalidShiftSlot"

    def test_unknown_dispenser(self, db_session):
        with pytest.raises(NotFoundError):
            shift_service.open_shift(999, "op-1", "MORNING", "10")

    def test_inactive_dispenser_rejected(self, dispenser):
        dispenser_service.deactivate_dispenser(dispenser.id, actor_id="owner-1")
        with pytest.raises(StateConflictError) as exc:
            shift_service.open_shift(dispenser.id, "op-1", "MORNING", "10")
        assert exc.value.code == "InactiveDispenser"

    def test_invalid_reading_writes_nothing(self, dispenser):
        with pytest.raises(ValidationError) as exc:
            shift_service.open_shift(dispenser.id, "op-1", "MORNING", "-5")
        assert exc.value.code == "Negative"
        assert db.session.query(Shift).count() == 0
        assert db.session.query(AuditLogEntry).count() == 0


# =============================================================================
# CLOSE
# =============================================================================


class TestCloseShift:

    def test_shortage_flags_shift(self, active_shift, events):
        shift = shift_service.close_shift(
            active_shift.id, "1150.0", actual_cash="14500", digital_payments={}, cash_used="0",
        )

        assert shift.status == "FLAGGED"
        assert shift.fuel_sold == Decimal("150")
        assert shift.expected_cash == Decimal("15000.00")
        assert shift.actual_cash == Decimal("14500.00")
        assert shift.end_time is not None
        assert shift.discrepancy == {
            "amount": "-500.00",
            "category": "shortage",
            "resolved": False,
            "resolution_reason": None,
            "resolved_by": None,
            "resolved_at": None,
        }

        flagged = [e for e in events if e.event_type == "shift.discrepancy.flagged.v1"]
        assert len(flagged) == 1
        assert flagged[0].shift_id == shift.id
        assert flagged[0].category == "shortage"
        assert flagged[0].amount == "-500.00"

    def test_exact_cash_completes_without_record(self, active_shift, events):
        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")

        assert shift.status == "COMPLETED"
        assert shift.discrepancy is None
        assert shift.discrepancy_amount is None
        assert not [e for e in events if e.event_type == "shift.discrepancy.flagged.v1"]

    def test_excess_beyond_tolerance(self, active_shift):
        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15001.50")
        assert shift.status == "FLAGGED"
        assert shift.discrepancy["category"] == "excess"
        assert shift.discrepancy["amount"] == "1.50"

    def test_rounding_within_tolerance_completes(self, active_shift):
        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14999.00")
        assert shift.status == "COMPLETED"

    def test_digital_payments_and_cash_used_reconcile(self, active_shift):
        shift = shift_service.close_shift(
            active_shift.id,
            "1150.0",
            actual_cash="12000",
            digital_payments={"UPI": "2000", "card": "500.00"},
            cash_used="500",
            cash_usage_reason="generator diesel",
        )
        assert shift.status == "COMPLETED"
        assert shift.digital_payments == {"upi": "2000.00", "card": "500.00"}
        assert shift.cash_used == Decimal("500.00")
        assert shift.cash_usage_reason == "generator diesel"

    def test_uses_price_captured_at_open(self, dispenser, active_shift):
        dispenser_service.set_dispenser_price(dispenser.id, "120.00", actor_id="owner-1")

        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")
        assert shift.unit_price == Decimal("100.00")
        assert shift.expected_cash == Decimal("15000.00")
        assert shift.status == "COMPLETED"

    def test_closing_below_opening_fails_and_stays_active(self, active_shift):
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(active_shift.id, "900.0", actual_cash="0")
        assert exc.value.code == "NotMonotonic"

        shift = _reload(active_shift.id)
        assert shift.status == "ACTIVE"
        assert shift.closing_reading is None

    def test_cash_used_requires_reason(self, active_shift):
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14500", cash_used="500")
        assert exc.value.code == "MissingUsageReason"

        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(
                active_shift.id, "1150.0", actual_cash="14500", cash_used="500", cash_usage_reason="tea",
            )
        assert exc.value.code == "MissingUsageReason"
        assert _reload(active_shift.id).status == "ACTIVE"

    def test_unknown_digital_channel_rejected(self, active_shift):
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(active_shift.id, "1150.0", digital_payments={"bitcoin": "10"})
        assert exc.value.code == "UnknownPaymentChannel"

    def test_case_folded_duplicate_channel_rejected(self, active_shift):
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(
                active_shift.id,
                "1150.0",
                actual_cash="14000",
                digital_payments={"UPI": "500", "upi": "500"},
            )
        assert exc.value.code == "DuplicatePaymentChannel"
        assert exc.value.field == "digital_payments.upi"
        assert _reload(active_shift.id).status == "ACTIVE"

        shift = shift_service.close_shift(
            active_shift.id, "1150.0", actual_cash="14000", digital_payments={"upi": "1000"},
        )
        assert shift.status == "COMPLETED"

    def test_invalid_digital_amount_names_the_channel(self, active_shift):
        with pytest.raises(ValidationError) as exc:
            shift_service.close_shift(active_shift.id, "1150.0", digital_payments={"card": "-3"})
        assert exc.value.code == "Negative"
        assert exc.value.field == "digital_payments.card"

    def test_closing_twice_fails(self, active_shift):
        shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")
        with pytest.raises(StateConflictError) as exc:
            shift_service.close_shift(active_shift.id, "1200.0", actual_cash="20000")
        assert exc.value.code == "NotActive"

        shift = _reload(active_shift.id)
        assert shift.closing_reading == Decimal("1150.0")

    def test_lost_race_reports_not_active(self, active_shift, monkeypatch):
        monkeypatch.setattr(shift_service, "update_shift", lambda *args, **kwargs: False)

        with pytest.raises(StateConflictError) as exc:
            shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")
        assert exc.value.code == "NotActive"
        assert _reload(active_shift.id).status == "ACTIVE"

    def test_stale_conditional_write_matches_no_row(self, active_shift):
        shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")

        moved = shift_store.update_shift(active_shift.id, "ACTIVE", {"closing_reading": Decimal("2000")})
        db.session.commit()

        assert moved is False
        shift = _reload(active_shift.id)
        assert shift.status == "COMPLETED"
        assert shift.closing_reading == Decimal("1150.0")

    def test_failed_close_releases_the_row(self, active_shift):
        with pytest.raises(ValidationError):
            shift_service.close_shift(active_shift.id, "900.0")
        assert not db.session.in_transaction()

        shift_service.close_shift(active_shift.id, "1150.0", actual_cash="15000")
        with pytest.raises(StateConflictError):
            shift_service.close_shift(active_shift.id, "1200.0")
        assert not db.session.in_transaction()

    def test_close_writes_update_audit_with_before_and_after(self, active_shift):
        shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14500", actor_id="mgr-1")

        entry = db.session.query(AuditLogEntry).filter_by(
            entity_type="shift", entity_id=active_shift.id, action="UPDATE",
        ).one()
        assert entry.actor_id == "mgr-1"
        assert entry.old_values["status"] == "ACTIVE"
        assert entry.new_values["status"] == "FLAGGED"
        assert entry.new_values["fuel_sold"] == "150.000"

    def test_unknown_shift(self, db_session):
        with pytest.raises(NotFoundError):
            shift_service.close_shift(12345, "10")

    def test_explicit_policy_overrides_station_tolerance(self, active_shift):
        loose = ReconciliationPolicy(discrepancy_tolerance=Decimal("600"))
        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14500", policy=loose)
        assert shift.status == "COMPLETED"

    def test_station_tolerance_override(self, station, active_shift):
        policy_service.set_station_config(station.id, "discrepancy_tolerance", "500", actor_id="owner-1")
        shift = shift_service.close_shift(active_shift.id, "1150.0", actual_cash="14500")
        assert shift.status == "COMPLETED"


# =============================================================================
# IMMUTABILITY
# =============================================================================


class TestClosedShiftImmutability:

    def test_orm_refuses_edits_to_closed_shift(self, flagged_shift):
        shift = _reload(flagged_shift.id)
        shift.actual_cash = Decimal("15000.00")

        with pytest.raises(StateConflictError) as exc:
            db.session.commit()
        assert exc.value.code == "NotActive"
        db.session.rollback()

        assert _reload(flagged_shift.id).actual_cash == Decimal("14500.00")

    def test_notes_remain_editable(self, flagged_shift):
        shift = _reload(flagged_shift.id)
        shift.notes = "register recounted"
        db.session.commit()
        assert _reload(flagged_shift.id).notes == "register recounted"


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:

    def test_list_filters_and_paginates(self, station, dispenser, db_session):
        second = dispenser_service.create_dispenser(station.id, "D-02", "DIESEL", "90.00")
        a = shift_service.open_shift(dispenser.id, "op-1", "MORNING", "1000")
        shift_service.close_shift(a.id, "1150", actual_cash="14500")
        shift_service.open_shift(second.id, "op-2", "MORNING", "50")

        everything = shift_service.list_shifts(station_id=station.id)
        assert everything["pagination"]["total"] == 2

        flagged = shift_service.list_shifts(station_id=station.id, status="flagged")
        assert [s.id for s in flagged["shifts"]] == [a.id]

        by_operator = shift_service.list_shifts(operator_id="op-2")
        assert by_operator["pagination"]["total"] == 1

        paged = shift_service.list_shifts(station_id=station.id, limit=1, page=2)
        assert len(paged["shifts"]) == 1
        assert paged["pagination"]["pages"] == 2

    def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError) as exc:
            shift_service.list_shifts(status="OPEN")
        assert exc.value.code == "InvalidStatus"

    def test_stats_rollup(self, station, dispenser):
        a = shift_service.open_shift(dispenser.id, "op-1", "MORNING", "1000")
        shift_service.close_shift(a.id, "1150", actual_cash="14500")
        b = shift_service.open_shift(dispenser.id, "op-1", "EVENING", "1150")
        shift_service.close_shift(
            b.id, "1200", actual_cash="4900", digital_payments={"upi": "100"},
        )
        shift_service.open_shift(dispenser.id, "op-2", "NIGHT", "1200")

        stats = shift_service.get_shift_stats(station_id=station.id)
        assert stats["total_shifts"] == 2
        assert Decimal(stats["total_fuel_sold"]) == Decimal("200")
        assert Decimal(stats["total_expected_cash"]) == Decimal("20000")
        assert Decimal(stats["total_actual_cash"]) == Decimal("19400")
        assert Decimal(stats["total_digital_payments"]) == Decimal("100")
        assert stats["flagged_shifts"] == 1
        assert Decimal(stats["avg_fuel_per_shift"]) == Decimal("100")
        assert Decimal(stats["total_discrepancy"]) == Decimal("-500")
