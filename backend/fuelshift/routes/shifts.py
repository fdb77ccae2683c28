# Overview: Flask API routes for the shift lifecycle; parses input and returns JSON responses.

# backend/fuelshift/routes/shifts.py
"""
Shift API Routes

DESIGN:
- Shift lifecycle: open -> close -> (resolve if flagged)
- Closed shifts are immutable; only the discrepancy resolution changes
- Failures come back as {"error": {"code", "message", "field"}}

SECURITY:
- Any authenticated role may open/close shifts on its own station
- Operators close only their own shifts; supervisors may close any
- Resolution requires OWNER or MANAGER (enforced by resolution_service)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ensure_station_access, require_actor, scoped_station_id
from ..errors import AuthorizationError, FuelShiftError, NotFoundError, ValidationError
from ..permissions import is_supervisor
from ..services import audit_service, dispenser_service, resolution_service, shift_service
from ..time_utils import parse_iso_datetime


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("InvalidPayload", "Request body must be a JSON object")
    return data


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw, end_of_day=(name == "end"))
    except ValueError:
        raise ValidationError("InvalidDate", f"{name} must be an ISO-8601 date or datetime", field=name)


def _load_scoped_shift(shift_id: int):
    shift = shift_service.get_shift(shift_id)
    ensure_station_access(shift.dispenser.station_id)
    return shift


# =============================================================================
# LIFECYCLE
# =============================================================================

@shifts_bp.post("/")
@shifts_bp.post("")
@require_actor
def open_shift_route():
    """
    Open a shift on a dispenser.

    Request body:
    {
        "dispenser_id": 1,
        "shift_slot": "MORNING",
        "opening_reading": "1000.0",
        "operator_id": "op-7",   (optional, supervisors only)
        "notes": "..."           (optional)
    }
    """
    try:
        data = _json_body()

        dispenser_id = data.get("dispenser_id")
        if dispenser_id is None:
            raise ValidationError("MissingDispenser", "dispenser_id is required", field="dispenser_id")

        dispenser = dispenser_service.get_dispenser(dispenser_id)
        if not dispenser:
            raise NotFoundError("NotFound", f"Dispenser {dispenser_id} not found", field="dispenser_id")
        ensure_station_access(dispenser.station_id)

        operator_id = data.get("operator_id") or g.actor.user_id
        if str(operator_id) != g.actor.user_id and not is_supervisor(g.actor.role):
            raise AuthorizationError("Forbidden", "Operators can only open shifts for themselves", field="operator_id")

        shift = shift_service.open_shift(
            dispenser_id=dispenser.id,
            operator_id=str(operator_id),
            shift_slot=data.get("shift_slot"),
            opening_reading=data.get("opening_reading"),
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500


@shifts_bp.post("/<int:shift_id>/close")
@require_actor
def close_shift_route(shift_id: int):
    """
    Close a shift and reconcile cash.

    Request body:
    {
        "closing_reading": "1150.0",
        "actual_cash": "14500",
        "digital_payments": {"upi": "200.00", "card": "0"},
        "cash_used": "0",
        "cash_usage_reason": null,
        "notes": null
    }
    """
    try:
        data = _json_body()
        shift = _load_scoped_shift(shift_id)

        if shift.operator_id != g.actor.user_id and not is_supervisor(g.actor.role):
            raise AuthorizationError(
                "Forbidden",
                "Only the shift operator or a supervisor can close this shift",
                field="shift_id",
            )

        if "closing_reading" not in data:
            raise ValidationError("NotNumeric", "closing_reading is required", field="closing_reading")

        shift = shift_service.close_shift(
            shift_id,
            closing_reading=data.get("closing_reading"),
            actual_cash=data.get("actual_cash", 0),
            digital_payments=data.get("digital_payments") or {},
            cash_used=data.get("cash_used", 0),
            cash_usage_reason=data.get("cash_usage_reason"),
            actor_id=g.actor.user_id,
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500


@shifts_bp.post("/<int:shift_id>/resolve")
@require_actor
def resolve_shift_route(shift_id: int):
    """
    Resolve a flagged shift's discrepancy.

    Request body: {"reason": "verified register count"}
    """
    try:
        data = _json_body()
        _load_scoped_shift(shift_id)

        shift = resolution_service.resolve_discrepancy(
            shift_id,
            resolver_id=g.actor.user_id,
            resolver_role=g.actor.role,
            reason=data.get("reason"),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to resolve discrepancy")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500


# =============================================================================
# QUERIES
# =============================================================================

@shifts_bp.get("/")
@shifts_bp.get("")
@require_actor
def list_shifts_route():
    """
    List shifts, newest first.

    Query: station_id, status, operator_id, dispenser_id, start, end, page, limit
    """
    result = shift_service.list_shifts(
        station_id=scoped_station_id(request.args.get("station_id", type=int)),
        status=request.args.get("status"),
        operator_id=request.args.get("operator_id"),
        dispenser_id=request.args.get("dispenser_id", type=int),
        start=_date_arg("start"),
        end=_date_arg("end"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return jsonify({
        "shifts": [s.to_dict() for s in result["shifts"]],
        "pagination": result["pagination"],
    }), 200


@shifts_bp.get("/stats")
@require_actor
def shift_stats_route():
    stats = shift_service.get_shift_stats(
        station_id=scoped_station_id(request.args.get("station_id", type=int)),
        operator_id=request.args.get("operator_id"),
        start=_date_arg("start"),
        end=_date_arg("end"),
    )
    return jsonify({"stats": stats}), 200


@shifts_bp.get("/flagged")
@require_actor
def flagged_shifts_route():
    """Flagged shifts awaiting manager review."""
    shifts = resolution_service.list_unresolved(
        station_id=scoped_station_id(request.args.get("station_id", type=int)),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<int:shift_id>")
@require_actor
def get_shift_route(shift_id: int):
    shift = _load_scoped_shift(shift_id)
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("/<int:shift_id>/audit")
@require_actor
def shift_audit_route(shift_id: int):
    """Audit trail for one shift, oldest first."""
    _load_scoped_shift(shift_id)
    entries = audit_service.get_entity_history("shift", shift_id)
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200
