# Overview: Flask API routes for dispenser configuration; parses input and returns JSON responses.

"""
Dispenser Configuration API Routes

SECURITY:
- Listing is open to any authenticated role on its own station
- Create, price changes and deactivation require OWNER or ADMIN
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ensure_station_access, require_actor, require_configuration_role, scoped_station_id
from ..errors import FuelShiftError, NotFoundError, ValidationError
from ..services import dispenser_service, shift_service


dispensers_bp = Blueprint("dispensers", __name__, url_prefix="/api/dispensers")


def _load_scoped_dispenser(dispenser_id: int):
    dispenser = dispenser_service.get_dispenser(dispenser_id)
    if not dispenser:
        raise NotFoundError("NotFound", f"Dispenser {dispenser_id} not found", field="dispenser_id")
    ensure_station_access(dispenser.station_id)
    return dispenser


@dispensers_bp.post("/")
@dispensers_bp.post("")
@require_actor
@require_configuration_role
def create_dispenser_route():
    """
    Create a dispenser.

    Request body:
    {
        "station_id": 1,
        "dispenser_code": "D-01",
        "fuel_type": "PETROL",
        "unit_price": "100.00"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        if data.get("station_id") is None:
            raise ValidationError("MissingStation", "station_id is required", field="station_id")
        try:
            station_id = int(data["station_id"])
        except (TypeError, ValueError):
            raise ValidationError("NotNumeric", "station_id must be an integer", field="station_id")
        ensure_station_access(station_id)

        dispenser = dispenser_service.create_dispenser(
            station_id=station_id,
            dispenser_code=data.get("dispenser_code"),
            fuel_type=data.get("fuel_type"),
            unit_price=data.get("unit_price"),
            actor_id=g.actor.user_id,
        )
        return jsonify({"dispenser": dispenser.to_dict()}), 201

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to create dispenser")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500


@dispensers_bp.get("/")
@dispensers_bp.get("")
@require_actor
def list_dispensers_route():
    """List dispensers with their current active shift, if any."""
    station_id = scoped_station_id(request.args.get("station_id", type=int))
    include_inactive = request.args.get("all", "false").lower() == "true"

    result = []
    for dispenser in dispenser_service.list_dispensers(station_id, include_inactive=include_inactive):
        d = dispenser.to_dict()
        active = shift_service.get_active_shift(dispenser.id)
        d["active_shift"] = active.to_dict() if active else None
        result.append(d)

    return jsonify({"dispensers": result}), 200


@dispensers_bp.get("/<int:dispenser_id>")
@require_actor
def get_dispenser_route(dispenser_id: int):
    dispenser = _load_scoped_dispenser(dispenser_id)
    result = dispenser.to_dict()
    last_reading = dispenser_service.get_last_closing_reading(dispenser.id)
    result["last_closing_reading"] = str(last_reading) if last_reading is not None else None
    active = shift_service.get_active_shift(dispenser.id)
    result["active_shift"] = active.to_dict() if active else None
    return jsonify(result), 200


@dispensers_bp.patch("/<int:dispenser_id>/price")
@require_actor
@require_configuration_role
def set_price_route(dispenser_id: int):
    """
    Change unit price. Active shifts keep the price captured at open.

    Request body: {"unit_price": "102.50"}
    """
    try:
        _load_scoped_dispenser(dispenser_id)
        data = request.get_json(silent=True) or {}
        dispenser = dispenser_service.set_dispenser_price(
            dispenser_id,
            data.get("unit_price"),
            actor_id=g.actor.user_id,
        )
        return jsonify({"dispenser": dispenser.to_dict()}), 200

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to update dispenser price")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500


@dispensers_bp.post("/<int:dispenser_id>/deactivate")
@require_actor
@require_configuration_role
def deactivate_dispenser_route(dispenser_id: int):
    try:
        _load_scoped_dispenser(dispenser_id)
        dispenser = dispenser_service.deactivate_dispenser(dispenser_id, actor_id=g.actor.user_id)
        return jsonify({"dispenser": dispenser.to_dict()}), 200

    except FuelShiftError:
        raise
    except Exception:
        current_app.logger.exception("Failed to deactivate dispenser")
        return jsonify({"error": {"code": "InternalError", "message": "Internal server error"}}), 500
