# Overview: Flask API routes for station policy overrides.

from flask import Blueprint, g, jsonify, request

from ..decorators import ensure_station_access, require_actor, require_configuration_role
from ..services import policy_service


stations_bp = Blueprint("stations", __name__, url_prefix="/api/stations")


@stations_bp.get("/<int:station_id>/config")
@require_actor
def get_station_config_route(station_id: int):
    """Station overrides plus the effective reconciliation policy."""
    ensure_station_access(station_id)
    policy = policy_service.get_policy(station_id)
    return jsonify({
        "overrides": [c.to_dict() for c in policy_service.get_station_configs(station_id)],
        "effective": {
            "discrepancy_tolerance": str(policy.discrepancy_tolerance),
            "max_meter_reading": str(policy.max_meter_reading),
            "max_cash_amount": str(policy.max_cash_amount),
            "min_cash_usage_reason_length": policy.min_cash_usage_reason_length,
            "digital_payment_channels": list(policy.digital_payment_channels),
        },
    }), 200


@stations_bp.put("/<int:station_id>/config/<key>")
@require_actor
@require_configuration_role
def set_station_config_route(station_id: int, key: str):
    """
    Set a policy override.

    Request body: {"value": "2.50"}   (null clears the override)
    """
    ensure_station_access(station_id)
    data = request.get_json(silent=True) or {}
    config = policy_service.set_station_config(station_id, key, data.get("value"), actor_id=g.actor.user_id)
    return jsonify({"config": config.to_dict()}), 200
