# Overview: Request decorators that establish the acting user for API routes.

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify, request

from .errors import AuthorizationError
from .permissions import ensure_can_configure, normalize_role, spans_all_stations


USER_HEADER = "X-User-Id"
ROLE_HEADER = "X-User-Role"
STATION_HEADER = "X-Station-Id"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    station_id: int | None


def require_actor(f):
    """
    Require an authenticated actor supplied by the identity provider.

    The gateway in front of this service authenticates the caller and
    forwards identity in headers. Sets:
    - g.actor: Actor(user_id, role, station_id)

    Returns 401 if the user id or role is missing or the role is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        role = normalize_role(request.headers.get(ROLE_HEADER))

        if not user_id or not role:
            return jsonify({"error": {"code": "Unauthenticated", "message": "Authentication required"}}), 401

        raw_station = (request.headers.get(STATION_HEADER) or "").strip()
        station_id = None
        if raw_station:
            try:
                station_id = int(raw_station)
            except ValueError:
                return jsonify({"error": {"code": "Unauthenticated", "message": "Invalid station header"}}), 401

        g.actor = Actor(user_id=user_id, role=role, station_id=station_id)
        return f(*args, **kwargs)

    return decorated_function


def require_configuration_role(f):
    """Require OWNER or ADMIN. Use after @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ensure_can_configure(g.actor.role)
        return f(*args, **kwargs)

    return decorated_function


def ensure_station_access(station_id: int | None) -> None:
    """Non-admin actors may only touch their own station."""
    if spans_all_stations(g.actor.role):
        return
    if station_id is None or g.actor.station_id != station_id:
        raise AuthorizationError("Forbidden", "Station access denied", field="station_id")


def scoped_station_id(requested: int | None) -> int | None:
    """Station filter for list endpoints: admins choose, everyone else is pinned."""
    if spans_all_stations(g.actor.role):
        return requested
    ensure_station_access(requested if requested is not None else g.actor.station_id)
    return g.actor.station_id
