# Overview: Role vocabulary and the few role gates the engine enforces.

"""
Identity (user id, role, station) comes from the upstream identity
provider and is trusted as given. Role logic lives here and nowhere else:

- Any authenticated role may open and close shifts.
- Only OWNER and MANAGER may resolve a flagged discrepancy.
- OWNER and ADMIN configure dispensers, prices and station policy.
- ADMIN is not scoped to a station; everyone else sees only their own.
"""

from __future__ import annotations

from .errors import AuthorizationError


ROLE_OPERATOR = "OPERATOR"
ROLE_MANAGER = "MANAGER"
ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"

ROLES = (ROLE_OPERATOR, ROLE_MANAGER, ROLE_OWNER, ROLE_ADMIN)

RESOLVER_ROLES = frozenset({ROLE_OWNER, ROLE_MANAGER})
CONFIGURATION_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN})
SUPERVISOR_ROLES = frozenset({ROLE_MANAGER, ROLE_OWNER, ROLE_ADMIN})


def normalize_role(role: str | None) -> str | None:
    if role is None:
        return None
    value = str(role).strip().upper()
    return value if value in ROLES else None


def can_resolve_discrepancy(role: str | None) -> bool:
    return normalize_role(role) in RESOLVER_ROLES


def ensure_can_resolve_discrepancy(role: str | None) -> None:
    if not can_resolve_discrepancy(role):
        raise AuthorizationError(
            "Forbidden",
            f"Role {role or 'UNKNOWN'} cannot resolve discrepancies; OWNER or MANAGER required",
            field="role",
        )


def ensure_can_configure(role: str | None) -> None:
    if normalize_role(role) not in CONFIGURATION_ROLES:
        raise AuthorizationError(
            "Forbidden",
            f"Role {role or 'UNKNOWN'} cannot change station configuration; OWNER or ADMIN required",
            field="role",
        )


def is_supervisor(role: str | None) -> bool:
    return normalize_role(role) in SUPERVISOR_ROLES


def spans_all_stations(role: str | None) -> bool:
    return normalize_role(role) == ROLE_ADMIN
