# Overview: Reconciliation policy (tolerance, validator ceilings) with per-station overrides.

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from decimal import Decimal

from flask import Flask, current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Station, StationConfig
from ..validation import DEFAULT_MAX_CASH_AMOUNT, DEFAULT_MAX_METER_READING, parse_decimal
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry


EXTENSION_KEY = "fuelshift.policy_cache"

DECIMAL_KEYS = ("discrepancy_tolerance", "max_meter_reading", "max_cash_amount")
INTEGER_KEYS = ("min_cash_usage_reason_length",)
POLICY_KEYS = DECIMAL_KEYS + INTEGER_KEYS


@dataclass(frozen=True)
class ReconciliationPolicy:
    """Read-only knobs consulted by open/close. Passed in, never mutated."""
    discrepancy_tolerance: Decimal = Decimal("1.00")
    max_meter_reading: Decimal = DEFAULT_MAX_METER_READING
    max_cash_amount: Decimal = DEFAULT_MAX_CASH_AMOUNT
    min_cash_usage_reason_length: int = 5
    digital_payment_channels: tuple[str, ...] = ("upi", "wallet", "card", "other")


class PolicyCache:
    """Per-app cache of resolved station policies, invalidated on admin writes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_station: dict[int, ReconciliationPolicy] = {}

    def get(self, station_id: int) -> ReconciliationPolicy | None:
        with self._lock:
            return self._by_station.get(station_id)

    def put(self, station_id: int, policy: ReconciliationPolicy) -> None:
        with self._lock:
            self._by_station[station_id] = policy

    def invalidate(self, station_id: int | None = None) -> None:
        with self._lock:
            if station_id is None:
                self._by_station.clear()
            else:
                self._by_station.pop(station_id, None)


def init_app(app: Flask) -> None:
    app.extensions[EXTENSION_KEY] = PolicyCache()


def _cache() -> PolicyCache:
    return current_app.extensions[EXTENSION_KEY]


def _coerce(key: str, raw) -> Decimal | int:
    if key in DECIMAL_KEYS:
        value = parse_decimal(raw, field=key)
        if value < 0:
            raise ValidationError("Negative", f"{key} cannot be negative", field=key)
        return value
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValidationError("NotNumeric", f"{key} must be an integer", field=key)
    if value < 1:
        raise ValidationError("OutOfRange", f"{key} must be at least 1", field=key)
    return value


def default_policy() -> ReconciliationPolicy:
    """Process-wide defaults from app config."""
    config = current_app.config
    return ReconciliationPolicy(
        discrepancy_tolerance=_coerce("discrepancy_tolerance", config["DISCREPANCY_TOLERANCE"]),
        max_meter_reading=_coerce("max_meter_reading", config["MAX_METER_READING"]),
        max_cash_amount=_coerce("max_cash_amount", config["MAX_CASH_AMOUNT"]),
        min_cash_usage_reason_length=_coerce("min_cash_usage_reason_length", config["MIN_CASH_USAGE_REASON_LENGTH"]),
        digital_payment_channels=tuple(config["DIGITAL_PAYMENT_CHANNELS"]),
    )


def get_policy(station_id: int) -> ReconciliationPolicy:
    """Defaults overlaid with the station's station_configs rows."""
    cached = _cache().get(station_id)
    if cached is not None:
        return cached

    overrides = {}
    rows = db.session.query(StationConfig).filter(
        StationConfig.station_id == station_id,
        StationConfig.key.in_(POLICY_KEYS),
    ).all()
    for row in rows:
        if row.value is not None:
            overrides[row.key] = _coerce(row.key, row.value)

    policy = replace(default_policy(), **overrides)
    _cache().put(station_id, policy)
    return policy


def invalidate_policy_cache(station_id: int | None = None) -> None:
    _cache().invalidate(station_id)


def set_station_config(station_id: int, key: str, value, *, actor_id: str) -> StationConfig:
    """
    Set (or clear, with value=None) a policy override for one station.

    Invalidates the cached policy so the next open/close sees the change.
    """
    if key not in POLICY_KEYS:
        raise ValidationError("UnknownConfigKey", f"Unknown config key: {key}", field="key")

    stored = None if value is None else str(_coerce(key, value))

    def _op():
        station = db.session.query(Station).filter_by(id=station_id).first()
        if not station:
            raise NotFoundError("NotFound", f"Station {station_id} not found", field="station_id")

        config = lock_for_update(
            db.session.query(StationConfig).filter_by(station_id=station_id, key=key)
        ).first()
        before = config.to_dict() if config else None
        if config:
            config.value = stored
        else:
            config = StationConfig(station_id=station_id, key=key, value=stored)
            db.session.add(config)

        db.session.commit()
        return config, before

    config, before = run_with_retry(_op)
    invalidate_policy_cache(station_id)
    record_audit(actor_id, "UPDATE", "station_config", config.id, before, config.to_dict())
    return config


def get_station_configs(station_id: int) -> list[StationConfig]:
    return db.session.query(StationConfig).filter_by(station_id=station_id).order_by(StationConfig.key.asc()).all()
