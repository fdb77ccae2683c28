# backend/fuelshift/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelshift.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///fuelshift.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Reconciliation defaults; stations may override via station_configs
    DISCREPANCY_TOLERANCE = os.environ.get("DISCREPANCY_TOLERANCE", "1.00")
    MAX_METER_READING = os.environ.get("MAX_METER_READING", "999999")
    MAX_CASH_AMOUNT = os.environ.get("MAX_CASH_AMOUNT", "1000000")
    MIN_CASH_USAGE_REASON_LENGTH = int(os.environ.get("MIN_CASH_USAGE_REASON_LENGTH", "5"))

    DIGITAL_PAYMENT_CHANNELS = _csv(os.environ.get("DIGITAL_PAYMENT_CHANNELS", "upi,wallet,card,other"))
