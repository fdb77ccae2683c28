from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


FUEL_TYPES = ("PETROL", "DIESEL", "CNG", "ELECTRIC")


class Station(db.Model):
    """
    A petrol station (pump site).

    Users are scoped to one station by the identity provider; every
    dispenser, and therefore every shift, belongs to exactly one station.
    """
    __tablename__ = "stations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True)
    location = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Dispenser(db.Model):
    """
    One fuel outlet on a station forecourt.

    DESIGN: Dispensers are never deleted, only deactivated, so historical
    shifts keep a valid reference. unit_price is mutable; a shift copies
    it at open time and never looks at the dispenser price again.
    """
    __tablename__ = "dispensers"
    __table_args__ = (
        db.UniqueConstraint("station_id", "dispenser_code", name="uq_dispensers_station_code"),
        db.CheckConstraint("unit_price >= 0", name="unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)

    dispenser_code = db.Column(db.String(20), nullable=False)
    fuel_type = db.Column(db.String(16), nullable=False, index=True)  # PETROL, DIESEL, CNG, ELECTRIC
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("dispensers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "dispenser_code": self.dispenser_code,
            "fuel_type": self.fuel_type,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StationConfig(db.Model):
    """Per-station overrides of reconciliation policy (key/value)."""
    __tablename__ = "station_configs"
    __table_args__ = (
        db.UniqueConstraint("station_id", "key", name="uq_station_configs_station_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("configs", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "key": self.key,
            "value": self.value,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
