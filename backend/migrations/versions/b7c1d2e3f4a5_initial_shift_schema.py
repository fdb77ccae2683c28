"""initial shift reconciliation schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
- stations, station_configs: sites and per-site reconciliation overrides
- dispensers: fuel outlets with the current unit price
- shifts: lifecycle, readings, cash reconciliation, embedded discrepancy
- audit_logs: append-only before/after trail

The partial unique index uq_shifts_one_active_per_dispenser is what makes
"one ACTIVE shift per dispenser" hold under concurrent opens.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_stations"),
        sa.UniqueConstraint("code", name="uq_stations_code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "station_configs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_station_configs_station_id_stations"),
        sa.PrimaryKeyConstraint("id", name="pk_station_configs"),
        sa.UniqueConstraint("station_id", "key", name="uq_station_configs_station_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_station_configs_station_id", "station_configs", ["station_id"], unique=False)

    op.create_table(
        "dispensers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("dispenser_code", sa.String(length=20), nullable=False),
        sa.Column("fuel_type", sa.String(length=16), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("unit_price >= 0", name="ck_dispensers_unit_price_non_negative"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_dispensers_station_id_stations"),
        sa.PrimaryKeyConstraint("id", name="pk_dispensers"),
        sa.UniqueConstraint("station_id", "dispenser_code", name="uq_dispensers_station_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dispensers_station_id", "dispensers", ["station_id"], unique=False)
    op.create_index("ix_dispensers_fuel_type", "dispensers", ["fuel_type"], unique=False)
    op.create_index("ix_dispensers_is_active", "dispensers", ["is_active"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("dispenser_id", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.String(length=64), nullable=False),
        sa.Column("shift_slot", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opening_reading", sa.Numeric(12, 3), nullable=False),
        sa.Column("closing_reading", sa.Numeric(12, 3), nullable=True),
        sa.Column("fuel_sold", sa.Numeric(12, 3), nullable=True),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("expected_cash", sa.Numeric(14, 2), nullable=True),
        sa.Column("actual_cash", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("digital_payments", sa.JSON(), nullable=False),
        sa.Column("cash_used", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("cash_usage_reason", sa.Text(), nullable=True),
        sa.Column("discrepancy_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("discrepancy_category", sa.String(length=16), nullable=True),
        sa.Column("discrepancy_resolved", sa.Boolean(), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("opening_reading >= 0", name="ck_shifts_opening_reading_non_negative"),
        sa.CheckConstraint(
            "closing_reading IS NULL OR closing_reading >= opening_reading",
            name="ck_shifts_closing_reading_monotonic",
        ),
        sa.ForeignKeyConstraint(["dispenser_id"], ["dispensers.id"], name="fk_shifts_dispenser_id_dispensers"),
        sa.PrimaryKeyConstraint("id", name="pk_shifts"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shifts_dispenser_id", "shifts", ["dispenser_id"], unique=False)
    op.create_index("ix_shifts_operator_id", "shifts", ["operator_id"], unique=False)
    op.create_index("ix_shifts_status", "shifts", ["status"], unique=False)
    op.create_index("ix_shifts_start_time", "shifts", ["start_time"], unique=False)
    op.create_index("ix_shifts_dispenser_start", "shifts", ["dispenser_id", "start_time"], unique=False)
    op.create_index(
        "uq_shifts_one_active_per_dispenser",
        "shifts",
        ["dispenser_id"],
        unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_occurred_at", "audit_logs", ["occurred_at"], unique=False)
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False)


def downgrade():
    op.drop_table("audit_logs")
    op.drop_index("uq_shifts_one_active_per_dispenser", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("dispensers")
    op.drop_table("station_configs")
    op.drop_table("stations")
