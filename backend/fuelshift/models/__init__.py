from .stations import Station, Dispenser, StationConfig, FUEL_TYPES
from .shifts import (
    Shift,
    SHIFT_ACTIVE,
    SHIFT_COMPLETED,
    SHIFT_FLAGGED,
    SHIFT_STATUSES,
    SHIFT_SLOTS,
    DISCREPANCY_EXCESS,
    DISCREPANCY_SHORTAGE,
)
from .audit import AuditLogEntry

__all__ = [
    'Station', 'Dispenser', 'StationConfig', 'FUEL_TYPES',
    'Shift', 'SHIFT_ACTIVE', 'SHIFT_COMPLETED', 'SHIFT_FLAGGED', 'SHIFT_STATUSES', 'SHIFT_SLOTS',
    'DISCREPANCY_EXCESS', 'DISCREPANCY_SHORTAGE',
    'AuditLogEntry',
]
