"""
Input validators for meter readings and money amounts.

Both validators are pure: they parse, check and return a normalized
Decimal, or raise ValidationError with a specific code and field. They
never touch the database.

Readings and money are Decimal end to end. Floats are accepted from JSON
but converted through str() so 0.1 stays 0.1.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError


DEFAULT_MAX_METER_READING = Decimal("999999")
DEFAULT_MAX_CASH_AMOUNT = Decimal("1000000")

READING_DECIMAL_PLACES = 3
MONEY_DECIMAL_PLACES = 2


def parse_decimal(value: Any, *, field: str) -> Decimal:
    """Coerce user input to a finite Decimal or raise NotNumeric."""
    if value is None or isinstance(value, bool):
        raise ValidationError("NotNumeric", f"{field} must be a number", field=field)

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError("NotNumeric", f"{field} must be a number", field=field)
        try:
            parsed = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError("NotNumeric", f"{field} must be a number, got '{stripped}'", field=field)
    else:
        raise ValidationError("NotNumeric", f"{field} must be a number", field=field)

    if not parsed.is_finite():
        raise ValidationError("NotNumeric", f"{field} must be a finite number", field=field)

    return parsed


def _decimal_places(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    return -exponent if exponent < 0 else 0


def validate_meter_reading(
    reading: Any,
    previous_reading: Any = None,
    *,
    field: str = "reading",
    max_reading: Decimal = DEFAULT_MAX_METER_READING,
) -> Decimal:
    """
    Validate a dispenser meter (stock) reading.

    previous_reading is the floor the reading may not go below: the shift's
    opening reading when closing, or the dispenser's last closing reading
    when opening.

    Raises:
        ValidationError: NotNumeric, Negative, OutOfRange, TooManyDecimals
            or NotMonotonic
    """
    value = parse_decimal(reading, field=field)

    if value < 0:
        raise ValidationError("Negative", f"{field} cannot be negative", field=field)

    if value > max_reading:
        raise ValidationError(
            "OutOfRange",
            f"{field} ({value}) seems unusually high (max: {max_reading:,})",
            field=field,
        )

    if _decimal_places(value) > READING_DECIMAL_PLACES:
        raise ValidationError(
            "TooManyDecimals",
            f"{field} allows at most {READING_DECIMAL_PLACES} decimal places",
            field=field,
        )

    if previous_reading is not None:
        floor = parse_decimal(previous_reading, field="previous_reading")
        if value < floor:
            raise ValidationError(
                "NotMonotonic",
                f"{field} ({value}) must be greater than or equal to previous reading ({floor})",
                field=field,
            )

    return value


def validate_cash_amount(
    amount: Any,
    *,
    field: str = "amount",
    allow_zero: bool = True,
    max_amount: Decimal = DEFAULT_MAX_CASH_AMOUNT,
) -> Decimal:
    """
    Validate a money amount (cash collected, a digital sub-total, cash used).

    Raises:
        ValidationError: NotNumeric, Negative, TooHigh, ZeroNotAllowed or
            TooManyDecimals
    """
    value = parse_decimal(amount, field=field)

    if value < 0:
        raise ValidationError("Negative", f"{field} cannot be negative", field=field)

    if value > max_amount:
        raise ValidationError("TooHigh", f"{field} cannot exceed {max_amount:,}", field=field)

    if value == 0 and not allow_zero:
        raise ValidationError("ZeroNotAllowed", f"{field} must be greater than zero", field=field)

    if _decimal_places(value) > MONEY_DECIMAL_PLACES:
        raise ValidationError(
            "TooManyDecimals",
            f"{field} allows at most {MONEY_DECIMAL_PLACES} decimal places",
            field=field,
        )

    return value.quantize(Decimal("0.01"))


def require_text(value: Any, *, field: str, code: str, min_length: int = 1) -> str:
    """Return stripped text or raise the given validation code."""
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(code, f"{field} is required", field=field)
    if len(text) < min_length:
        raise ValidationError(code, f"{field} must be at least {min_length} characters", field=field)
    return text
