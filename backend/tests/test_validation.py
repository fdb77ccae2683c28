"""
Meter reading and cash amount validation.

Verifies:
- Every failure carries a specific code and field
- Readings are monotonic against the previous reading
- Money allows two decimals and respects the configured ceiling
"""

from decimal import Decimal

import pytest

from fuelshift.errors import ValidationError
from fuelshift.validation import require_text, validate_cash_amount, validate_meter_reading


# =============================================================================
# METER READINGS
# =============================================================================


class TestMeterReading:

    @pytest.mark.parametrize("raw,expected", [
        ("1000.0", Decimal("1000.0")),
        (1000, Decimal("1000")),
        (1000.5, Decimal("1000.5")),
        (" 42.125 ", Decimal("42.125")),
        (0, Decimal("0")),
    ])
    def test_accepts_valid_readings(self, raw, expected):
        assert validate_meter_reading(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, "NaN", "Infinity", True, [1]])
    def test_rejects_non_numeric(self, raw):
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading(raw, field="opening_reading")
        assert exc.value.code == "NotNumeric"
        assert exc.value.field == "opening_reading"

    def test_rejects_negative(self):
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading("-0.5")
        assert exc.value.code == "Negative"

    def test_rejects_above_default_ceiling(self):
        assert validate_meter_reading("999999") == Decimal("999999")
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading("1000000")
        assert exc.value.code == "OutOfRange"

    def test_honors_configured_ceiling(self):
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading("5001", max_reading=Decimal("5000"))
        assert exc.value.code == "OutOfRange"

    def test_rejects_more_than_three_decimals(self):
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading("10.1234")
        assert exc.value.code == "TooManyDecimals"

    def test_rejects_reading_below_previous(self):
        with pytest.raises(ValidationError) as exc:
            validate_meter_reading("900.0", Decimal("1000.0"), field="closing_reading")
        assert exc.value.code == "NotMonotonic"
        assert exc.value.field == "closing_reading"
        assert "1000.0" in exc.value.message

    def test_equal_to_previous_is_allowed(self):
        assert validate_meter_reading("1000", Decimal("1000.000")) == Decimal("1000")


# =============================================================================
# CASH AMOUNTS
# =============================================================================


class TestCashAmount:

    def test_normalizes_to_cents(self):
        assert validate_cash_amount("14500") == Decimal("14500.00")
        assert validate_cash_amount(0.1) == Decimal("0.10")

    def test_zero_allowed_by_default(self):
        assert validate_cash_amount(0) == Decimal("0.00")

    def test_zero_not_allowed_when_disabled(self):
        with pytest.raises(ValidationError) as exc:
            validate_cash_amount("0", allow_zero=False, field="actual_cash")
        assert exc.value.code == "ZeroNotAllowed"

    @pytest.mark.parametrize("raw,code", [
        ("ten", "NotNumeric"),
        ("-1", "Negative"),
        ("1000000.01", "TooHigh"),
        ("10.005", "TooManyDecimals"),
    ])
    def test_rejections(self, raw, code):
        with pytest.raises(ValidationError) as exc:
            validate_cash_amount(raw, field="cash_used")
        assert exc.value.code == code
        assert exc.value.field == "cash_used"

    def test_ceiling_is_inclusive(self):
        assert validate_cash_amount("1000000") == Decimal("1000000.00")


def test_require_text_enforces_minimum_length():
    assert require_text("  fuel for generator ", field="r", code="MissingUsageReason", min_length=5) == "fuel for generator"
    with pytest.raises(ValidationError) as exc:
        require_text("tea", field="r", code="MissingUsageReason", min_length=5)
    assert exc.value.code == "MissingUsageReason"
    with pytest.raises(ValidationError):
        require_text("   ", field="r", code="MissingReason")
