"""
Tests for decimal amount handling.
"""
from decimal import Decimal

import pytest

from cbtc_sdk.amounts import format_amount, require_positive, sum_amounts, to_decimal
from cbtc_sdk.errors import ValidationError
from cbtc_sdk.models.transfer import TransferItem


class TestToDecimal:
    @pytest.mark.parametrize("value", ["0.1", Decimal("0.1"), " 0.1 "])
    def test_parses(self, value):
        assert to_decimal(value) == Decimal("0.1")

    @pytest.mark.parametrize("value", [0.1, True, "abc", "NaN", "Infinity", None])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)

    def test_require_positive(self):
        assert require_positive(1) == Decimal(1)
        with pytest.raises(ValidationError) as exc_info:
            require_positive("0", "target")
        assert exc_info.value.field == "target"


class TestFormatAmount:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("1E-8"), "0.00000001"),
            ("0.00000001", "0.00000001"),
            ("0.0010", "0.001"),
            ("5", "5.0"),
            (Decimal("1.5E+3"), "1500.0"),
            ("1.0000000000", "1.0"),
        ],
    )
    def test_plain_decimal_strings(self, value, expected):
        assert format_amount(value) == expected

    def test_rejects_more_than_ten_places(self):
        with pytest.raises(ValidationError):
            format_amount("0.00000000001")

    def test_long_amounts_are_checked_without_rounding(self):
        with pytest.raises(ValidationError):
            format_amount(Decimal("12345678901234567890.12345678901"))

        assert format_amount(Decimal("12345678901234567890.1234567890")) == "12345678901234567890.123456789"

    def test_zeros_past_ten_places_are_accepted(self):
        assert format_amount("1.000000000000") == "1.0"

    def test_model_serializes_plain_strings(self):
        item = TransferItem(receiver="bob::1", amount=Decimal("1E-8"))

        assert item.to_dict()["amount"] == "0.00000001"

    def test_json_floats_keep_their_text(self):
        assert TransferItem(receiver="bob::1", amount=0.1).amount == Decimal("0.1")


def test_sum_amounts():
    assert sum_amounts(["0.1", "0.2", Decimal("0.3")]) == Decimal("0.6")
