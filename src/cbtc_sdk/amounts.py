"""Exact decimal handling for token amounts.

The ledger's numeric parser accepts plain decimal strings only, so amounts
never travel as floats or in scientific notation.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Union

from .errors import ValidationError

# Daml Numeric 10
MAX_SCALE = 10

AmountLike = Union[Decimal, str, int]


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Parse ``value`` into a finite Decimal without going through float."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a Decimal, int or string, not {type(value).__name__}", field)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} is not a decimal number: {value!r}", field) from e
    else:
        raise ValidationError(f"{field} has unsupported type {type(value).__name__}", field)

    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite", field)
    return amount


def require_positive(value: Any, field: str = "amount") -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero", field)
    return amount


def format_amount(value: Any, field: str = "amount") -> str:
    """Render an amount as a plain decimal string, e.g. ``Decimal("1E-8")`` -> ``"0.00000001"``."""
    amount = to_decimal(value, field)
    digits, exponent = amount.as_tuple()[1:]
    # zeros past the scale are allowed, e.g. "1.00000000000"
    if isinstance(exponent, int) and exponent < -MAX_SCALE and any(digits[exponent + MAX_SCALE :]):
        raise ValidationError(f"{field} has more than {MAX_SCALE} decimal places", field)

    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if "." not in text:
        text += ".0"
    if text in ("-0.0",):
        text = "0.0"
    return text


def sum_amounts(values: Any) -> Decimal:
    total = Decimal(0)
    for value in values:
        total += to_decimal(value)
    return total
