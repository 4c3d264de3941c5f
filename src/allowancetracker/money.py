"""Utilities for working with monetary values in AllowanceTracker."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest single amount accepted anywhere money enters the system.
MAX_AMOUNT = Decimal("1000000.00")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with two decimal places."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not valid amounts.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid amount: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported amount type: {type(value)!r}")

    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {format_currency(MAX_AMOUNT)}.")
    return result.quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(amount: Decimal, *, allow_zero: bool = False) -> Decimal:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < Decimal("0"):
            raise ValidationError("Amount must be zero or greater.")
    else:
        if amount <= Decimal("0"):
            raise ValidationError("Amount must be greater than zero.")
    return amount


def format_currency(amount: Decimal) -> str:
    """Return ``amount`` as a currency formatted string (e.g. ``$12.34``)."""

    value = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if value < 0:
        return f"-${-value:,.2f}"
    return f"${value:,.2f}"


def to_cents(value: AmountLike) -> int:
    """Return the integer number of cents stored for ``value``."""

    return int(to_decimal(value) * 100)


def from_cents(cents: int | None) -> Decimal:
    """Return the :class:`~decimal.Decimal` amount for a stored cents value."""

    if cents is None:
        return ZERO
    return (Decimal(cents) / 100).quantize(CENT)


def percent_of(amount: Decimal, percentage: Decimal | int) -> Decimal:
    """Return ``percentage`` percent of ``amount`` rounded to the cent."""

    return to_decimal(amount * Decimal(percentage) / Decimal(100))
