"""
Money -- Decimal rounding rules for currency and leave-day quantities.

Responsibility:
    The single place where monetary amounts and leave days are quantized.
    Every engine rounds through these helpers so that a payrun of thousands
    of payslips sums without drift.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: ``float`` input is rejected, never coerced.
    - Round-half-to-even (banker's rounding) at currency precision.
    - Precision is derived from the currency's ISO 4217 minor units,
      never hardcoded at call sites.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")

DEFAULT_CURRENCY = "ZAR"
DEFAULT_CURRENCY_PLACES = 2
DEFAULT_DAY_PLACES = 4

# ISO 4217 minor units for the currencies the engine is deployed with.
_CURRENCY_PLACES: dict[str, int] = {
    "ZAR": 2,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "NAD": 2,
    "BWP": 2,
    "KES": 2,
    "NGN": 2,
    "JPY": 0,
    "KWD": 3,
}


def currency_places(currency: str) -> int:
    """Minor units for ``currency``.

    Raises:
        ValueError: for a currency the engine does not know.
    """
    code = currency.upper().strip()
    try:
        return _CURRENCY_PLACES[code]
    except KeyError:
        raise ValueError(f"Unsupported currency code: {currency}") from None


def to_decimal(value: Any, name: str = "amount") -> Decimal:
    """Convert ``value`` to Decimal, refusing floats.

    Accepts Decimal, int and numeric strings.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{name} must be Decimal, int or str, not {type(value).__name__}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {name}: {value!r}") from e


def quantum(places: int) -> Decimal:
    """The smallest representable step at ``places`` decimal places."""
    return Decimal(1).scaleb(-places)


def round_money(amount: Decimal, places: int = DEFAULT_CURRENCY_PLACES) -> Decimal:
    """Quantize a monetary amount with round-half-to-even."""
    return amount.quantize(quantum(places), rounding=ROUND_HALF_EVEN)


def round_days(days: Decimal, places: int = DEFAULT_DAY_PLACES) -> Decimal:
    """Quantize a leave-day quantity with round-half-to-even."""
    return days.quantize(quantum(places), rounding=ROUND_HALF_EVEN)


def sum_money(amounts: Iterable[Decimal], places: int = DEFAULT_CURRENCY_PLACES) -> Decimal:
    """Sum already-rounded amounts and re-quantize the result.

    Summing quantized values is exact in Decimal; the final quantize only
    normalizes the exponent (so ``0`` becomes ``0.00``).
    """
    total = ZERO
    for amount in amounts:
        total += amount
    return round_money(total, places)
