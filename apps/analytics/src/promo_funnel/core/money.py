"""Centralised currency and count coercion for aggregate values.

Every numeric value read back from the store passes through these helpers so a
malformed or missing value becomes an explicit zero instead of leaking into a
derived rate.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO_MONEY = Decimal("0.00")
ZERO_RATE = Decimal("0.0000")


def _to_decimal(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, int):
        candidate = Decimal(value)
    elif isinstance(value, float):
        # repr round-trips the shortest decimal form (0.1 -> "0.1")
        candidate = Decimal(repr(value))
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            candidate = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None
    if not candidate.is_finite():
        return None
    return candidate


def to_money(value: object) -> Decimal:
    """Coerce ``value`` to a cent-quantized Decimal; missing or malformed -> 0.00."""

    candidate = _to_decimal(value)
    if candidate is None:
        return ZERO_MONEY
    return candidate.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_count(value: object) -> int:
    """Coerce ``value`` to a non-negative integer count; missing or malformed -> 0."""

    candidate = _to_decimal(value)
    if candidate is None:
        return 0
    count = int(candidate)
    return count if count > 0 else 0


def percentage(numerator: int | Decimal, denominator: int | Decimal) -> Decimal:
    """Return ``numerator / denominator * 100`` with a zero guard on the denominator."""

    if denominator <= 0:
        return ZERO_RATE
    ratio = Decimal(numerator) / Decimal(denominator) * Decimal(100)
    return ratio.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


__all__ = ["CENTS", "RATE_PLACES", "ZERO_MONEY", "ZERO_RATE", "percentage", "to_count", "to_money"]
