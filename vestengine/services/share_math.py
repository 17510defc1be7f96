from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

SHARE_QUANTUM = Decimal("0.001")
ZERO = Decimal("0.000")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric share amount: {value!r}") from exc


def quantize_shares(value) -> Decimal:
    return to_decimal(value).quantize(SHARE_QUANTUM, rounding=ROUND_HALF_EVEN)


def has_share_precision(value) -> bool:
    """True when ``value`` carries no more than three decimal places."""
    amount = to_decimal(value)
    if not amount.is_finite():
        return False
    return amount == amount.quantize(SHARE_QUANTUM, rounding=ROUND_HALF_EVEN)


def add(a, b) -> Decimal:
    return quantize_shares(to_decimal(a) + to_decimal(b))


def subtract(a, b) -> Decimal:
    return quantize_shares(to_decimal(a) - to_decimal(b))


def multiply(a, b) -> Decimal:
    return quantize_shares(to_decimal(a) * to_decimal(b))


def divide(a, b) -> Decimal:
    divisor = to_decimal(b)
    if divisor == 0:
        raise ZeroDivisionError("share division by zero")
    return quantize_shares(to_decimal(a) / divisor)


def total(values) -> Decimal:
    result = ZERO
    for value in values:
        result = add(result, value)
    return result
