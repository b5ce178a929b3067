"""Decimal helpers shared by the planner, executor and store."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal

EPSILON = Decimal("1e-9")
QUANTUM = Decimal("0.00000001")  # matches Numeric(20, 8) columns
ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """Convert store/oracle values to Decimal without binary float artefacts."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary value")
    if isinstance(value, (int, str)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    raise TypeError(f"cannot convert {type(value).__name__} to Decimal")


def quantize(value: Decimal) -> Decimal:
    """Round to the persisted scale."""

    return value.quantize(QUANTUM, rounding=ROUND_HALF_EVEN)


def quantize_down(value: Decimal) -> Decimal:
    """Truncate to the persisted scale; used for buy quantities so notional never exceeds cash."""

    return value.quantize(QUANTUM, rounding=ROUND_DOWN)


def is_negligible(value: Decimal) -> bool:
    return abs(value) < EPSILON


def as_str(value: Decimal) -> str:
    """Fixed-point text for JSON payloads (no exponent notation)."""

    return format(value, "f")
