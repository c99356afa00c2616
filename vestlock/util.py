"""Utility helpers for vestlock."""

from __future__ import annotations

from decimal import Decimal
from fractions import Fraction
from math import floor

from .constants import U8_MAX, U32_MAX, U64_MAX

_LIMITS = {8: U8_MAX, 32: U32_MAX, 64: U64_MAX}


def ensure_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


def ensure_unsigned(value, name: str, bits: int) -> int:
    value = ensure_int(value, name)
    if value < 0 or value > _LIMITS[bits]:
        raise ValueError(f"{name} must fit in u{bits}")
    return value


def exact(value: Fraction | float | int | str) -> Fraction:
    """Exact rational for a display amount, as written rather than as stored in binary."""
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    if isinstance(value, float):
        return Fraction(repr(value))
    return Fraction(str(value).strip())


def ui_amount_to_amount(ui_amount: float | int | str, decimals: int) -> int:
    """Convert a display amount to integer base units, truncating sub-unit dust."""
    value = exact(ui_amount)
    if value < 0:
        raise ValueError("amount must be non-negative")
    return floor(value * 10**decimals)


def format_amount(amount: int, decimals: int) -> str:
    text = format(Decimal(amount).scaleb(-decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
