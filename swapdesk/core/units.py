"""Conversion between human-readable token amounts and integer base units."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Optional, Union

from .errors import InvalidAmount

# Native token convention (lamports). Used when a token's decimals are unknown.
DEFAULT_DECIMALS = 9


def parse_amount(text: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Parse user-entered amount text. Returns None when not a finite number."""
    if text is None:
        return None
    if isinstance(text, float):
        text = repr(text)
    try:
        value = Decimal(str(text).strip().replace("_", ""))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise InvalidAmount(f"Invalid decimals: {decimals!r}")


def to_base_units(human_amount: Union[str, Decimal], decimals: int) -> int:
    """
    Convert a human amount to integer base units, rounding down.

    Raises:
        InvalidAmount: when the amount is not a finite number > 0, or is
            smaller than one base unit.
    """
    _check_decimals(decimals)
    value = parse_amount(human_amount)
    if value is None:
        raise InvalidAmount(f"Not a number: {human_amount!r}")
    if value <= 0:
        raise InvalidAmount(f"Amount must be greater than zero: {human_amount!r}")

    scaled = (value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR)
    base_units = int(scaled)
    if base_units <= 0:
        raise InvalidAmount(f"Amount is below the token's smallest unit: {human_amount!r}")
    return base_units


def from_base_units(base_units: Union[int, str], decimals: int) -> Decimal:
    """Convert integer base units (or their string encoding) to a human amount."""
    _check_decimals(decimals)
    return Decimal(int(base_units)).scaleb(-decimals)


def format_amount(amount: Union[Decimal, float], max_decimals: int = 6) -> str:
    """Compact display formatting for token amounts."""
    value = Decimal(str(amount))
    if value == 0:
        return "0"
    if abs(value) >= 1_000_000:
        return f"{(value / 1_000_000):.2f}M"
    if abs(value) >= 1_000:
        return f"{(value / 1_000):.2f}K"
    quantum = Decimal(1).scaleb(-max_decimals)
    text = format(value.quantize(quantum, rounding=ROUND_FLOOR), "f")
    return text.rstrip("0").rstrip(".") if "." in text else text
