from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional


# Maximum price per box: 999,999.99 (99,999,999 cents)
MAX_PRICE_CENTS = 99_999_999


def cents_to_amount(cents: Optional[int]) -> Optional[float]:
    """Cents -> JSON-friendly amount (e.g. 1050 -> 10.5)."""
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def format_price(cents: Optional[int]) -> str:
    """Human-readable price with thousands separators (e.g. 123456 -> '1,234.56')."""
    if cents is None:
        return ""
    return f"{Decimal(cents) / 100:,.2f}"


def parse_price_to_cents(value) -> int:
    """
    Parse a price given as int, float, Decimal or numeric string into cents.

    - Rejects booleans, blanks, NaN/Infinity and more than two decimal places.
    - Does not range-check; callers enforce 0..MAX_PRICE_CENTS.

    Raises ValueError on malformed input.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("price is required")
    if isinstance(value, float):
        # repr() gives the shortest round-tripping form, so 10.1 stays "10.1"
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError("price must be a number")
    if not amount.is_finite():
        raise ValueError("price must be a number")
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValueError("price cannot have more than 2 decimal places")
    return int(cents)


def suggest_price_cents(base_cents: int, markup_percent: int = 5) -> int:
    """base * (1 + markup%), rounded half-up to the cent."""
    return (base_cents * (100 + markup_percent) + 50) // 100


def cents_to_input(cents: Optional[int]) -> str:
    """Plain two-decimal form for editable inputs (e.g. 1050 -> '10.50')."""
    if cents is None:
        return ""
    return f"{Decimal(cents) / 100:.2f}"
