"""Fixed-point currency helpers. All balances, wagers and payouts are cents."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce ints, strings, floats and Decimals to a 2dp Decimal.

    Floats go through ``str`` so 0.1 stays 0.10 rather than its binary expansion.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Not a currency amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a currency amount: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_DOWN)
    except InvalidOperation as e:
        # more digits than the context precision holds
        raise ValueError(f"Amount out of range: {value!r}") from e


def apply_multiplier(wager: Decimal, multiplier) -> Decimal:
    """wager × multiplier, rounded down to the cent (never overpays)."""
    if not isinstance(multiplier, Decimal):
        multiplier = Decimal(str(multiplier))
    return (wager * multiplier).quantize(CENT, rounding=ROUND_DOWN)
