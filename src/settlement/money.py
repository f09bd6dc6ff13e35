"""Integer-cent helpers shared by the calculator and the notifications."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest cent, halves away from zero.

    Python's ``round`` uses banker's rounding, which would make a 0.5 cent
    fee round down on even amounts.
    """
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def format_cents(amount_cents: int, symbol: str = "€") -> str:
    return f"{symbol}{amount_cents / 100:.2f}"
