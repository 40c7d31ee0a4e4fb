"""Integer minor-unit money arithmetic.

Every commission figure in the ledger is an integer amount of the currency's
minor unit (cents for USD). Percentages are stored as decimal rates (0.20) and
all arithmetic is done on exact rationals, rounding half toward positive
infinity (the same result JavaScript's Math.round gives), so repeated
application never drifts.
"""
import math
from decimal import Decimal
from fractions import Fraction
from typing import Union

Number = Union[int, float, Decimal, Fraction, str]


def _to_fraction(value: Number) -> Fraction:
    if isinstance(value, float):
        # repr gives the shortest string that round-trips, so 0.2 -> 1/5
        return Fraction(repr(value))
    return Fraction(value)


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def normalize_percent(value: Number) -> Fraction:
    """Accept either a whole-number percent (20) or a rate (0.20) and return the rate."""
    rate = _to_fraction(value)
    return rate / 100 if rate > 1 else rate


def apply_percent(amount: int, percent: Number) -> int:
    """Apply a decimal rate to an integer minor-unit amount.

    >>> apply_percent(10000, Decimal("0.20"))
    2000
    >>> apply_percent(999, 0.5)
    500
    """
    return _round_half_up(Fraction(int(amount)) * _to_fraction(percent))


def proportional(base: int, numerator: int, denominator: int) -> int:
    """Scale ``base`` by ``numerator / denominator``; zero when the denominator is zero."""
    if not denominator:
        return 0
    return _round_half_up(Fraction(int(base) * int(numerator), int(denominator)))


def format_minor_units(amount: int, currency: str) -> str:
    """Render an amount for notification text, e.g. ``12.34 USD``."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(int(amount)), 100)
    return f"{sign}{whole}.{cents:02d} {(currency or 'usd').upper()}"
