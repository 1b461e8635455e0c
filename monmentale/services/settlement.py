"""
Platform fee and practitioner payout math.

Amounts are handled as ``Decimal`` and rounded half-up to the cent. The
practitioner share is always derived by subtraction so that
``platform_fee(a) + practitioner_amount(a) == to_cents(a)``.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

PLATFORM_FEE_RATE = Decimal("0.05")
CENT = Decimal("0.01")


class Settlement(NamedTuple):
    amount: Decimal
    platform_fee: Decimal
    practitioner_amount: Decimal


def to_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() keeps 55.55 as 55.55 instead of its binary float expansion
    return Decimal(str(amount))


def to_cents(amount) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def platform_fee(amount) -> Decimal:
    value = to_decimal(amount)
    if value < 0:
        raise ValueError("Amount must be non-negative")
    return (value * PLATFORM_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def practitioner_amount(amount) -> Decimal:
    return to_cents(amount) - platform_fee(amount)


def split_amount(amount) -> Settlement:
    fee = platform_fee(amount)
    total = to_cents(amount)
    return Settlement(amount=total, platform_fee=fee, practitioner_amount=total - fee)


def to_minor_units(amount) -> int:
    """Gateway amounts are integers in the smallest currency unit."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(CENT)
