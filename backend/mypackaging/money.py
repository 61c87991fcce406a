"""
Money helpers.

Every monetary value inside the ledger is an integer number of cents.
Conversion to and from decimal amounts happens only where values enter
(HTTP payloads, CLI options) or leave (serialized records) the system.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")


def to_cents(amount) -> int:
    """
    Round a decimal amount to the nearest cent.

    None and "" count as zero. Floats go through str() so 0.1 becomes
    Decimal("0.1") rather than its binary approximation.
    """
    if amount is None or amount == "":
        return 0
    if isinstance(amount, bool):
        raise ValueError("amount must be a number")
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents) -> Decimal:
    """Integer cents -> Decimal amount with exactly two places."""
    whole = Decimal(cents or 0).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (whole / 100).quantize(CENT)


def sum_cents(values: Iterable[int | None]) -> int:
    return sum(int(v or 0) for v in values)


def percent_of_cents(cents: int, percent) -> int:
    """`percent`% of `cents`, rounded half-up to a whole cent."""
    value = Decimal(cents) * Decimal(str(percent)) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_settled(remaining_cents: int) -> bool:
    """A balance under one cent is fully paid."""
    return remaining_cents < 1


def format_amount(cents: int, currency: str = "RM") -> str:
    return f"{currency} {cents_to_amount(cents)}"
