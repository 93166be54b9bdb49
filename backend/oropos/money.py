# backend/oropos/money.py
"""
Money arithmetic for line items, sale totals and refunds.

All persisted amounts are integer cents. Intermediate math runs on Decimal
and is rounded half-up to whole cents exactly once per stored amount.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

ONE_CENT = Decimal("1")
HUNDRED = Decimal("100")
BPS = Decimal("10000")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def round_cents(amount: Decimal) -> int:
    """Round a Decimal amount of cents to an int, half away from zero."""
    return int(amount.quantize(ONE_CENT, rounding=ROUND_HALF_UP))


def line_total_cents(price_cents: int, quantity: int, discount_percent=0) -> int:
    """
    total = price * quantity * (1 - discount/100)

    The sign follows quantity, so refund lines (negative quantity) come out
    negative.
    """
    discount = to_decimal(discount_percent)
    raw = Decimal(price_cents) * Decimal(quantity) * (Decimal(1) - discount / HUNDRED)
    return round_cents(raw)


def effective_tax_rate(tax_cents: int, subtotal_cents: int) -> Decimal:
    """Tax rate actually charged on a transaction; 0 when it had no subtotal."""
    if not subtotal_cents:
        return Decimal("0")
    rate = Decimal(tax_cents) / Decimal(subtotal_cents)
    if rate.is_nan():
        return Decimal("0")
    return rate


def apply_rate(amount_cents: int, rate: Decimal) -> int:
    return round_cents(Decimal(amount_cents) * rate)


def tax_for_bps(amount_cents: int, tax_rate_bps: int) -> int:
    """Tax on amount_cents at a rate expressed in basis points (825 = 8.25%)."""
    return round_cents(Decimal(amount_cents) * Decimal(tax_rate_bps or 0) / BPS)


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    return f"{sign}${abs(amount_cents) / 100:.2f}"
