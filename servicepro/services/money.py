"""Currency arithmetic in integer minor units (halalas).

Amounts enter and leave as ``Decimal`` with two places; every sum and every
rate application happens on integers so totals are exact and rounding is
applied once, half-up, at each multiplication.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

MINOR_UNITS = 100
CENT = Decimal("0.01")

Amount = Union[Decimal, int, float, str]


def _as_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 are taken at face value
    return Decimal(str(value))


def to_minor(amount: Amount) -> int:
    """Convert a currency amount to integer minor units."""
    if amount is None:
        return 0
    scaled = _as_decimal(amount) * MINOR_UNITS
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_UNITS).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_rate(minor: int, rate: Amount) -> int:
    """Multiply minor units by a rate, rounding half-up to a whole minor unit."""
    product = Decimal(minor) * _as_decimal(rate)
    return int(product.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def divide(minor: int, parts: int) -> int:
    if parts <= 0:
        raise ValueError("parts must be positive")
    return int((Decimal(minor) / parts).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total(quantity: Amount, unit_price: Amount) -> Decimal:
    return from_minor(apply_rate(to_minor(unit_price), quantity))


def sum_amounts(amounts: Iterable[Amount]) -> Decimal:
    return from_minor(sum(to_minor(a) for a in amounts))


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def calculate_totals(subtotal: Amount, discount_amount: Amount, tax_rate: Amount) -> DocumentTotals:
    """Tax is charged on the discounted subtotal.

    tax = (subtotal - discount) * rate, total = subtotal - discount + tax
    """
    subtotal_minor = to_minor(subtotal)
    discount_minor = to_minor(discount_amount)
    taxable_minor = subtotal_minor - discount_minor
    tax_minor = apply_rate(taxable_minor, tax_rate)
    return DocumentTotals(
        subtotal=from_minor(subtotal_minor),
        discount_amount=from_minor(discount_minor),
        tax_amount=from_minor(tax_minor),
        total_amount=from_minor(taxable_minor + tax_minor),
    )
