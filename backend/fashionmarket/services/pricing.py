"""
Checkout arithmetic in integer cents.

Rounding rule: amounts that need a rate multiplication (tax) are computed
with ``decimal.Decimal`` and rounded half away from zero to the cent, so
12.5 -> 13 and -12.5 -> -13. Nothing here ever touches ``float``.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple, Union

from fashionmarket.errors import ValidationError

Rate = Union[int, str, Decimal]


def round_half_away_from_zero(value: Decimal) -> int:
    # ROUND_HALF_UP in the decimal module rounds ties away from zero
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_tax(taxable_cents: int, tax_rate: Rate) -> int:
    """Tax contained in ``taxable_cents`` at ``tax_rate`` percent."""
    return round_half_away_from_zero(
        Decimal(taxable_cents) * Decimal(str(tax_rate)) / Decimal(100)
    )


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_cents: int
    shipping_cost_cents: int
    tax_rate: int
    tax_cents: int
    total_cents: int


def compute_order_totals(
    lines: Iterable[Tuple[int, int]],
    *,
    discount_cents: int = 0,
    tax_rate: int,
    free_shipping_threshold_cents: int,
    shipping_cost_cents: int,
) -> OrderTotals:
    """
    lines: (unit_price_cents, quantity) pairs.

    shipping is waived when the pre-discount subtotal reaches the threshold;
    tax is reported on (subtotal - discount) and is already part of the
    prices, so it is not added to the total.
    """
    subtotal = 0
    for unit_price, quantity in lines:
        subtotal += unit_price * quantity

    if discount_cents < 0:
        raise ValidationError("discount cannot be negative")
    if discount_cents > subtotal:
        raise ValidationError("discount cannot exceed the order subtotal")

    shipping = 0 if subtotal >= free_shipping_threshold_cents else shipping_cost_cents
    tax = compute_tax(subtotal - discount_cents, tax_rate)
    total = subtotal - discount_cents + shipping
    return OrderTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        shipping_cost_cents=shipping,
        tax_rate=tax_rate,
        tax_cents=tax,
        total_cents=total,
    )


def format_cents(cents: int, deduction: bool = False) -> str:
    """1234 -> '12,34 €'; deductions are printed with a leading minus."""
    euros, rest = divmod(abs(cents), 100)
    sign = "-" if deduction or cents < 0 else ""
    return f"{sign}{euros},{rest:02d} €"
