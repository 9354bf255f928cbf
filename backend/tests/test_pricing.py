from decimal import Decimal

import pytest

from fashionmarket.errors import ValidationError
from fashionmarket.services.pricing import (
    compute_order_totals,
    compute_tax,
    format_cents,
    round_half_away_from_zero,
)


def _totals(lines, discount=0):
    return compute_order_totals(
        lines,
        discount_cents=discount,
        tax_rate=21,
        free_shipping_threshold_cents=10000,
        shipping_cost_cents=499,
    )


def test_reference_order_figures():
    t = _totals([(4950, 2)], discount=500)
    assert t.subtotal_cents == 9900
    assert t.shipping_cost_cents == 499
    assert t.tax_cents == 1974
    assert t.total_cents == 9899
    assert t.subtotal_cents - t.discount_cents + t.shipping_cost_cents == t.total_cents


def test_free_shipping_at_threshold():
    t = _totals([(5000, 2)])
    assert t.shipping_cost_cents == 0
    assert t.total_cents == 10000


def test_threshold_uses_pre_discount_subtotal():
    t = _totals([(10000, 1)], discount=1000)
    assert t.shipping_cost_cents == 0
    assert t.total_cents == 9000


def test_ties_round_away_from_zero():
    assert round_half_away_from_zero(Decimal("12.5")) == 13
    assert round_half_away_from_zero(Decimal("-12.5")) == -13
    assert round_half_away_from_zero(Decimal("12.49")) == 12
    # 50 * 21 / 100 = 10.5
    assert compute_tax(50, 21) == 11
    assert compute_tax(-50, 21) == -11


def test_discount_bounds():
    with pytest.raises(ValidationError):
        _totals([(1000, 1)], discount=-1)
    with pytest.raises(ValidationError):
        _totals([(1000, 1)], discount=1001)


def test_format_cents():
    assert format_cents(1234) == "12,34 €"
    assert format_cents(5) == "0,05 €"
    assert format_cents(1234, deduction=True) == "-12,34 €"
