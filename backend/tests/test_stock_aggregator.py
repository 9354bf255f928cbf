import pytest

from fashionmarket.errors import ValidationError
from fashionmarket.services import stock_aggregator
from fashionmarket.services.stock_service import VariantStockStore


def test_matrix_totals(db, make_product):
    p = make_product(
        sizes=["S", "M"],
        colors=["Negro", "Blanco"],
        stock={("S", "Negro"): 0, ("S", "Blanco"): 3, ("M", "Negro"): 0, ("M", "Blanco"): 9},
    )
    s = stock_aggregator.summarize(p)
    assert s.total == 12
    assert s.matrix.cells == {"S": {"Negro": 0, "Blanco": 3}, "M": {"Negro": 0, "Blanco": 9}}
    assert s.matrix.row_totals == {"S": 3, "M": 9}
    assert s.matrix.column_totals == {"Negro": 0, "Blanco": 12}
    assert s.matrix.grand_total == s.total
    assert s.out_count == 2
    assert s.low_count == 1
    assert s.has_low and s.has_out


def test_single_axis_has_no_matrix(db, make_product):
    p = make_product(sizes=["S", "M", "L"], stock={("S", None): 6})
    s = stock_aggregator.summarize(p)
    assert s.matrix is None
    assert [(v.size, v.stock, v.status) for v in s.variants] == [
        ("S", 6, "ok"),
        ("M", 0, "out"),
        ("L", 0, "out"),
    ]


def test_threshold_is_inclusive(db, make_product):
    p = make_product(sizes=["S", "M"], stock={("S", None): 5, ("M", None): 6})
    s = stock_aggregator.summarize(p)
    assert [v.status for v in s.variants] == ["low", "ok"]
    assert stock_aggregator.summarize(p, threshold=6).low_count == 2


def test_legacy_product_is_one_variant(db, make_product):
    p = make_product(slug="cinturon", stock=0)
    s = stock_aggregator.summarize(p)
    assert len(s.variants) == 1
    assert (s.variants[0].size, s.variants[0].color) == (None, None)
    assert s.has_out and s.total == 0


def test_pending_counts_are_attached(db, make_product):
    p = make_product(sizes=["S", "M"], stock={("M", None): 2})
    store = VariantStockStore(db)
    store.notifier.request_notification(p.id, "a@example.com", size="S")
    store.notifier.request_notification(p.id, "b@example.com", size="S")
    s = store.summary(p.id)
    by_size = {v.size: v.pending_notifications for v in s.variants}
    assert by_size == {"S": 2, "M": 0}


def test_filters(db, make_product):
    healthy = make_product(slug="healthy", sizes=["M"], stock={("M", None): 20})
    low = make_product(slug="low", sizes=["M"], stock={("M", None): 2})
    out = make_product(slug="out", sizes=["M"], stock={("M", None): 0})
    summaries = [stock_aggregator.summarize(p) for p in (healthy, low, out)]

    assert {s.slug for s in stock_aggregator.filter_summaries(summaries, "all")} == {"healthy", "low", "out"}
    # fully out-of-stock products also show under "low"
    assert {s.slug for s in stock_aggregator.filter_summaries(summaries, "low")} == {"low", "out"}
    assert {s.slug for s in stock_aggregator.filter_summaries(summaries, "out")} == {"out"}
    with pytest.raises(ValidationError):
        stock_aggregator.filter_summaries(summaries, "bajo")
