import os

import pytest
from filelock import FileLock

from fashionmarket.errors import ConflictError, NotFoundError, ValidationError
from fashionmarket.repositories.product_repo import ProductRepository
from fashionmarket.services.stock_service import LOCKS_DIR, VariantStockStore, coerce_quantity
from fashionmarket.utils.transactions import unit_of_work

SIZES = ["S", "M"]
COLORS = ["Negro", "Blanco"]


def test_get_and_total_follow_variant_rows(db, make_product):
    p = make_product(sizes=SIZES, colors=COLORS, stock={("S", "Blanco"): 3, ("M", "Blanco"): 1})
    store = VariantStockStore(db)
    assert store.get_stock(p.id, "S", "Blanco") == 3
    # declared but never stored
    assert store.get_stock(p.id, "S", "Negro") == 0
    assert store.total_stock(p.id) == 4
    db.refresh(p)
    assert p.stock == 4


def test_total_is_conserved_after_each_write(db, make_product):
    p = make_product(sizes=SIZES, colors=COLORS, stock={("S", "Negro"): 2})
    store = VariantStockStore(db)
    for size, color, qty in [("M", "Blanco", 7), ("S", "Negro", 0), ("M", "Negro", 5), ("M", "Blanco", 1)]:
        result = store.set_stock(p.id, size, color, qty)
        rows = store.list_variants(p.id)
        assert result.total_stock == sum(r.stock for r in rows)
        db.refresh(p)
        assert p.stock == result.total_stock
    assert store.total_stock(p.id) == 6


def test_negative_quantities_are_clamped(db, make_product):
    p = make_product(sizes=["M"])
    store = VariantStockStore(db)
    store.set_stock(p.id, "M", None, -4)
    assert store.get_stock(p.id, "M") == 0
    assert all(r.stock >= 0 for r in store.list_variants(p.id))


@pytest.mark.parametrize("bad", [True, 2.5, "tres", None, [1]])
def test_non_integer_quantities_rejected(bad):
    with pytest.raises(ValidationError):
        coerce_quantity(bad)


def test_integral_values_accepted():
    assert coerce_quantity(3) == 3
    assert coerce_quantity(4.0) == 4
    assert coerce_quantity(" 12 ") == 12
    assert coerce_quantity("-2") == 0


def test_bad_update_leaves_stock_untouched(db, make_product):
    p = make_product(sizes=SIZES, colors=COLORS, stock={("S", "Negro"): 2})
    store = VariantStockStore(db)
    with pytest.raises(ValidationError):
        store.apply_updates(
            p.id,
            [{"size": "S", "color": "Negro", "stock": 9}, {"size": "S", "color": "Negro", "stock": 1.5}],
        )
    assert store.get_stock(p.id, "S", "Negro") == 2


def test_unknown_slot_rejected(db, make_product):
    p = make_product(sizes=SIZES, colors=COLORS)
    store = VariantStockStore(db)
    with pytest.raises(ValidationError):
        store.set_stock(p.id, "XL", "Negro", 3)
    with pytest.raises(ValidationError):
        # both axes declared, so a size alone is not a slot
        store.set_stock(p.id, "S", None, 3)


def test_missing_product(db):
    with pytest.raises(NotFoundError):
        VariantStockStore(db).get_stock(999)


def test_legacy_product_reads_flat_stock(db, make_product):
    p = make_product(slug="cinturon", stock=7)
    store = VariantStockStore(db)
    assert store.list_variants(p.id) == []
    assert store.get_stock(p.id) == 7
    assert store.total_stock(p.id) == 7

    store.set_stock(p.id, None, None, 3)
    assert store.total_stock(p.id) == 3
    assert len(store.list_variants(p.id)) == 1


def test_bulk_edit_reports_before_and_after(db, make_product):
    p = make_product(sizes=SIZES, colors=COLORS, stock={("S", "Negro"): 2})
    store = VariantStockStore(db)
    result = store.apply_updates(
        p.id,
        [
            {"size": "S", "color": "Negro", "stock": 5},
            {"size": "M", "color": "Negro", "stock": 1},
            {"size": "S", "color": "Negro", "stock": 4},
        ],
    )
    assert result.total_stock == 5
    changes = {k: v for k, v in result.changes.items()}
    assert changes['["S", "Negro"]'] == (2, 4)
    assert changes['["M", "Negro"]'] == (0, 1)


def test_stage_adjustments_refuse_overdraw(db, make_product):
    p = make_product(sizes=["M"], stock={("M", None): 1})
    store = VariantStockStore(db)
    with pytest.raises(ValidationError):
        store.stage_adjustments(p, [("M", None, -2)])
    db.rollback()
    assert store.get_stock(p.id, "M") == 1


def test_busy_lock_is_a_conflict(db, make_product):
    p = make_product(sizes=["M"])
    os.makedirs(LOCKS_DIR, exist_ok=True)
    held = FileLock(os.path.join(LOCKS_DIR, f"stock_{p.id}.lock"))
    store = VariantStockStore(db, lock_timeout=0)
    with held:
        with pytest.raises(ConflictError):
            store.set_stock(p.id, "M", None, 1)


def test_slot_dropped_from_product_stays_editable(db, make_product, place_order):
    p = make_product(slug="polo", sizes=["S"], stock={("S", None): 5})
    with unit_of_work(db):
        ProductRepository(db).update(p, colors=["Black"])
    store = VariantStockStore(db)
    assert store.total_stock(p.id) == 5

    # the old (S, None) row can still be sold and drained
    place_order([(p, "S", None, 2)])
    assert store.get_stock(p.id, "S", None) == 3
    store.set_stock(p.id, "S", "Black", 0)
    result = store.set_stock(p.id, "S", None, 0)
    assert result.total_stock == 0
    assert [(v.size, v.color) for v in result.summary.variants] == [("S", "Black")]

    with pytest.raises(ValidationError):
        store.set_stock(p.id, "M", None, 1)
