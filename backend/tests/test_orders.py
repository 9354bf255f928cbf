import itertools

import pytest

from fashionmarket.config import settings
from fashionmarket.errors import ConflictError, NotFoundError, PreconditionFailedError, ValidationError
from fashionmarket.models.credit_note import CreditNote
from fashionmarket.models.invoice import Invoice
from fashionmarket.models.order import Order
from fashionmarket.services.document_service import DocumentService
from fashionmarket.services.order_service import ORDER_NUMBER_RE, OrderService, generate_order_number
from fashionmarket.services.stock_service import VariantStockStore

from conftest import ADDRESS


def _jacket(make_product, **kwargs):
    kwargs.setdefault("stock", {("M", "Negro"): 5, ("L", "Negro"): 0})
    return make_product(slug="chaqueta", price_cents=4950, sizes=["M", "L"], colors=["Negro"], **kwargs)


def test_order_number_format():
    for _ in range(200):
        assert ORDER_NUMBER_RE.match(generate_order_number())


def test_reference_order_and_invoice_figures(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    order = place_order([(p, "M", "Negro", 2)], discount_cents=500)

    assert ORDER_NUMBER_RE.match(order.order_number)
    assert order.status == "paid"
    assert (order.subtotal_cents, order.discount_cents, order.shipping_cost_cents) == (9900, 500, 499)
    assert order.tax_cents == 1974
    assert order.total_cents == 9899

    invoice = order.invoice
    assert invoice is not None
    assert invoice.invoice_number.startswith(f"FM-{invoice.issued_at.year}-")
    assert len(invoice.invoice_number.split("-")[-1]) == 6
    assert (invoice.subtotal_cents, invoice.discount_cents, invoice.shipping_cost_cents) == (9900, 500, 499)
    assert invoice.tax_cents == 1974
    assert invoice.total_cents == order.total_cents
    assert invoice.items[0]["unit_price"] == 4950
    assert invoice.items[0]["total"] == 9900

    assert len(outbox.sent) == 1
    confirmation = outbox.sent[0]
    assert confirmation.to == "lucia@example.com"
    assert order.order_number in confirmation.subject
    assert confirmation.attachments[0].filename == f"factura-{invoice.invoice_number}.html"


def test_express_shipping(db, make_product, place_order):
    p = _jacket(make_product)
    order = place_order([(p, "M", "Negro", 1)], shipping_method="express")
    assert order.shipping_cost_cents == 999
    assert order.total_cents == 4950 + 999


def test_checkout_decrements_variant_stock(db, make_product, place_order):
    p = _jacket(make_product)
    place_order([(p, "M", "Negro", 2)])
    store = VariantStockStore(db)
    assert store.get_stock(p.id, "M", "Negro") == 3
    assert store.total_stock(p.id) == 3


def test_insufficient_stock_rejects_order(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    with pytest.raises(ValidationError):
        place_order([(p, "L", "Negro", 1)])
    assert db.query(Order).count() == 0
    assert VariantStockStore(db).get_stock(p.id, "M", "Negro") == 5
    assert outbox.sent == []


def test_one_order_per_payment_reference(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    first = place_order([(p, "M", "Negro", 1)], reference="pi_same")
    second = place_order([(p, "M", "Negro", 1)], reference="pi_same")
    assert first.id == second.id
    assert db.query(Order).count() == 1
    assert len(outbox.sent) == 1
    assert VariantStockStore(db).get_stock(p.id, "M", "Negro") == 4


def test_unconfirmed_payment_is_refused(db, make_product, outbox):
    p = _jacket(make_product)
    svc = OrderService(db, outbox)
    with pytest.raises(PreconditionFailedError):
        svc.create_order(
            [{"product_id": p.id, "size": "M", "color": "Negro", "quantity": 1}],
            ADDRESS,
            "pi_x",
            customer_email="lucia@example.com",
            payment_succeeded=False,
        )


def test_order_number_collision_is_retried(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    taken = place_order([(p, "M", "Negro", 1)]).order_number
    draws = iter([taken, taken, "FM-ZZZZZ2"])
    svc = OrderService(db, outbox, number_factory=lambda: next(draws))
    order = svc.create_order(
        [{"product_id": p.id, "size": "M", "color": "Negro", "quantity": 1}],
        ADDRESS,
        "pi_retry",
        customer_email="lucia@example.com",
    )
    assert order.order_number == "FM-ZZZZZ2"


def test_order_number_exhaustion_fails(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    taken = place_order([(p, "M", "Negro", 1)]).order_number
    svc = OrderService(db, outbox, number_factory=itertools.repeat(taken).__next__)
    with pytest.raises(ConflictError):
        svc.create_order(
            [{"product_id": p.id, "size": "M", "color": "Negro", "quantity": 1}],
            ADDRESS,
            "pi_exhausted",
            customer_email="lucia@example.com",
        )
    assert db.query(Order).count() == 1


def test_invoice_failure_is_flagged_and_retried(db, make_product, place_order, outbox, monkeypatch):
    p = _jacket(make_product)

    def boom(self, order):
        raise ConflictError("sequence unavailable")

    monkeypatch.setattr(DocumentService, "generate_invoice", boom)
    order = place_order([(p, "M", "Negro", 1)])
    assert order.invoice_error == "sequence unavailable"
    assert db.query(Invoice).count() == 0
    assert outbox.sent[0].attachments == []

    monkeypatch.undo()
    issued = OrderService(db, outbox).retry_missing_invoices()
    assert issued == 1
    db.refresh(order)
    assert order.invoice_error is None
    assert order.invoice.total_cents == order.total_cents


def test_get_order_hides_other_users(db, make_product, place_order):
    p = _jacket(make_product)
    order = place_order([(p, "M", "Negro", 1)], user_id="user-1")
    svc = OrderService(db)
    assert svc.get_order(order.id, user_id="user-1").id == order.id
    with pytest.raises(NotFoundError):
        svc.get_order(order.id, user_id="user-2")


def test_status_moves_forward_only(db, make_product, place_order, outbox):
    p = _jacket(make_product)
    order = place_order([(p, "M", "Negro", 1)])
    svc = OrderService(db, outbox)

    svc.update_status(order.id, "shipped")
    assert order.shipped_at is not None
    with pytest.raises(PreconditionFailedError):
        svc.update_status(order.id, "processing")
    svc.update_status(order.id, "delivered")
    assert order.delivered_at is not None
    with pytest.raises(PreconditionFailedError):
        svc.update_status(order.id, "refunded")
    with pytest.raises(ValidationError):
        svc.update_status(order.id, "lost")


def test_cancellation_restocks_and_issues_credit_note(db, make_product, place_order, outbox):
    p = _jacket(make_product, stock={("M", "Negro"): 2, ("L", "Negro"): 0})
    order = place_order([(p, "M", "Negro", 2)])
    store = VariantStockStore(db)
    assert store.get_stock(p.id, "M", "Negro") == 0
    store.notifier.request_notification(p.id, "espera@example.com", size="M", color="Negro")

    OrderService(db, outbox).cancel_order(order.id, user_id="user-1")

    assert order.status == "cancelled"
    assert order.cancelled_at is not None
    assert store.get_stock(p.id, "M", "Negro") == 2

    note = db.query(CreditNote).filter(CreditNote.order_id == order.id).one()
    assert note.return_id is None
    assert note.total_cents == order.total_cents == order.invoice.total_cents
    assert note.credit_note_number.startswith(f"FR-{note.issued_at.year}-A")

    recipients = [n.to for n in outbox.sent]
    assert "espera@example.com" in recipients
    cancelled_mail = outbox.sent[-1]
    assert cancelled_mail.to == "lucia@example.com"
    assert cancelled_mail.attachments[0].filename == f"abono-{note.credit_note_number}.html"


def test_delivered_order_cannot_be_cancelled(db, make_product, delivered_order, outbox):
    p = _jacket(make_product)
    order = delivered_order([(p, "M", "Negro", 1)])
    with pytest.raises(PreconditionFailedError):
        OrderService(db, outbox).cancel_order(order.id)


def test_order_number_clash_on_insert_draws_again(db, make_product, place_order, monkeypatch):
    p = _jacket(make_product)
    taken = place_order([(p, "M", "Negro", 1)]).order_number
    # the lookup saw the number free, then another checkout stored it first
    draws = iter([taken, "FM-ZZZZZ3"])
    monkeypatch.setattr(OrderService, "allocate_order_number", lambda self: next(draws))

    order = place_order([(p, "M", "Negro", 1)], reference="pi_clash")
    assert order.order_number == "FM-ZZZZZ3"
    assert db.query(Order).count() == 2
    assert VariantStockStore(db).get_stock(p.id, "M", "Negro") == 3


def test_order_number_clash_gives_up_after_max_attempts(db, make_product, place_order, monkeypatch):
    p = _jacket(make_product)
    taken = place_order([(p, "M", "Negro", 1)]).order_number
    calls = []

    def always_taken(self):
        calls.append(taken)
        return taken

    monkeypatch.setattr(OrderService, "allocate_order_number", always_taken)
    with pytest.raises(ConflictError):
        place_order([(p, "M", "Negro", 1)], reference="pi_clash_again")
    assert len(calls) == settings.ORDER_NUMBER_MAX_ATTEMPTS
    assert db.query(Order).count() == 1
    assert VariantStockStore(db).get_stock(p.id, "M", "Negro") == 4


def test_many_orders_get_distinct_numbers(db, make_product, place_order):
    p = make_product(slug="calcetines", sizes=["U"], stock={("U", None): 50})
    numbers = {place_order([(p, "U", None, 1)]).order_number for _ in range(20)}
    assert len(numbers) == 20
    assert all(ORDER_NUMBER_RE.match(n) for n in numbers)
