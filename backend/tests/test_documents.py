import pytest

from fashionmarket.errors import ValidationError
from fashionmarket.models.credit_note import CreditNote
from fashionmarket.services.document_renderer import render_credit_note_html, render_invoice_html
from fashionmarket.services.order_service import OrderService
from fashionmarket.services.sequence_service import (
    SequenceService,
    format_credit_note_number,
    format_invoice_number,
    format_return_number,
)


def test_number_formats():
    assert format_invoice_number(2025, 7) == "FM-2025-000007"
    assert format_return_number(2025, 12) == "RET-2025-000012"
    assert format_credit_note_number(2025, 1) == "FR-2025-A00001"
    assert format_credit_note_number(2025, 99999) == "FR-2025-A99999"
    assert format_credit_note_number(2025, 100000) == "FR-2025-B00001"
    with pytest.raises(ValidationError):
        format_credit_note_number(2025, 0)


def test_sequences_are_per_type_and_year(db):
    seq = SequenceService(db)
    assert [seq.next_value("invoice", 2025) for _ in range(3)] == [1, 2, 3]
    assert seq.next_value("invoice", 2026) == 1
    assert seq.next_value("credit_note", 2025) == 1
    db.commit()
    assert SequenceService(db).next_invoice_number(2025) == "FM-2025-000004"


def test_rolled_back_number_is_reused(db):
    seq = SequenceService(db)
    seq.next_value("return", 2025)
    db.commit()
    seq.next_value("return", 2025)
    db.rollback()
    assert seq.next_value("return", 2025) == 2


def test_invoice_render_is_stable(db, make_product, place_order):
    p = make_product(slug="abrigo", price_cents=12995, sizes=["L"], stock={("L", None): 3})
    order = place_order([(p, "L", None, 1)])
    invoice = order.invoice
    first = render_invoice_html(invoice)
    assert invoice.invoice_number in first
    assert "129,95 €" in first
    assert "Lucía Martín" in first
    db.expire_all()
    assert render_invoice_html(invoice) == first


def test_credit_note_prints_deductions(db, make_product, place_order, outbox):
    p = make_product(slug="abrigo", price_cents=12995, sizes=["L"], stock={("L", None): 3})
    order = place_order([(p, "L", None, 1)])
    OrderService(db, outbox).cancel_order(order.id)
    note = db.query(CreditNote).one()
    assert note.total_cents > 0
    html = render_credit_note_html(note, order.invoice.invoice_number)
    assert "-129,95 €" in html
    assert order.invoice.invoice_number in html
