"""
Invoices and credit notes.

Both are snapshots: the customer block, the lines and every amount are
copied at issue time and never recomputed afterwards. Callers own the
transaction; nothing here commits.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from fashionmarket.errors import ConflictError, PreconditionFailedError, ValidationError
from fashionmarket.models.credit_note import CreditNote
from fashionmarket.models.invoice import Invoice
from fashionmarket.models.order import Order
from fashionmarket.services.pricing import compute_tax
from fashionmarket.services.sequence_service import SequenceService
from fashionmarket.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

REFUND_METHOD = "original_payment_method"


def _customer_name(order: Order) -> str:
    address = order.shipping_address or {}
    return address.get("full_name") or address.get("name") or order.customer_email


def invoice_lines(order: Order) -> List[dict]:
    return [
        {
            "order_item_id": item.id,
            "name": item.product_name,
            "size": item.size,
            "color": item.color,
            "quantity": item.quantity,
            "unit_price": item.unit_price_cents,
            "total": item.line_total_cents,
        }
        for item in order.items
    ]


class DocumentService:
    def __init__(self, db: Session):
        self.db = db
        self.sequences = SequenceService(db)

    def get_invoice_for_order(self, order_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(Invoice.order_id == order_id).first()

    def generate_invoice(self, order: Order) -> Invoice:
        """One invoice per order; a repeat call returns the one already issued."""
        existing = self.get_invoice_for_order(order.id)
        if existing:
            return existing

        now = utcnow()
        invoice = Invoice(
            invoice_number=self.sequences.next_invoice_number(now.year),
            order_id=order.id,
            user_id=order.user_id,
            customer_name=_customer_name(order),
            customer_email=order.customer_email,
            customer_address=order.shipping_address,
            items=invoice_lines(order),
            subtotal_cents=order.subtotal_cents,
            shipping_cost_cents=order.shipping_cost_cents,
            discount_cents=order.discount_cents,
            tax_rate=order.tax_rate,
            tax_cents=order.tax_cents,
            total_cents=order.total_cents,
            status="paid",
            payment_method=order.payment_method,
            paid_at=order.paid_at,
            issued_at=now,
        )
        self.db.add(invoice)
        self.db.flush()
        logger.info("invoice %s issued for order %s", invoice.invoice_number, order.order_number)
        return invoice

    def _credit_note(self, invoice: Invoice, **fields) -> CreditNote:
        now = utcnow()
        note = CreditNote(
            credit_note_number=self.sequences.next_credit_note_number(now.year),
            order_id=invoice.order_id,
            original_invoice_id=invoice.id,
            user_id=invoice.user_id,
            customer_name=invoice.customer_name,
            customer_email=invoice.customer_email,
            customer_address=invoice.customer_address,
            tax_rate=invoice.tax_rate,
            refund_method=REFUND_METHOD,
            status="issued",
            issued_at=now,
            **fields,
        )
        self.db.add(note)
        self.db.flush()
        logger.info(
            "credit note %s issued against %s for %s cents",
            note.credit_note_number,
            invoice.invoice_number,
            note.total_cents,
        )
        return note

    def _full_reversal(self, invoice: Invoice) -> dict:
        return dict(
            items=[dict(line) for line in invoice.items],
            subtotal_cents=invoice.subtotal_cents,
            shipping_cost_cents=invoice.shipping_cost_cents,
            discount_cents=invoice.discount_cents,
            tax_cents=invoice.tax_cents,
            total_cents=invoice.total_cents,
        )

    def generate_credit_note(self, return_request, original_invoice: Invoice) -> CreditNote:
        """
        Credit note for an approved return.

        A return covering the whole order mirrors the invoice outright;
        otherwise the note carries the returned lines only, tax at the
        invoice rate and no shipping. The total must match the return's
        refund amount.
        """
        if return_request.status != "approved":
            raise PreconditionFailedError("credit notes are issued for approved returns only")
        if return_request.credit_note is not None:
            raise ConflictError(f"return {return_request.return_number} already has a credit note")
        if original_invoice.order_id != return_request.order_id:
            raise ValidationError("invoice does not belong to the returned order")

        by_item = {line.get("order_item_id"): line for line in original_invoice.items}
        lines = []
        for ri in return_request.items:
            source = by_item.get(ri.order_item_id)
            if source is None:
                raise ValidationError(f"order item {ri.order_item_id} is not on invoice {original_invoice.invoice_number}")
            lines.append(
                {
                    "order_item_id": ri.order_item_id,
                    "name": source["name"],
                    "size": source.get("size"),
                    "color": source.get("color"),
                    "quantity": ri.quantity,
                    "unit_price": source["unit_price"],
                    "total": source["unit_price"] * ri.quantity,
                }
            )

        if _covers_invoice(lines, original_invoice):
            fields = self._full_reversal(original_invoice)
        else:
            subtotal = sum(line["total"] for line in lines)
            fields = dict(
                items=lines,
                subtotal_cents=subtotal,
                shipping_cost_cents=0,
                discount_cents=0,
                tax_cents=compute_tax(subtotal, original_invoice.tax_rate),
                total_cents=subtotal,
            )

        if fields["total_cents"] != return_request.refund_amount_cents:
            raise ConflictError(
                f"credit note total {fields['total_cents']} does not match refund "
                f"{return_request.refund_amount_cents} for {return_request.return_number}"
            )

        reason = f"Devolución {return_request.return_number}"
        return self._credit_note(
            original_invoice, return_id=return_request.id, reason=reason, **fields
        )

    def generate_cancellation_credit_note(self, order: Order, invoice: Invoice) -> CreditNote:
        """Full reversal of ``invoice`` for a cancelled order."""
        existing = (
            self.db.query(CreditNote)
            .filter(
                CreditNote.original_invoice_id == invoice.id,
                CreditNote.return_id.is_(None),
            )
            .first()
        )
        if existing:
            return existing
        return self._credit_note(
            invoice,
            return_id=None,
            reason=f"Cancelación del pedido {order.order_number}",
            **self._full_reversal(invoice),
        )


def _covers_invoice(lines: List[dict], invoice: Invoice) -> bool:
    returned = {}
    for line in lines:
        returned[line["order_item_id"]] = returned.get(line["order_item_id"], 0) + line["quantity"]
    return all(returned.get(src.get("order_item_id"), 0) == src["quantity"] for src in invoice.items)
