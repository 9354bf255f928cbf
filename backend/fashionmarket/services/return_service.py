import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fashionmarket.config import settings
from fashionmarket.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from fashionmarket.models.order import Order
from fashionmarket.models.return_item import ReturnItem
from fashionmarket.models.return_request import RETURN_REASONS, ReturnRequest
from fashionmarket.services.document_renderer import credit_note_attachment
from fashionmarket.services.document_service import REFUND_METHOD, DocumentService
from fashionmarket.services.notification_service import NotificationService
from fashionmarket.services.sequence_service import SequenceService
from fashionmarket.utils.time_utils import as_utc, utcnow
from fashionmarket.utils.transactions import unit_of_work

logger = logging.getLogger(__name__)

RETURN_STATUSES = ("requested", "approved", "rejected")

# an int selects a whole order line; a dict may return part of it
Selection = Union[int, Dict]


def select_items(order: Order, items: Optional[List[Selection]]) -> List[tuple]:
    """
    Resolve a selection into (order_item, quantity) pairs.

    No selection means every line in full.
    """
    by_id = {item.id: item for item in order.items}
    if not items:
        return [(item, item.quantity) for item in order.items]

    picked: Dict[int, int] = {}
    for sel in items:
        if isinstance(sel, dict):
            item_id = sel.get("order_item_id")
            qty = sel.get("quantity")
        else:
            item_id, qty = sel, None
        if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id not in by_id:
            raise ValidationError(f"order item {item_id!r} is not part of order {order.order_number}")
        if qty is None:
            qty = by_id[item_id].quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(f"return quantity must be a positive integer, got {qty!r}")
        picked[item_id] = picked.get(item_id, 0) + qty
        if picked[item_id] > by_id[item_id].quantity:
            raise ValidationError(
                f"cannot return more than {by_id[item_id].quantity} of {by_id[item_id].product_name}"
            )
    return [(by_id[i], q) for i, q in picked.items()]


def is_entire_order(order: Order, selected: List[tuple]) -> bool:
    chosen = {item.id: qty for item, qty in selected}
    return all(chosen.get(item.id) == item.quantity for item in order.items)


def refund_amount(order: Order, selected: List[tuple]) -> int:
    """Whole order: the order total. Otherwise the selected lines at purchase price."""
    if is_entire_order(order, selected):
        return order.total_cents
    return sum(item.unit_price_cents * qty for item, qty in selected)


class ReturnService:
    def __init__(self, db: Session, mailer=None):
        self.db = db
        self.notifications = NotificationService(mailer)
        self.documents = DocumentService(db)
        self.sequences = SequenceService(db)

    def create_return(
        self,
        order_id: int,
        user_id: str,
        reason: str,
        description: Optional[str] = None,
        items: Optional[List[Selection]] = None,
        now: Optional[datetime] = None,
    ) -> ReturnRequest:
        """Open a return for a delivered order of ``user_id`` within the return window."""
        if reason not in RETURN_REASONS:
            raise ValidationError(f"unknown return reason {reason!r}")

        order = self.db.get(Order, order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError(f"order {order_id} not found")
        if order.status != "delivered":
            raise PreconditionFailedError("only delivered orders can be returned")

        now = as_utc(now) or utcnow()
        delivered_at = as_utc(order.delivered_at)
        # orders delivered before delivered_at was recorded are not time-limited
        if delivered_at and now - delivered_at > timedelta(days=settings.RETURN_WINDOW_DAYS):
            raise PreconditionFailedError(
                f"the {settings.RETURN_WINDOW_DAYS}-day return window has expired"
            )

        live = (
            self.db.query(ReturnRequest.id)
            .filter(ReturnRequest.order_id == order_id, ReturnRequest.status != "rejected")
            .first()
        )
        if live:
            raise ConflictError(f"order {order.order_number} already has an active return")

        selected = select_items(order, items)
        try:
            with unit_of_work(self.db):
                rr = ReturnRequest(
                    return_number=self.sequences.next_return_number(now.year),
                    order_id=order.id,
                    user_id=user_id,
                    status="requested",
                    reason=reason,
                    description=description,
                    refund_amount_cents=refund_amount(order, selected),
                    refund_method=REFUND_METHOD,
                )
                for item, qty in selected:
                    rr.items.append(
                        ReturnItem(
                            order_item_id=item.id,
                            quantity=qty,
                            unit_price_cents=item.unit_price_cents,
                        )
                    )
                self.db.add(rr)
        except IntegrityError:
            raise ConflictError(f"order {order.order_number} already has an active return")

        self.db.refresh(rr)
        logger.info(
            "return %s opened for order %s: %s cents",
            rr.return_number,
            order.order_number,
            rr.refund_amount_cents,
        )
        return rr

    def get_return(self, return_id: int, user_id: Optional[str] = None) -> ReturnRequest:
        rr = self.db.get(ReturnRequest, return_id)
        if not rr or (user_id is not None and rr.user_id != user_id):
            raise NotFoundError(f"return {return_id} not found")
        return rr

    def list_returns(self, status: Optional[str] = None) -> List[ReturnRequest]:
        q = self.db.query(ReturnRequest)
        if status:
            if status not in RETURN_STATUSES:
                raise ValidationError(f"unknown return status {status!r}")
            q = q.filter(ReturnRequest.status == status)
        return q.order_by(ReturnRequest.created_at.desc(), ReturnRequest.id.desc()).all()

    def approve(self, return_id: int, admin_notes: Optional[str] = None) -> ReturnRequest:
        """
        Approve and issue the credit note in one transaction, then mail it.

        If the credit note cannot be issued the return stays ``requested``.
        """
        rr = self.get_return(return_id)
        if rr.status != "requested":
            raise PreconditionFailedError(f"return {rr.return_number} is already {rr.status}")

        with unit_of_work(self.db):
            order = rr.order
            invoice = self.documents.generate_invoice(order)
            order.invoice_error = None
            rr.status = "approved"
            rr.approved_at = utcnow()
            if admin_notes is not None:
                rr.admin_notes = admin_notes
            self.db.flush()
            credit_note = self.documents.generate_credit_note(rr, invoice)

        logger.info("return %s approved, credit note %s", rr.return_number, credit_note.credit_note_number)
        self.notifications.send_return_approved(
            rr.order.customer_email,
            rr,
            rr.order.order_number,
            [credit_note_attachment(credit_note, invoice.invoice_number)],
        )
        return rr

    def reject(self, return_id: int, admin_notes: str) -> ReturnRequest:
        if not admin_notes or not admin_notes.strip():
            raise ValidationError("a rejection needs a reason in admin_notes")
        rr = self.get_return(return_id)
        if rr.status != "requested":
            raise PreconditionFailedError(f"return {rr.return_number} is already {rr.status}")

        with unit_of_work(self.db):
            rr.status = "rejected"
            rr.rejected_at = utcnow()
            rr.admin_notes = admin_notes.strip()

        logger.info("return %s rejected", rr.return_number)
        self.notifications.send_return_rejected(rr.order.customer_email, rr, rr.order.order_number)
        return rr
