import logging
import re
import secrets
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fashionmarket.config import settings
from fashionmarket.errors import (
    ConflictError,
    DomainError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from fashionmarket.models.invoice import Invoice
from fashionmarket.models.order import (
    CANCELLABLE_STATUSES,
    ORDER_EXITS,
    ORDER_FLOW,
    ORDER_STATUSES,
    Order,
    OrderItem,
)
from fashionmarket.models.product import Product
from fashionmarket.models.variant_stock import normalize_axis
from fashionmarket.services.document_renderer import credit_note_attachment, invoice_attachment
from fashionmarket.services.document_service import DocumentService
from fashionmarket.services.notification_service import NotificationService
from fashionmarket.services.pricing import compute_order_totals
from fashionmarket.services.restock_service import RestockNotifier
from fashionmarket.services.stock_service import VariantStockStore
from fashionmarket.utils.time_utils import utcnow
from fashionmarket.utils.transactions import unit_of_work

logger = logging.getLogger(__name__)

# 32 symbols, no 0/O or 1/I
ORDER_NUMBER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ORDER_NUMBER_RE = re.compile(r"^FM-[A-HJ-NP-Z2-9]{6}$")
SHIPPING_METHODS = ("standard", "express")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_order_number() -> str:
    return "FM-" + "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))


def shipping_cost_for(method: str) -> int:
    if method == "express":
        return settings.EXPRESS_SHIPPING_COST_CENTS
    return settings.STANDARD_SHIPPING_COST_CENTS


class OrderService:
    def __init__(
        self,
        db: Session,
        mailer=None,
        number_factory: Optional[Callable[[], str]] = None,
    ):
        self.db = db
        self.notifications = NotificationService(mailer)
        self.notifier = RestockNotifier(db, self.notifications)
        self.stock = VariantStockStore(db, self.notifier)
        self.documents = DocumentService(db)
        self.number_factory = number_factory or generate_order_number

    # -- lookups -----------------------------------------------------------

    def get_order(self, order_id: int, user_id: Optional[str] = None) -> Order:
        """Orders of other users read as missing."""
        order = self.db.get(Order, order_id)
        if not order or (user_id is not None and order.user_id != user_id):
            raise NotFoundError(f"order {order_id} not found")
        return order

    def find_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.payment_reference == payment_reference)
            .first()
        )

    def allocate_order_number(self) -> str:
        attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
        for _ in range(attempts):
            candidate = self.number_factory()
            taken = self.db.query(Order.id).filter(Order.order_number == candidate).first()
            if not taken:
                return candidate
            logger.warning("order number %s already taken; drawing again", candidate)
        raise ConflictError(f"could not allocate a unique order number after {attempts} attempts")

    # -- checkout ----------------------------------------------------------

    def _validate_lines(self, items: List[Dict]) -> List[Dict]:
        if not items:
            raise ValidationError("an order needs at least one item")
        lines = []
        for it in items:
            qty = it.get("quantity")
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError(f"quantity must be a positive integer, got {qty!r}")
            if it.get("product_id") is None:
                raise ValidationError("every item needs a product_id")
            lines.append(
                {
                    "product_id": int(it["product_id"]),
                    "size": normalize_axis(it.get("size")),
                    "color": normalize_axis(it.get("color")),
                    "quantity": qty,
                }
            )
        return lines

    def create_order(
        self,
        items: List[Dict],
        shipping_address: Dict,
        payment_reference: str,
        discount_cents: int = 0,
        *,
        customer_email: str,
        user_id: Optional[str] = None,
        shipping_method: str = "standard",
        payment_method: str = "card",
        payment_succeeded: bool = True,
        discount_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        items: list of {product_id, size, color, quantity}

        One order per payment reference: a repeated call hands back the
        order already recorded and sends nothing. Invoice and confirmation
        email follow the commit and never undo it.
        """
        if not payment_succeeded:
            raise PreconditionFailedError("payment has not been confirmed")
        if not payment_reference:
            raise ValidationError("payment_reference is required")

        existing = self.find_by_payment_reference(payment_reference)
        if existing:
            logger.info("payment %s already recorded as %s", payment_reference, existing.order_number)
            return existing

        if not customer_email or not EMAIL_RE.match(customer_email):
            raise ValidationError("invalid customer email")
        if not shipping_address:
            raise ValidationError("shipping_address is required")
        if shipping_method not in SHIPPING_METHODS:
            raise ValidationError(f"unknown shipping method {shipping_method!r}")
        if isinstance(discount_cents, bool) or not isinstance(discount_cents, int):
            raise ValidationError("discount must be an integer amount of cents")
        lines = self._validate_lines(items)

        product_ids = {line["product_id"] for line in lines}
        attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
        order = None
        for attempt in range(1, attempts + 1):
            try:
                with self.stock.locked(product_ids):
                    with unit_of_work(self.db):
                        order = self._record_order(
                            lines,
                            shipping_address=shipping_address,
                            payment_reference=payment_reference,
                            discount_cents=discount_cents,
                            customer_email=customer_email,
                            user_id=user_id,
                            shipping_method=shipping_method,
                            payment_method=payment_method,
                            discount_code=discount_code,
                            notes=notes,
                        )
                break
            except IntegrityError:
                # lost a race on payment_reference or order_number
                order = None
                existing = self.find_by_payment_reference(payment_reference)
                if existing:
                    return existing
                logger.warning(
                    "order number clashed on insert (attempt %s of %s)", attempt, attempts
                )
        if order is None:
            raise ConflictError(f"could not record the order after {attempts} attempts; try again")

        self.db.refresh(order)
        logger.info(
            "order %s created: %s items, total=%s",
            order.order_number,
            len(order.items),
            order.total_cents,
        )
        invoice = self._issue_invoice(order)
        attachments = [invoice_attachment(invoice)] if invoice else []
        self.notifications.send_order_confirmation(order, attachments)
        return order

    def _record_order(self, lines: List[Dict], **fields) -> Order:
        products = {}
        for line in lines:
            pid = line["product_id"]
            if pid not in products:
                product = self.db.get(Product, pid)
                if not product or not product.active:
                    raise ValidationError(f"product {pid} is not available")
                products[pid] = product

        totals = compute_order_totals(
            [(products[line["product_id"]].price_cents, line["quantity"]) for line in lines],
            discount_cents=fields["discount_cents"],
            tax_rate=settings.TAX_RATE,
            free_shipping_threshold_cents=settings.FREE_SHIPPING_THRESHOLD_CENTS,
            shipping_cost_cents=shipping_cost_for(fields["shipping_method"]),
        )

        now = utcnow()
        order = Order(
            order_number=self.allocate_order_number(),
            user_id=fields["user_id"],
            customer_email=fields["customer_email"],
            status="paid",
            subtotal_cents=totals.subtotal_cents,
            shipping_cost_cents=totals.shipping_cost_cents,
            discount_cents=totals.discount_cents,
            discount_code=fields["discount_code"],
            tax_rate=totals.tax_rate,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            shipping_method=fields["shipping_method"],
            shipping_address=dict(fields["shipping_address"]),
            payment_method=fields["payment_method"],
            payment_reference=fields["payment_reference"],
            notes=fields["notes"],
            paid_at=now,
        )
        self.db.add(order)

        adjustments = defaultdict(list)
        for line in lines:
            product = products[line["product_id"]]
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    size=line["size"],
                    color=line["color"],
                    unit_price_cents=product.price_cents,
                    quantity=line["quantity"],
                )
            )
            adjustments[product.id].append((line["size"], line["color"], -line["quantity"]))

        for pid, deltas in adjustments.items():
            self.stock.stage_adjustments(products[pid], deltas)
        self.db.flush()
        return order

    def _issue_invoice(self, order: Order) -> Optional[Invoice]:
        """Best effort; a failure is flagged on the order for the retry job."""
        try:
            with unit_of_work(self.db):
                invoice = self.documents.generate_invoice(order)
                order.invoice_error = None
            return invoice
        except (DomainError, SQLAlchemyError) as e:
            logger.error("invoice for order %s failed: %s", order.order_number, e)
            with unit_of_work(self.db):
                order.invoice_error = str(e)[:1024]
            return None

    def retry_missing_invoices(self) -> int:
        """Issue invoices for paid orders that have none yet. Returns how many were issued."""
        orders = (
            self.db.query(Order)
            .outerjoin(Invoice, Invoice.order_id == Order.id)
            .filter(Invoice.id.is_(None), Order.status != "pending")
            .order_by(Order.id)
            .all()
        )
        issued = 0
        for order in orders:
            if self._issue_invoice(order):
                issued += 1
        if orders:
            logger.info("invoice retry: issued %s of %s missing invoices", issued, len(orders))
        return issued

    # -- lifecycle ---------------------------------------------------------

    def update_status(self, order_id: int, status: str) -> Order:
        """
        Forward moves along ORDER_FLOW (skipping allowed, never backwards);
        cancelled/refunded only before delivery.
        """
        if status not in ORDER_STATUSES:
            raise ValidationError(f"unknown order status {status!r}")
        order = self.get_order(order_id)
        current = order.status
        if status == current:
            return order
        if status == "cancelled":
            return self.cancel_order(order_id)

        if status in ORDER_FLOW:
            if current not in ORDER_FLOW or ORDER_FLOW.index(status) < ORDER_FLOW.index(current):
                raise PreconditionFailedError(f"order cannot move from {current} to {status}")
        elif status in ORDER_EXITS and current not in CANCELLABLE_STATUSES:
            raise PreconditionFailedError(f"order cannot move from {current} to {status}")

        now = utcnow()
        with unit_of_work(self.db):
            order.status = status
            if status == "paid" and not order.paid_at:
                order.paid_at = now
            if status in ("shipped", "delivered") and not order.shipped_at:
                order.shipped_at = now
            if status == "delivered":
                order.delivered_at = now
        logger.info("order %s: %s -> %s", order.order_number, current, status)
        return order

    def cancel_order(self, order_id: int, user_id: Optional[str] = None) -> Order:
        """
        Cancel before delivery: put the stock back, reverse the invoice with a
        credit note and tell the customer.
        """
        order = self.get_order(order_id, user_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise PreconditionFailedError(f"an order in status {order.status} cannot be cancelled")

        product_ids = {item.product_id for item in order.items if item.product_id is not None}
        deliveries = []
        with self.stock.locked(product_ids):
            with unit_of_work(self.db):
                restocks = defaultdict(list)
                for item in order.items:
                    if item.product_id is not None:
                        restocks[item.product_id].append((item.size, item.color, item.quantity))
                for pid, deltas in restocks.items():
                    product = self.db.get(Product, pid)
                    if product is None:
                        continue
                    changes = self.stock.stage_adjustments(product, deltas)
                    deliveries.extend(self.stock.mark_restocks(product, changes))

                previous = order.status
                order.status = "cancelled"
                order.cancelled_at = utcnow()
                invoice = self.documents.generate_invoice(order)
                order.invoice_error = None
                credit_note = self.documents.generate_cancellation_credit_note(order, invoice)

        logger.info("order %s cancelled (was %s)", order.order_number, previous)
        self.notifier.deliver(deliveries)
        self.notifications.send_order_cancelled(
            order, [credit_note_attachment(credit_note, invoice.invoice_number)]
        )
        return order
