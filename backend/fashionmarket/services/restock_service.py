import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fashionmarket.errors import NotFoundError, ValidationError
from fashionmarket.models.product import Product
from fashionmarket.models.stock_notification import StockNotification
from fashionmarket.models.variant_stock import normalize_axis, variant_key
from fashionmarket.services.notification_service import NotificationService
from fashionmarket.utils.time_utils import utcnow
from fashionmarket.utils.transactions import unit_of_work

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class PendingDelivery:
    """Snapshot of a waitlist entry taken when it was marked notified."""

    entry_id: int
    product_id: int
    size: Optional[str]
    color: Optional[str]
    email: str


class RestockNotifier:
    """
    Waitlist for out-of-stock variants.

    An entry fires exactly once, on the first 0 -> positive transition of
    its variant after it was created. Entries are marked notified inside the
    stock transaction and emailed after commit, so a crash between the two
    loses the email rather than sending it twice.
    """

    def __init__(self, db: Session, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications

    def _pending_entry(self, product_id: int, key: str, email: str):
        return (
            self.db.query(StockNotification)
            .filter(
                StockNotification.product_id == product_id,
                StockNotification.variant_key == key,
                StockNotification.email == email,
                StockNotification.notified == False,  # noqa: E712
            )
            .first()
        )

    def request_notification(
        self,
        product_id: int,
        email: str,
        size: Optional[str] = None,
        color: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Tuple[StockNotification, bool]:
        """Returns (entry, created); an existing pending entry is handed back as-is."""
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("invalid email address")

        size, color = normalize_axis(size), normalize_axis(color)
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError(f"product {product_id} not found")
        if (size, color) not in product.variant_slots():
            raise ValidationError(f"{product.slug} has no variant size={size!r} color={color!r}")

        key = variant_key(size, color)
        existing = self._pending_entry(product_id, key, email)
        if existing:
            return existing, False

        entry = StockNotification(
            product_id=product_id,
            size=size,
            color=color,
            variant_key=key,
            email=email,
            user_id=user_id,
            notified=False,
        )
        try:
            with unit_of_work(self.db):
                self.db.add(entry)
        except IntegrityError:
            # a concurrent request created the same pending entry
            existing = self._pending_entry(product_id, key, email)
            if existing is None:
                raise
            return existing, False

        self.db.refresh(entry)
        logger.info("waitlist: %s subscribed to product=%s key=%s", email, product_id, key)
        return entry, True

    def pending_counts(self, product_id: int) -> Dict[str, int]:
        rows = self.db.execute(
            select(StockNotification.variant_key, func.count(StockNotification.id))
            .where(
                StockNotification.product_id == product_id,
                StockNotification.notified == False,  # noqa: E712
            )
            .group_by(StockNotification.variant_key)
        ).all()
        return {key: count for key, count in rows}

    def mark_restocked(self, product_id: int, keys: Iterable[str]) -> List[PendingDelivery]:
        """
        Flag every pending entry for ``keys`` as notified.

        Runs inside the caller's transaction; the returned snapshots are what
        :meth:`deliver` sends once that transaction has committed.
        """
        keys = list(keys)
        if not keys:
            return []

        entries = (
            self.db.query(StockNotification)
            .filter(
                StockNotification.product_id == product_id,
                StockNotification.variant_key.in_(keys),
                StockNotification.notified == False,  # noqa: E712
            )
            .order_by(StockNotification.id)
            .all()
        )
        if not entries:
            return []

        snapshot = [
            PendingDelivery(
                entry_id=e.id,
                product_id=e.product_id,
                size=e.size,
                color=e.color,
                email=e.email,
            )
            for e in entries
        ]
        self.db.execute(
            update(StockNotification)
            .where(StockNotification.id.in_([d.entry_id for d in snapshot]))
            .values(notified=True, notified_at=utcnow()),
            execution_options={"synchronize_session": "fetch"},
        )
        logger.info(
            "restock: product=%s keys=%s marked %s waitlist entries",
            product_id,
            keys,
            len(snapshot),
        )
        return snapshot

    def deliver(self, deliveries: Iterable[PendingDelivery]) -> int:
        """Email every snapshot; returns how many were handed to the transport."""
        deliveries = list(deliveries)
        if not deliveries:
            return 0
        notifications = self.notifications or NotificationService()

        products = {}
        sent = 0
        for d in deliveries:
            product = products.get(d.product_id)
            if product is None:
                product = products[d.product_id] = self.db.get(Product, d.product_id)
            if notifications.send_restock(d.email, product, d.size, d.color):
                sent += 1
        if sent < len(deliveries):
            logger.warning("restock: %s of %s emails failed", len(deliveries) - sent, len(deliveries))
        return sent
