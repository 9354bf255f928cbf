import logging
import os
import tempfile
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from filelock import FileLock, Timeout
from sqlalchemy import func
from sqlalchemy.orm import Session

from fashionmarket.config import settings
from fashionmarket.errors import ConflictError, NotFoundError, ValidationError
from fashionmarket.models.product import Product
from fashionmarket.models.variant_stock import VariantStock, normalize_axis, variant_key
from fashionmarket.services import stock_aggregator
from fashionmarket.services.restock_service import PendingDelivery, RestockNotifier
from fashionmarket.utils.transactions import unit_of_work

logger = logging.getLogger(__name__)

LOCKS_DIR = os.path.join(tempfile.gettempdir(), "fashionmarket_locks")


def coerce_quantity(value, *, clamp: bool = True) -> int:
    """
    Validate a stock quantity.

    Accepts ints, integral floats/Decimals and digit strings. Booleans,
    fractional numbers and anything else raise ValidationError. Negative
    values are clamped to 0 (and logged) unless ``clamp`` is False.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"stock quantity must be an integer, got {value!r}")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, (float, Decimal)):
        if value != value or value in (float("inf"), float("-inf")) or value != int(value):
            raise ValidationError(f"stock quantity must be a whole number, got {value!r}")
        qty = int(value)
    elif isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text[:1] in "+-" else text
        if not digits.isdigit():
            raise ValidationError(f"stock quantity must be an integer, got {value!r}")
        qty = int(text)
    else:
        raise ValidationError(f"stock quantity must be an integer, got {value!r}")

    if qty < 0 and clamp:
        logger.warning("negative stock quantity %s clamped to 0", qty)
        return 0
    return qty


@dataclass
class StockUpdateResult:
    product_id: int
    total_stock: int
    # key -> (before, after) for every slot the edit touched
    changes: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    notifications_fired: int = 0
    notifications_sent: int = 0
    summary: Optional[stock_aggregator.StockSummary] = None


class VariantStockStore:
    """
    Unit of truth for inventory at (product, size, color) granularity.

    Writes hold a per-product file lock for the whole read-prior, upsert,
    recompute and mark-notified sequence, and keep ``Product.stock`` equal to
    the sum of the product's variant rows.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[RestockNotifier] = None,
        lock_timeout: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier or RestockNotifier(db)
        self.lock_timeout = (
            lock_timeout if lock_timeout is not None else settings.STOCK_LOCK_TIMEOUT_SECONDS
        )

    # -- locking ---------------------------------------------------------

    @contextmanager
    def locked(self, product_ids: Iterable[int]):
        """Hold the stock locks of several products, taken in id order."""
        os.makedirs(LOCKS_DIR, exist_ok=True)
        with ExitStack() as stack:
            for pid in sorted(set(product_ids)):
                lock = FileLock(os.path.join(LOCKS_DIR, f"stock_{pid}.lock"))
                try:
                    lock.acquire(timeout=self.lock_timeout)
                except Timeout:
                    raise ConflictError(f"stock of product {pid} is being updated; try again")
                stack.callback(lock.release)
            yield

    # -- reads -----------------------------------------------------------

    def _load_product(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError(f"product {product_id} not found")
        return product

    def _rows(self, product_id: int) -> Dict[str, VariantStock]:
        rows = self.db.query(VariantStock).filter(VariantStock.product_id == product_id).all()
        return {r.variant_key: r for r in rows}

    def list_variants(self, product_id: int) -> List[VariantStock]:
        return (
            self.db.query(VariantStock)
            .filter(VariantStock.product_id == product_id)
            .order_by(VariantStock.id)
            .all()
        )

    def get_stock(self, product_id: int, size=None, color=None) -> int:
        size, color = normalize_axis(size), normalize_axis(color)
        product = self._load_product(product_id)
        rows = self._rows(product_id)
        if not rows:
            # legacy product: only the (None, None) slot maps onto the flat stock
            return int(product.stock or 0) if (size, color) == (None, None) else 0
        row = rows.get(variant_key(size, color))
        return row.stock if row else 0

    def total_stock(self, product_id: int) -> int:
        product = self._load_product(product_id)
        total, count = self.db.query(
            func.coalesce(func.sum(VariantStock.stock), 0), func.count(VariantStock.id)
        ).filter(VariantStock.product_id == product_id).one()
        if not count:
            return int(product.stock or 0)
        return int(total)

    def summary(self, product_id: int) -> stock_aggregator.StockSummary:
        product = self._load_product(product_id)
        return stock_aggregator.summarize(
            product,
            self.list_variants(product_id),
            pending=self.notifier.pending_counts(product_id),
        )

    # -- staged writes (caller owns the transaction) -----------------------

    def _check_slot(self, product: Product, size, color, rows: Dict[str, VariantStock]):
        """
        Declared slots are writable, and so is a stored row whose slot was
        later dropped from the product's sizes/colors.
        """
        if (size, color) in product.variant_slots() or variant_key(size, color) in rows:
            return
        raise ValidationError(
            f"{product.slug} has no variant size={size!r} color={color!r}"
        )

    def _recompute(self, product: Product) -> int:
        self.db.flush()
        total, count = self.db.query(
            func.coalesce(func.sum(VariantStock.stock), 0), func.count(VariantStock.id)
        ).filter(VariantStock.product_id == product.id).one()
        if count:
            product.stock = int(total)
        return int(product.stock or 0)

    def _write(self, product: Product, rows: Dict[str, VariantStock], size, color, qty: int):
        key = variant_key(size, color)
        row = rows.get(key)
        if row is None:
            row = VariantStock(
                product_id=product.id, size=size, color=color, variant_key=key, stock=qty
            )
            self.db.add(row)
            rows[key] = row
        else:
            row.stock = qty

    def stage_updates(self, product: Product, updates: Iterable[dict]) -> Dict[str, Tuple[int, int]]:
        """
        Apply absolute ``[{size, color, stock}]`` values.

        Everything is validated before the first write. Returns
        ``{key: (before, after)}``; a key listed twice keeps its first
        ``before`` and last ``after``.
        """
        rows = self._rows(product.id)
        parsed = []
        for u in updates:
            if not isinstance(u, dict):
                raise ValidationError("each stock update must be an object")
            if "stock" not in u:
                raise ValidationError("stock update is missing 'stock'")
            size, color = normalize_axis(u.get("size")), normalize_axis(u.get("color"))
            self._check_slot(product, size, color, rows)
            parsed.append((size, color, coerce_quantity(u["stock"])))

        legacy_flat = int(product.stock or 0) if not rows else None
        changes: Dict[str, Tuple[int, int]] = {}
        for size, color, qty in parsed:
            key = variant_key(size, color)
            if key in changes:
                before = changes[key][0]
            elif key in rows:
                before = rows[key].stock
            elif legacy_flat is not None and (size, color) == (None, None):
                before = legacy_flat
            else:
                before = 0
            self._write(product, rows, size, color, qty)
            changes[key] = (before, qty)
        return changes

    def stage_adjustments(
        self, product: Product, adjustments: Iterable[Tuple[Optional[str], Optional[str], int]]
    ) -> Dict[str, Tuple[int, int]]:
        """
        Apply relative ``(size, color, delta)`` changes, as checkout and
        cancellation do. A result below zero raises ValidationError.

        Products without variant rows draw every slot from the flat stock.
        """
        adjustments = [(normalize_axis(s), normalize_axis(c), d) for s, c, d in adjustments]
        rows = self._rows(product.id)
        changes: Dict[str, Tuple[int, int]] = {}

        if not rows:
            before = int(product.stock or 0)
            after = before + sum(d for _, _, d in adjustments)
            if after < 0:
                raise ValidationError(f"insufficient stock for {product.name}: {before} available")
            product.stock = after
            for size, color, _ in adjustments:
                changes[variant_key(size, color)] = (before, after)
            return changes

        for size, color, delta in adjustments:
            self._check_slot(product, size, color, rows)
            key = variant_key(size, color)
            current = rows[key].stock if key in rows else 0
            after = current + delta
            if after < 0:
                variant = " / ".join(v for v in (size, color) if v) or "única"
                raise ValidationError(
                    f"insufficient stock for {product.name} ({variant}): {current} available"
                )
            before = changes[key][0] if key in changes else current
            self._write(product, rows, size, color, after)
            changes[key] = (before, after)
        self._recompute(product)
        return changes

    def mark_restocks(self, product: Product, changes: Dict[str, Tuple[int, int]]) -> List[PendingDelivery]:
        restocked = [key for key, (before, after) in changes.items() if before == 0 and after > 0]
        return self.notifier.mark_restocked(product.id, restocked)

    # -- entry points ------------------------------------------------------

    def apply_updates(self, product_id: int, updates: Iterable[dict]) -> StockUpdateResult:
        """
        Bulk edit as one logical unit: one lock, one transaction, one
        aggregate recompute. Restock emails go out after commit.
        """
        updates = list(updates)
        with self.locked([product_id]):
            with unit_of_work(self.db):
                product = self._load_product(product_id)
                changes = self.stage_updates(product, updates)
                total = self._recompute(product)
                deliveries = self.mark_restocks(product, changes)

        sent = self.notifier.deliver(deliveries)
        logger.info(
            "stock: product=%s updated %s slots, total=%s, notified=%s/%s",
            product_id,
            len(changes),
            total,
            sent,
            len(deliveries),
        )
        return StockUpdateResult(
            product_id=product_id,
            total_stock=total,
            changes=changes,
            notifications_fired=len(deliveries),
            notifications_sent=sent,
            summary=self.summary(product_id),
        )

    def set_stock(self, product_id: int, size=None, color=None, qty=0) -> StockUpdateResult:
        return self.apply_updates(product_id, [{"size": size, "color": color, "stock": qty}])
