"""
Per-product stock rollups for the admin views.

Everything here is a pure function of a product and its variant rows; the
store persists, the aggregator only reads.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional

from fashionmarket.config import settings
from fashionmarket.errors import ValidationError
from fashionmarket.models.variant_stock import variant_key

LOW_STOCK_THRESHOLD = settings.LOW_STOCK_THRESHOLD

FILTERS = ("all", "low", "out")


@dataclass
class VariantLevel:
    size: Optional[str]
    color: Optional[str]
    stock: int
    status: str  # out, low, ok
    pending_notifications: int = 0


@dataclass
class StockMatrix:
    sizes: List[str]
    colors: List[str]
    cells: Dict[str, Dict[str, int]]
    row_totals: Dict[str, int]
    column_totals: Dict[str, int]
    grand_total: int


@dataclass
class StockSummary:
    product_id: int
    slug: str
    name: str
    total: int
    variants: List[VariantLevel] = field(default_factory=list)
    out_count: int = 0
    low_count: int = 0
    has_low: bool = False
    has_out: bool = False
    matrix: Optional[StockMatrix] = None

    def to_dict(self) -> dict:
        return asdict(self)


def level_status(qty: int, threshold: int = LOW_STOCK_THRESHOLD) -> str:
    if qty <= 0:
        return "out"
    if qty <= threshold:
        return "low"
    return "ok"


def variant_levels(product, rows: Iterable) -> List[tuple]:
    """
    (size, color, qty) for every variant the product exposes.

    Declared slots come first in display order (missing rows read 0),
    followed by stored rows whose slot is no longer declared but still hold
    stock. A product with no variant rows at all is a single (None, None)
    variant holding the flat ``Product.stock``.
    """
    rows = list(rows)
    if not rows:
        return [(None, None, int(product.stock or 0))]

    stored = {r.variant_key: r for r in rows}
    out = []
    seen = set()
    for size, color in product.variant_slots():
        key = variant_key(size, color)
        seen.add(key)
        row = stored.get(key)
        out.append((size, color, row.stock if row else 0))
    for row in rows:
        if row.variant_key not in seen and row.stock > 0:
            out.append((row.size, row.color, row.stock))
    return out


def build_matrix(product, levels: List[tuple]) -> Optional[StockMatrix]:
    sizes = list(product.sizes or [])
    colors = list(product.colors or [])
    if not (sizes and colors):
        return None

    cells = {s: {c: 0 for c in colors} for s in sizes}
    for size, color, qty in levels:
        if size in cells and color in cells[size]:
            cells[size][color] = qty

    row_totals = {s: sum(cells[s].values()) for s in sizes}
    column_totals = {c: sum(cells[s][c] for s in sizes) for c in colors}
    return StockMatrix(
        sizes=sizes,
        colors=colors,
        cells=cells,
        row_totals=row_totals,
        column_totals=column_totals,
        grand_total=sum(row_totals.values()),
    )


def summarize(
    product,
    rows: Optional[Iterable] = None,
    threshold: Optional[int] = None,
    pending: Optional[Dict[str, int]] = None,
) -> StockSummary:
    """
    Roll a product's variants up into one StockSummary.

    ``pending`` maps variant keys to waitlist sizes and is copied onto the
    matching variants when given.
    """
    if threshold is None:
        threshold = LOW_STOCK_THRESHOLD
    if rows is None:
        rows = product.variants
    pending = pending or {}

    levels = variant_levels(product, rows)
    variants = [
        VariantLevel(
            size=size,
            color=color,
            stock=qty,
            status=level_status(qty, threshold),
            pending_notifications=pending.get(variant_key(size, color), 0),
        )
        for size, color, qty in levels
    ]
    out_count = sum(1 for v in variants if v.status == "out")
    low_count = sum(1 for v in variants if v.status == "low")

    return StockSummary(
        product_id=product.id,
        slug=product.slug,
        name=product.name,
        total=sum(v.stock for v in variants),
        variants=variants,
        out_count=out_count,
        low_count=low_count,
        has_low=low_count > 0,
        has_out=out_count > 0,
        matrix=build_matrix(product, levels),
    )


def filter_summaries(summaries: Iterable[StockSummary], mode: str = "all") -> List[StockSummary]:
    # "low" also returns products that have run out entirely
    if mode not in FILTERS:
        raise ValidationError(f"unknown stock filter {mode!r}; expected one of {', '.join(FILTERS)}")
    summaries = list(summaries)
    if mode == "low":
        return [s for s in summaries if s.has_low or s.has_out]
    if mode == "out":
        return [s for s in summaries if s.has_out]
    return summaries
