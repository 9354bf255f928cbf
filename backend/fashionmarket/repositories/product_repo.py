from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from fashionmarket.models.product import Product


def _dedupe(values: Optional[Iterable[str]]) -> List[str]:
    """Strip blanks and repeats, keeping first-seen order."""
    out = []
    for v in values or []:
        v = str(v).strip()
        if v and v not in out:
            out.append(v)
    return out


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def get_by_slug(self, slug: str, active_only: bool = True) -> Optional[Product]:
        qry = self.db.query(Product).filter(Product.slug == slug)
        if active_only:
            qry = qry.filter(Product.active == True)  # noqa: E712
        return qry.first()

    def list(
        self,
        q: Optional[str] = None,
        page: int = 1,
        size: int = 20,
        active_only: bool = True,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product)
        if active_only:
            query = query.filter(Product.active == True)  # noqa: E712
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Product.name.ilike(like)) | (Product.description.ilike(like))
            )
        total = query.with_entities(func.count()).scalar() or 0
        items = query.order_by(Product.name).offset((page - 1) * size).limit(size).all()
        return items, total

    def all(self) -> List[Product]:
        return self.db.query(Product).order_by(Product.name).all()

    def create_or_update(
        self,
        slug: str,
        name: str,
        price_cents: int,
        description: Optional[str] = None,
        image: Optional[str] = None,
        sizes: Optional[Iterable[str]] = None,
        colors: Optional[Iterable[str]] = None,
        stock: Optional[int] = None,
        active: bool = True,
    ) -> Product:
        """
        Upsert by slug. ``stock`` only seeds the flat level of a product
        without variant rows; variant stock goes through VariantStockStore.
        """
        p = self.db.query(Product).filter(Product.slug == slug).first()
        if p is None:
            p = Product(slug=slug, stock=0)
            self.db.add(p)
        p.name = name
        p.price_cents = price_cents
        p.description = description
        p.image = image
        p.active = active
        p.sizes = _dedupe(sizes)
        p.colors = _dedupe(colors)
        if stock is not None and not p.variants:
            p.stock = max(0, int(stock))
        self.db.flush()
        return p

    def update(self, product: Product, **fields) -> Product:
        for key in ("sizes", "colors"):
            if key in fields and fields[key] is not None:
                fields[key] = _dedupe(fields[key])
        for key, value in fields.items():
            if value is not None:
                setattr(product, key, value)
        self.db.flush()
        return product
