from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from fashionmarket.adapters.mailer import get_mailer
from fashionmarket.db import get_db
from fashionmarket.errors import DomainError
from fashionmarket.repositories.product_repo import ProductRepository
from fashionmarket.schemas.product_schema import NotifyStockIn, ProductOut
from fashionmarket.services import stock_aggregator
from fashionmarket.services.notification_service import NotificationService
from fashionmarket.services.restock_service import RestockNotifier
from fashionmarket.services.stock_service import VariantStockStore

router = APIRouter(tags=["catalogue"])


def _availability(product):
    summary = stock_aggregator.summarize(product)
    return {
        "total_stock": summary.total,
        "in_stock": summary.total > 0,
        "variants": [
            {"size": v.size, "color": v.color, "stock": v.stock, "status": v.status}
            for v in summary.variants
        ],
    }


@router.get("", summary="List products")
def list_products(
    q: Optional[str] = Query(None, description="search term"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    repo = ProductRepository(db)
    items, total = repo.list(q=q, page=page, size=size)
    return {
        "items": [
            {**ProductOut.model_validate(p).model_dump(), "in_stock": (p.stock or 0) > 0}
            for p in items
        ],
        "total": total,
    }


@router.get("/{slug}", summary="Get product by slug, with per-variant availability")
def get_product(slug: str, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    p = repo.get_by_slug(slug)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return {**ProductOut.model_validate(p).model_dump(), **_availability(p)}


@router.get("/{product_id}/stock", summary="Stock per variant")
def get_product_stock(product_id: int, db: Session = Depends(get_db)):
    store = VariantStockStore(db)
    try:
        summary = store.summary(product_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {
        "product_id": product_id,
        "total_stock": summary.total,
        "items": [{"size": v.size, "color": v.color, "stock": v.stock} for v in summary.variants],
    }


@router.post(
    "/{product_id}/notify-stock",
    summary="Join the waitlist for an out-of-stock variant",
    status_code=status.HTTP_201_CREATED,
)
def notify_stock(
    product_id: int,
    payload: NotifyStockIn,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
    x_user_id: Optional[str] = Header(None),
):
    notifier = RestockNotifier(db, NotificationService(mailer))
    try:
        entry, created = notifier.request_notification(
            product_id,
            payload.email,
            size=payload.size,
            color=payload.color,
            user_id=x_user_id,
        )
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {
        "id": entry.id,
        "created": created,
        "product_id": entry.product_id,
        "size": entry.size,
        "color": entry.color,
        "email": entry.email,
        "notified": entry.notified,
    }
