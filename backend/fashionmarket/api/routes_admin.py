from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from fashionmarket.adapters.mailer import get_mailer
from fashionmarket.db import get_db
from fashionmarket.errors import DomainError, ValidationError
from fashionmarket.repositories.product_repo import ProductRepository
from fashionmarket.schemas.order_schema import OrderOut, ReturnOut
from fashionmarket.schemas.product_schema import ProductIn, ProductOut, ProductPatch, StockUpdatesIn
from fashionmarket.services import stock_aggregator
from fashionmarket.services.notification_service import NotificationService
from fashionmarket.services.order_service import OrderService
from fashionmarket.services.restock_service import RestockNotifier
from fashionmarket.services.return_service import ReturnService
from fashionmarket.services.stock_service import VariantStockStore
from fashionmarket.utils.transactions import unit_of_work

router = APIRouter(prefix="/api/admin", tags=["admin"])


class OrderStatusIn(BaseModel):
    status: str


class ReturnDecisionIn(BaseModel):
    action: str  # approve, reject
    admin_notes: Optional[str] = None


# -- products ------------------------------------------------------------


@router.post("/products", summary="Create a product", status_code=201)
def create_product(payload: ProductIn, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    if repo.get_by_slug(payload.slug, active_only=False):
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": f"slug {payload.slug} already exists"},
        )
    with unit_of_work(db):
        p = repo.create_or_update(**payload.model_dump())
    db.refresh(p)
    return ProductOut.model_validate(p).model_dump()


@router.patch("/products/{product_id}", summary="Edit product details")
def update_product(product_id: int, payload: ProductPatch, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    p = repo.get(product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    with unit_of_work(db):
        repo.update(p, **payload.model_dump(exclude_unset=True))
    db.refresh(p)
    return ProductOut.model_validate(p).model_dump()


# -- stock ---------------------------------------------------------------


@router.get("/products/{product_id}/stock", summary="Variant stock, matrix and waitlist sizes")
def get_stock(product_id: int, db: Session = Depends(get_db)):
    store = VariantStockStore(db)
    try:
        return store.summary(product_id).to_dict()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put("/products/{product_id}/stock", summary="Bulk-edit variant stock")
def put_stock(
    product_id: int,
    payload: StockUpdatesIn,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    store = VariantStockStore(db, RestockNotifier(db, NotificationService(mailer)))
    try:
        result = store.apply_updates(product_id, [u.model_dump() for u in payload.updates])
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {
        "total_stock": result.total_stock,
        "notifications_fired": result.notifications_fired,
        "notifications_sent": result.notifications_sent,
        "summary": result.summary.to_dict(),
    }


@router.get("/stock/summary", summary="Stock rollup for every product")
def stock_summary(
    filter: str = Query("all", description="all, low or out"),
    db: Session = Depends(get_db),
):
    store = VariantStockStore(db)
    try:
        summaries = [
            stock_aggregator.summarize(p, pending=store.notifier.pending_counts(p.id))
            for p in ProductRepository(db).all()
        ]
        selected = stock_aggregator.filter_summaries(summaries, filter)
    except ValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {
        "filter": filter,
        "threshold": stock_aggregator.LOW_STOCK_THRESHOLD,
        "total_products": len(summaries),
        "low_stock_products": sum(1 for s in summaries if s.has_low),
        "out_of_stock_products": sum(1 for s in summaries if s.has_out),
        "items": [s.to_dict() for s in selected],
    }


# -- orders --------------------------------------------------------------


@router.patch("/orders/{order_id}", summary="Move an order to a new status")
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    svc = OrderService(db, mailer)
    try:
        order = svc.update_status(order_id, payload.status)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return OrderOut.model_validate(order).model_dump()


# -- returns -------------------------------------------------------------


@router.get("/returns", summary="List return requests")
def list_returns(
    status: Optional[str] = Query(None, description="requested, approved or rejected"),
    db: Session = Depends(get_db),
):
    svc = ReturnService(db)
    try:
        returns = svc.list_returns(status)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return {"items": [ReturnOut.from_return(rr).model_dump() for rr in returns]}


@router.patch("/returns/{return_id}", summary="Approve or reject a return")
def decide_return(
    return_id: int,
    payload: ReturnDecisionIn,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    svc = ReturnService(db, mailer)
    try:
        if payload.action == "approve":
            rr = svc.approve(return_id, payload.admin_notes)
        elif payload.action == "reject":
            rr = svc.reject(return_id, payload.admin_notes)
        else:
            raise ValidationError(f"unknown action {payload.action!r}; expected approve or reject")
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return ReturnOut.from_return(rr).model_dump()
