import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fashionmarket.adapters.mailer import get_mailer
from fashionmarket.db import get_db
from fashionmarket.errors import DomainError
from fashionmarket.schemas.order_schema import OrderOut
from fashionmarket.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


class OrderItemIn(BaseModel):
    product_id: int
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = Field(..., gt=0)


class CreateOrderIn(BaseModel):
    items: List[OrderItemIn]
    customer_email: str
    shipping_address: dict
    payment_reference: str = Field(..., min_length=1)
    payment_succeeded: bool = True
    payment_method: str = "card"
    shipping_method: str = "standard"
    discount_cents: int = Field(0, ge=0)
    discount_code: Optional[str] = None
    notes: Optional[str] = None


@router.post("", summary="Create order (checkout)", status_code=201)
def create_order(
    payload: CreateOrderIn,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
    x_user_id: Optional[str] = Header(None),
):
    svc = OrderService(db, mailer)
    try:
        order = svc.create_order(
            [it.model_dump() for it in payload.items],
            payload.shipping_address,
            payload.payment_reference,
            payload.discount_cents,
            customer_email=payload.customer_email,
            user_id=x_user_id,
            shipping_method=payload.shipping_method,
            payment_method=payload.payment_method,
            payment_succeeded=payload.payment_succeeded,
            discount_code=payload.discount_code,
            notes=payload.notes,
        )
    except DomainError as e:
        logger.info("checkout rejected: %s", e)
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    out = OrderOut.model_validate(order).model_dump()
    out["invoice_id"] = order.invoice.id if order.invoice else None
    return out


@router.get("/{order_id}", summary="Get one of the caller's orders")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None),
):
    svc = OrderService(db)
    try:
        order = svc.get_order(order_id, user_id=x_user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    out = OrderOut.model_validate(order).model_dump()
    out["invoice_id"] = order.invoice.id if order.invoice else None
    return out


@router.post("/{order_id}/cancel", summary="Cancel an order before delivery")
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
    x_user_id: Optional[str] = Header(None),
):
    svc = OrderService(db, mailer)
    try:
        order = svc.cancel_order(order_id, user_id=x_user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return OrderOut.model_validate(order).model_dump()
