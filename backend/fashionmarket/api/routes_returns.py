from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from fashionmarket.db import get_db
from fashionmarket.errors import DomainError, NotFoundError
from fashionmarket.schemas.order_schema import ReturnOut
from fashionmarket.services.return_service import ReturnService

router = APIRouter()


class ReturnItemIn(BaseModel):
    order_item_id: int
    quantity: Optional[int] = None


class CreateReturnIn(BaseModel):
    order_id: int
    reason: str
    description: Optional[str] = None
    # order item ids, or {order_item_id, quantity} for part of a line
    items: Optional[List[Union[int, ReturnItemIn]]] = None


def _selection(items):
    if not items:
        return None
    return [it if isinstance(it, int) else it.model_dump() for it in items]


@router.post("/api/returns", status_code=201)
def create_return(
    payload: CreateReturnIn,
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None),
):
    svc = ReturnService(db)
    try:
        if not x_user_id:
            raise NotFoundError(f"order {payload.order_id} not found")
        rr = svc.create_return(
            payload.order_id,
            x_user_id,
            payload.reason,
            description=payload.description,
            items=_selection(payload.items),
        )
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return ReturnOut.from_return(rr).model_dump()


@router.get("/api/returns/{return_id}")
def get_return(
    return_id: int,
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None),
):
    svc = ReturnService(db)
    try:
        rr = svc.get_return(return_id, user_id=x_user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return ReturnOut.from_return(rr).model_dump()
