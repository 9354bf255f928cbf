# backend/fashionmarket/schemas/product_schema.py
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    price_cents: int
    image: Optional[str] = None
    stock: int
    active: bool
    sizes: List[str] = []
    colors: List[str] = []


class ProductIn(BaseModel):
    slug: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=256)
    price_cents: int = Field(..., ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    sizes: List[str] = []
    colors: List[str] = []
    stock: Optional[int] = Field(None, ge=0)
    active: bool = True


class ProductPatch(BaseModel):
    name: Optional[str] = None
    price_cents: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    active: Optional[bool] = None


class StockUpdateIn(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    # checked by stock_service.coerce_quantity
    stock: Any


class StockUpdatesIn(BaseModel):
    updates: List[StockUpdateIn]


class NotifyStockIn(BaseModel):
    email: str
    size: Optional[str] = None
    color: Optional[str] = None
