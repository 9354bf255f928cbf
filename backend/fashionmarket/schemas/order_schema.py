# backend/fashionmarket/schemas/order_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: Optional[int] = None
    product_name: str
    size: Optional[str] = None
    color: Optional[str] = None
    unit_price_cents: int
    quantity: int
    line_total_cents: int


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: Optional[str] = None
    customer_email: str
    status: str
    subtotal_cents: int
    shipping_cost_cents: int
    discount_cents: int
    discount_code: Optional[str] = None
    tax_rate: int
    tax_cents: int
    total_cents: int
    shipping_method: str
    shipping_address: dict
    payment_method: str
    payment_reference: str
    invoice_error: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemOut] = []


class DocumentLineOut(BaseModel):
    order_item_id: Optional[int] = None
    name: str
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int
    unit_price: int
    total: int


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    invoice_number: str
    order_id: int
    customer_name: str
    customer_email: str
    customer_address: Optional[dict] = None
    items: List[DocumentLineOut]
    subtotal_cents: int
    shipping_cost_cents: int
    discount_cents: int
    tax_rate: int
    tax_cents: int
    total_cents: int
    status: str
    payment_method: Optional[str] = None
    issued_at: datetime


class CreditNoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    credit_note_number: str
    order_id: int
    original_invoice_id: int
    return_id: Optional[int] = None
    customer_name: str
    customer_email: str
    items: List[DocumentLineOut]
    subtotal_cents: int
    shipping_cost_cents: int
    discount_cents: int
    tax_rate: int
    tax_cents: int
    total_cents: int
    reason: str
    refund_method: str
    status: str
    issued_at: datetime


class ReturnItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_item_id: int
    quantity: int
    unit_price_cents: int


class ReturnOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    return_number: str
    order_id: int
    user_id: str
    status: str
    reason: str
    description: Optional[str] = None
    refund_amount_cents: int
    refund_method: str
    admin_notes: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    items: List[ReturnItemOut] = []
    credit_note_id: Optional[int] = None

    @classmethod
    def from_return(cls, rr) -> "ReturnOut":
        out = cls.model_validate(rr)
        out.credit_note_id = rr.credit_note.id if rr.credit_note else None
        return out
