from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from fashionmarket.db import Base
from fashionmarket.models.invoice import Invoice  # noqa: F401
from fashionmarket.models.product import Product  # noqa: F401

# forward path; cancelled/refunded are exits from any state before delivered
ORDER_FLOW = ("pending", "paid", "processing", "shipped", "delivered")
ORDER_EXITS = ("cancelled", "refunded")
ORDER_STATUSES = ORDER_FLOW + ORDER_EXITS
CANCELLABLE_STATUSES = ("pending", "paid", "processing", "shipped")


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    customer_email = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, default="pending")

    subtotal_cents = Column(Integer, nullable=False, default=0)
    shipping_cost_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    discount_code = Column(String(64), nullable=True)
    tax_rate = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)

    shipping_method = Column(String(32), nullable=False, default="standard")
    shipping_address = Column(JSON, nullable=False)
    payment_method = Column(String(32), nullable=False, default="card")
    payment_reference = Column(String(128), unique=True, nullable=False)
    notes = Column(Text, nullable=True)
    # set when the invoice could not be minted; cleared by the retry job
    invoice_error = Column(String(1024), nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    paid_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    invoice = relationship("Invoice", back_populates="order", uselist=False)


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    product_name = Column(String(256), nullable=False)
    size = Column(String(32), nullable=True)
    color = Column(String(64), nullable=True)
    unit_price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity
