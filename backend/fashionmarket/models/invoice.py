from datetime import datetime, timezone

from fashionmarket.db import Base
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship


class Invoice(Base):
    """Issued once per order and never edited; corrections go through credit notes."""

    __tablename__ = "invoices"
    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(32), unique=True, nullable=False, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id"),
        nullable=False,
        unique=True,
        index=True,
    )
    user_id = Column(String(64), nullable=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_address = Column(JSON, nullable=True)
    # [{order_item_id, name, size, color, quantity, unit_price, total}]
    items = Column(JSON, nullable=False)

    subtotal_cents = Column(Integer, nullable=False)
    shipping_cost_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    tax_rate = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)

    status = Column(String(32), nullable=False, default="paid")
    payment_method = Column(String(32), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    issued_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    order = relationship("Order", back_populates="invoice")
