from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from fashionmarket.db import Base

class CreditNote(Base):
    """
    Reverses all or part of an invoice.

    Every amount column holds a non-negative magnitude; the renderer is the
    only place that prints them as deductions.
    """
    __tablename__ = "credit_notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    credit_note_number = Column(String(32), unique=True, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    original_invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    # null for credit notes raised by an order cancellation
    return_id = Column(Integer, ForeignKey("returns.id"), nullable=True, unique=True)
    user_id = Column(String(64), nullable=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_address = Column(JSON, nullable=True)
    items = Column(JSON, nullable=False)

    subtotal_cents = Column(Integer, nullable=False)
    shipping_cost_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    tax_rate = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)

    reason = Column(String(255), nullable=False)
    refund_method = Column(String(64), nullable=False, default="original_payment_method")
    status = Column(String(32), nullable=False, default="issued")
    issued_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    original_invoice = relationship("Invoice")
    return_request = relationship("ReturnRequest", back_populates="credit_note")
