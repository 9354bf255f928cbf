from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from fashionmarket.db import Base
from fashionmarket.models.credit_note import CreditNote  # noqa: F401
from fashionmarket.models.order import Order  # noqa: F401
from fashionmarket.models.return_item import ReturnItem  # noqa: F401

RETURN_REASONS = ("wrong_size", "defective", "not_as_described", "changed_mind", "other")


class ReturnRequest(Base):
    __tablename__ = "returns"
    __table_args__ = (
        # at most one live (non-rejected) return per order
        Index(
            "uq_returns_live_per_order",
            "order_id",
            unique=True,
            sqlite_where=text("status != 'rejected'"),
            postgresql_where=text("status != 'rejected'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    return_number = Column(String(32), unique=True, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="requested")  # requested, approved, rejected
    reason = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    refund_amount_cents = Column(Integer, nullable=False)
    refund_method = Column(String(64), nullable=False, default="original_payment_method")
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    # relations
    order = relationship("Order")
    items = relationship(
        "ReturnItem", back_populates="return_request", cascade="all, delete-orphan"
    )
    credit_note = relationship(
        "CreditNote", back_populates="return_request", uselist=False
    )
