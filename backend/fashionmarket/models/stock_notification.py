from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, text

from fashionmarket.db import Base


class StockNotification(Base):
    """Waitlist entry: pending until the variant restocks, then notified for good."""

    __tablename__ = "stock_notifications"
    __table_args__ = (
        # one pending entry per (product, variant, email); notified rows may repeat
        Index(
            "uq_stock_notifications_pending",
            "product_id",
            "variant_key",
            "email",
            unique=True,
            sqlite_where=text("notified = 0"),
            postgresql_where=text("notified = false"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    size = Column(String(32), nullable=True)
    color = Column(String(64), nullable=True)
    variant_key = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False)
    user_id = Column(String(64), nullable=True)
    notified = Column(Boolean, nullable=False, default=False)
    notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
