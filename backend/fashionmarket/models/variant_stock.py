import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from fashionmarket.db import Base


def normalize_axis(value) -> Optional[str]:
    """Trimmed size/color label; blank means the axis is unused."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def variant_key(size: Optional[str], color: Optional[str]) -> str:
    """Composite key for a (size, color) slot; null and "" stay distinct."""
    return json.dumps([size, color], ensure_ascii=False)


class VariantStock(Base):
    __tablename__ = "product_variant_stock"
    __table_args__ = (
        UniqueConstraint("product_id", "variant_key", name="uq_variant_stock_slot"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    size = Column(String(32), nullable=True)
    color = Column(String(64), nullable=True)
    variant_key = Column(String(128), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<VariantStock product={self.product_id} size={self.size} color={self.color} stock={self.stock}>"
