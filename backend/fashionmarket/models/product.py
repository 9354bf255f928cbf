from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from fashionmarket.db import Base
from fashionmarket.models.variant_stock import VariantStock  # noqa: F401


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(128), unique=True, index=True, nullable=False)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    image = Column(String(512), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    # cached sum over variant rows; authoritative only while no rows exist
    stock = Column(Integer, default=0, nullable=False)
    sizes = Column(JSON, nullable=False, default=list)
    colors = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    variants = relationship(
        "VariantStock", back_populates="product", cascade="all, delete-orphan"
    )

    def variant_slots(self):
        """Valid (size, color) pairs in display order."""
        sizes = list(self.sizes or [])
        colors = list(self.colors or [])
        if sizes and colors:
            return [(s, c) for s in sizes for c in colors]
        if sizes:
            return [(s, None) for s in sizes]
        if colors:
            return [(None, c) for c in colors]
        return [(None, None)]

    def __repr__(self):
        return f"<Product slug={self.slug} name={self.name}>"
