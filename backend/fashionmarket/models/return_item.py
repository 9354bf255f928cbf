from sqlalchemy import Column, ForeignKey, Integer
from sqlalchemy.orm import relationship

from fashionmarket.db import Base
from fashionmarket.models.order import OrderItem  # noqa: F401


class ReturnItem(Base):
    __tablename__ = "return_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    return_id = Column(Integer, ForeignKey("returns.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(Integer, nullable=False)

    return_request = relationship("ReturnRequest", back_populates="items")
    order_item = relationship("OrderItem")
