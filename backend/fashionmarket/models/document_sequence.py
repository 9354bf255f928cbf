from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from fashionmarket.db import Base


class DocumentSequence(Base):
    """Year-scoped counter behind invoice, credit-note and return numbers."""

    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("document_type", "year", name="uq_document_sequences_type_year"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_type = Column(String(32), nullable=False)
    year = Column(Integer, nullable=False)
    next_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
