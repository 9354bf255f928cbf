"""
Year-scoped document numbering.

Each (document_type, year) pair owns one DocumentSequence row whose
``next_number`` is advanced by a single atomic UPDATE, so two concurrent
callers can never be handed the same value. Numbers are never derived from
a count of existing documents.
"""

import logging
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from fashionmarket.errors import ValidationError
from fashionmarket.models.document_sequence import DocumentSequence
from fashionmarket.utils.transactions import run_with_retry

logger = logging.getLogger(__name__)

INVOICE = "invoice"
CREDIT_NOTE = "credit_note"
RETURN = "return"

# credit note suffix: one letter plus five digits, the letter advancing every block
CREDIT_NOTE_BLOCK = 99999


def format_invoice_number(year: int, seq: int) -> str:
    return f"FM-{year}-{seq:06d}"


def format_return_number(year: int, seq: int) -> str:
    return f"RET-{year}-{seq:06d}"


def format_credit_note_number(year: int, seq: int) -> str:
    """seq 1 -> FR-<year>-A00001, seq 99999 -> A99999, seq 100000 -> B00001."""
    if seq < 1:
        raise ValidationError("sequence values start at 1")
    block, offset = divmod(seq - 1, CREDIT_NOTE_BLOCK)
    if block >= 26:
        raise ValidationError(f"credit note sequence exhausted for {year}")
    return f"FR-{year}-{chr(65 + block)}{offset + 1:05d}"


class SequenceService:
    def __init__(self, db: Session):
        self.db = db

    def _ensure_row(self, document_type: str, year: int):
        dialect = self.db.get_bind().dialect.name
        values = {"document_type": document_type, "year": year, "next_number": 1}
        if dialect == "sqlite":
            stmt = sqlite_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
                index_elements=["document_type", "year"]
            )
        elif dialect == "postgresql":
            stmt = pg_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
                index_elements=["document_type", "year"]
            )
        else:
            exists = self.db.execute(
                select(DocumentSequence.id).where(
                    DocumentSequence.document_type == document_type,
                    DocumentSequence.year == year,
                )
            ).first()
            if exists:
                return
            self.db.add(DocumentSequence(**values))
            self.db.flush()
            return
        self.db.execute(stmt)

    def next_value(self, document_type: str, year: int) -> int:
        """
        Allocate the next number for (document_type, year).

        Runs inside the caller's transaction: a rollback there gives the
        number back.
        """

        def _op() -> int:
            self._ensure_row(document_type, year)
            self.db.execute(
                update(DocumentSequence)
                .where(
                    DocumentSequence.document_type == document_type,
                    DocumentSequence.year == year,
                )
                .values(next_number=DocumentSequence.next_number + 1)
            )
            current = self.db.execute(
                select(DocumentSequence.next_number).where(
                    DocumentSequence.document_type == document_type,
                    DocumentSequence.year == year,
                )
            ).scalar_one()
            return current - 1

        # pysqlite does not open a transaction for SAVEPOINT, and a locked
        # SQLite database leaves the transaction usable anyway
        savepoint = self.db.get_bind().dialect.name != "sqlite"
        value = run_with_retry(_op, session=self.db if savepoint else None)
        logger.debug("allocated %s #%s for %s", document_type, value, year)
        return value

    def next_invoice_number(self, year: int) -> str:
        return format_invoice_number(year, self.next_value(INVOICE, year))

    def next_credit_note_number(self, year: int) -> str:
        return format_credit_note_number(year, self.next_value(CREDIT_NOTE, year))

    def next_return_number(self, year: int) -> str:
        return format_return_number(year, self.next_value(RETURN, year))
