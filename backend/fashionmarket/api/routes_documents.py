from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from fashionmarket.db import get_db
from fashionmarket.models.credit_note import CreditNote
from fashionmarket.models.invoice import Invoice
from fashionmarket.schemas.order_schema import CreditNoteOut, InvoiceOut
from fashionmarket.services.document_renderer import render_credit_note_html, render_invoice_html

router = APIRouter(prefix="/api", tags=["documents"])


def _load(db: Session, model, doc_id: int, user_id: Optional[str]):
    """Documents of other users read as missing."""
    doc = db.get(model, doc_id)
    if not doc or (user_id is not None and doc.user_id != user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": f"document {doc_id} not found"},
        )
    return doc


@router.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db), x_user_id: Optional[str] = Header(None)):
    invoice = _load(db, Invoice, invoice_id, x_user_id)
    return InvoiceOut.model_validate(invoice).model_dump()


@router.get("/invoices/{invoice_id}/document", response_class=HTMLResponse)
def get_invoice_document(
    invoice_id: int, db: Session = Depends(get_db), x_user_id: Optional[str] = Header(None)
):
    invoice = _load(db, Invoice, invoice_id, x_user_id)
    return HTMLResponse(
        render_invoice_html(invoice),
        headers={"Content-Disposition": f'inline; filename="factura-{invoice.invoice_number}.html"'},
    )


@router.get("/credit-notes/{credit_note_id}")
def get_credit_note(
    credit_note_id: int, db: Session = Depends(get_db), x_user_id: Optional[str] = Header(None)
):
    note = _load(db, CreditNote, credit_note_id, x_user_id)
    out = CreditNoteOut.model_validate(note).model_dump()
    out["invoice_number"] = note.original_invoice.invoice_number
    return out


@router.get("/credit-notes/{credit_note_id}/document", response_class=HTMLResponse)
def get_credit_note_document(
    credit_note_id: int, db: Session = Depends(get_db), x_user_id: Optional[str] = Header(None)
):
    note = _load(db, CreditNote, credit_note_id, x_user_id)
    return HTMLResponse(
        render_credit_note_html(note, note.original_invoice.invoice_number),
        headers={"Content-Disposition": f'inline; filename="abono-{note.credit_note_number}.html"'},
    )
