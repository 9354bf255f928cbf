"""
HTML rendering of invoices and credit notes.

Both renderers print the persisted figures verbatim and never recompute a
total. The HTML is what gets mailed as the attachment and served by the
document endpoints.
"""

from html import escape
from typing import Optional

from fashionmarket.adapters.mailer import Attachment
from fashionmarket.config import settings
from fashionmarket.models.credit_note import CreditNote
from fashionmarket.models.invoice import Invoice
from fashionmarket.services.pricing import format_cents

_STYLE = """
body { font-family: 'Helvetica Neue', Arial, sans-serif; color: #1a1a2e; max-width: 800px; margin: 0 auto; padding: 40px; }
table { width: 100%; border-collapse: collapse; margin: 30px 0; }
th, td { padding: 10px; border-bottom: 1px solid #e5e5e5; text-align: left; }
td.num, th.num { text-align: right; }
.totals td { border: none; }
.deduction { color: #dc2626; }
"""


def _company_block() -> str:
    return (
        f"<p><strong>{escape(settings.COMPANY_NAME)}</strong><br>"
        f"NIF: {escape(settings.COMPANY_NIF)}<br>{escape(settings.COMPANY_ADDRESS)}</p>"
    )


def _address_block(address: Optional[dict]) -> str:
    if not address:
        return ""
    parts = [
        address.get("address_line1") or "",
        address.get("address_line2") or "",
        f"{address.get('postal_code') or ''} {address.get('city') or ''}".strip(),
        address.get("province") or "",
        address.get("country") or "",
    ]
    return "<br>".join(escape(p) for p in parts if p)


def _item_label(item: dict) -> str:
    label = escape(item.get("name") or "")
    if item.get("size"):
        label += f" - Talla: {escape(item['size'])}"
    if item.get("color"):
        label += f" - Color: {escape(item['color'])}"
    return label


def _items_rows(items, deduction: bool) -> str:
    rows = []
    for item in items:
        rows.append(
            "<tr>"
            f"<td>{_item_label(item)}</td>"
            f"<td class='num'>{item['quantity']}</td>"
            f"<td class='num'>{format_cents(item['unit_price'], deduction)}</td>"
            f"<td class='num'>{format_cents(item['total'], deduction)}</td>"
            "</tr>"
        )
    return "\n".join(rows)


def _totals_rows(doc, deduction: bool) -> str:
    out = [
        f"<tr><td>Subtotal</td><td class='num'>{format_cents(doc.subtotal_cents, deduction)}</td></tr>"
    ]
    if doc.discount_cents:
        # the discount runs against the document's own sign
        out.append(
            f"<tr><td>Descuento</td>"
            f"<td class='num'>{format_cents(doc.discount_cents, not deduction)}</td></tr>"
        )
    out.append(
        f"<tr><td>Envío</td><td class='num'>{format_cents(doc.shipping_cost_cents, deduction)}</td></tr>"
    )
    out.append(
        f"<tr><td>IVA incluido ({doc.tax_rate}%)</td>"
        f"<td class='num'>{format_cents(doc.tax_cents, deduction)}</td></tr>"
    )
    out.append(
        f"<tr><td><strong>Total</strong></td>"
        f"<td class='num'><strong>{format_cents(doc.total_cents, deduction)}</strong></td></tr>"
    )
    return "\n".join(out)


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html lang='es'>\n<head>\n<meta charset='UTF-8'>\n"
        f"<title>{escape(title)}</title>\n<style>{_STYLE}</style>\n</head>\n"
        f"<body>\n{body}\n</body>\n</html>\n"
    )


def render_invoice_html(invoice: Invoice) -> str:
    issued = invoice.issued_at.strftime("%d/%m/%Y")
    body = f"""
<h1>Factura {escape(invoice.invoice_number)}</h1>
<p>Fecha: {issued} &middot; Estado: {escape(invoice.status)}</p>
{_company_block()}
<h3>Cliente</h3>
<p>{escape(invoice.customer_name)}<br>{escape(invoice.customer_email)}<br>{_address_block(invoice.customer_address)}</p>
<table>
<tr><th>Producto</th><th class='num'>Cantidad</th><th class='num'>Precio</th><th class='num'>Total</th></tr>
{_items_rows(invoice.items, deduction=False)}
</table>
<table class='totals'>
{_totals_rows(invoice, deduction=False)}
</table>
"""
    return _page(f"Factura {invoice.invoice_number}", body)


def render_credit_note_html(credit_note: CreditNote, invoice_number: str) -> str:
    issued = credit_note.issued_at.strftime("%d/%m/%Y")
    body = f"""
<h1 class='deduction'>Factura rectificativa {escape(credit_note.credit_note_number)}</h1>
<p>Fecha: {issued} &middot; Ref. factura: {escape(invoice_number)}</p>
<p>Motivo: {escape(credit_note.reason)}<br>Método de reembolso: {escape(credit_note.refund_method)}</p>
{_company_block()}
<h3>Cliente</h3>
<p>{escape(credit_note.customer_name)}<br>{escape(credit_note.customer_email)}<br>{_address_block(credit_note.customer_address)}</p>
<table class='deduction'>
<tr><th>Producto</th><th class='num'>Cantidad</th><th class='num'>Precio</th><th class='num'>Total</th></tr>
{_items_rows(credit_note.items, deduction=True)}
</table>
<table class='totals deduction'>
{_totals_rows(credit_note, deduction=True)}
</table>
"""
    return _page(f"Factura rectificativa {credit_note.credit_note_number}", body)


def invoice_attachment(invoice: Invoice) -> Attachment:
    return Attachment(
        filename=f"factura-{invoice.invoice_number}.html",
        content=render_invoice_html(invoice).encode("utf-8"),
    )


def credit_note_attachment(credit_note: CreditNote, invoice_number: str) -> Attachment:
    return Attachment(
        filename=f"abono-{credit_note.credit_note_number}.html",
        content=render_credit_note_html(credit_note, invoice_number).encode("utf-8"),
    )
