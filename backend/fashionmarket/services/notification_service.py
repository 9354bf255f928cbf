import logging
from html import escape
from typing import List, Optional

from fashionmarket.adapters.mailer import Attachment, Notification, get_mailer
from fashionmarket.config import settings
from fashionmarket.errors import ExternalServiceError
from fashionmarket.services.pricing import format_cents

logger = logging.getLogger(__name__)

REASON_LABELS = {
    "wrong_size": "Talla incorrecta",
    "defective": "Producto defectuoso",
    "not_as_described": "No coincide con la descripción",
    "changed_mind": "Cambio de opinión",
    "other": "Otro motivo",
}


def _wrap(heading: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; background: #f4f4f4; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px;">
    <div style="background: #1a2b4a; color: white; padding: 30px; text-align: center;">
      <h1 style="margin: 0; font-size: 24px;">{heading}</h1>
    </div>
    <div style="padding: 30px;">
{content}
    </div>
    <div style="text-align: center; padding: 20px; color: #6c757d; font-size: 12px;">
      <p>FashionMarket - Moda masculina premium</p>
    </div>
  </div>
</body>
</html>
"""


class NotificationService:
    """
    Builds customer emails and hands them to the mail transport.

    Every send is fire-and-forget: transport failures are logged and
    reported as ``False``, never raised into the calling operation.
    """

    def __init__(self, mailer=None):
        self.mailer = mailer or get_mailer()

    def dispatch(self, notification: Notification) -> bool:
        try:
            self.mailer.send(notification)
            return True
        except ExternalServiceError as e:
            logger.error("Notification %r to %s failed: %s", notification.subject, notification.to, e)
            return False

    def send_restock(self, to: str, product, size: Optional[str], color: Optional[str]) -> bool:
        variant = " / ".join(v for v in (size, color) if v) or "única"
        url = f"{settings.SITE_URL}/producto/{product.slug}"
        content = f"""
      <p>Hola,</p>
      <p>El producto que estabas esperando ya está disponible:</p>
      <h2>{escape(product.name)}</h2>
      <p>Variante: <strong>{escape(variant)}</strong></p>
      <p style="text-align: center;"><a href="{url}">Ver producto</a></p>
      <p style="color: #6c757d; font-size: 14px;">Las unidades son limitadas y podrían agotarse pronto.</p>
      <p style="color: #6c757d; font-size: 12px;">Has recibido este email porque solicitaste ser notificado.</p>"""
        return self.dispatch(
            Notification(
                to=to,
                subject=f"¡{product.name} vuelve a estar disponible!",
                body=_wrap("¡Buenas noticias!", content),
            )
        )

    def send_order_confirmation(self, order, attachments: Optional[List[Attachment]] = None) -> bool:
        rows = "".join(
            f"<tr><td>{escape(i.product_name)}"
            f"{' - ' + escape(i.size) if i.size else ''}{' - ' + escape(i.color) if i.color else ''}</td>"
            f"<td>{i.quantity}</td><td>{format_cents(i.line_total_cents)}</td></tr>"
            for i in order.items
        )
        content = f"""
      <p>Gracias por tu compra. Tu pedido <strong>{escape(order.order_number)}</strong> ha sido recibido.</p>
      <table style="width: 100%;">{rows}</table>
      <p>Subtotal: {format_cents(order.subtotal_cents)}<br>
      Descuento: {format_cents(order.discount_cents, deduction=True)}<br>
      Envío: {format_cents(order.shipping_cost_cents)}<br>
      <strong>Total: {format_cents(order.total_cents)}</strong> (IVA incluido: {format_cents(order.tax_cents)})</p>"""
        return self.dispatch(
            Notification(
                to=order.customer_email,
                subject=f"Confirmación de pedido {order.order_number}",
                body=_wrap("¡Pedido confirmado!", content),
                attachments=list(attachments or []),
            )
        )

    def send_order_cancelled(self, order, attachments: Optional[List[Attachment]] = None) -> bool:
        content = f"""
      <p>Tu pedido <strong>{escape(order.order_number)}</strong> ha sido cancelado.</p>
      <p>Importe a reembolsar: <strong>{format_cents(order.total_cents)}</strong>.</p>
      <p>Adjuntamos la factura rectificativa correspondiente.</p>"""
        return self.dispatch(
            Notification(
                to=order.customer_email,
                subject=f"Pedido {order.order_number} cancelado",
                body=_wrap("Pedido cancelado", content),
                attachments=list(attachments or []),
            )
        )

    def send_return_approved(
        self, to: str, return_request, order_number: str, attachments: Optional[List[Attachment]] = None
    ) -> bool:
        notes = ""
        if return_request.admin_notes:
            notes = f"<p>Notas: {escape(return_request.admin_notes)}</p>"
        content = f"""
      <p>Tu devolución <strong>{escape(return_request.return_number)}</strong> del pedido {escape(order_number)} ha sido aprobada.</p>
      <p>Motivo: {REASON_LABELS.get(return_request.reason, return_request.reason)}</p>
      <p>Importe a reembolsar: <strong>{format_cents(return_request.refund_amount_cents)}</strong></p>
      {notes}"""
        return self.dispatch(
            Notification(
                to=to,
                subject=f"Devolución {return_request.return_number} aprobada",
                body=_wrap("Devolución aprobada", content),
                attachments=list(attachments or []),
            )
        )

    def send_return_rejected(self, to: str, return_request, order_number: str) -> bool:
        content = f"""
      <p>Tu devolución <strong>{escape(return_request.return_number)}</strong> del pedido {escape(order_number)} ha sido rechazada.</p>
      <p>Motivo del rechazo: {escape(return_request.admin_notes or '')}</p>"""
        return self.dispatch(
            Notification(
                to=to,
                subject=f"Devolución {return_request.return_number} rechazada",
                body=_wrap("Devolución rechazada", content),
            )
        )
