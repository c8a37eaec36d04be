"""
Order confirmation emails via the Brevo transactional email API.

Raises NotificationError on failure; callers record it on the order.
"""

import html
import os

import httpx

from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.services.models import Order
from checkout.services.money import round_money

logger = get_logger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class NotificationError(Exception):
    """Email provider did not accept the message."""


def _money(value, currency: str) -> str:
    symbol = "₹" if currency == "INR" else f"{currency} "
    return f"{symbol}{round_money(value):,.2f}"


def render_order_confirmation(order: Order) -> tuple[str, str]:
    """Return (subject, html body) for an order confirmation."""
    currency = order.currency
    rows = "".join(
        f"<tr><td>{html.escape(item.display_name)}</td>"
        f"<td align='center'>{item.quantity}</td>"
        f"<td align='right'>{_money(item.unit_price * item.quantity, currency)}</td></tr>"
        for item in order.items
    )
    summary = [
        ("Subtotal", order.subtotal),
        ("Shipping", order.shipping_fee),
    ]
    if order.discount_amount:
        summary.append(("Discount", -order.discount_amount))
    if order.tax:
        summary.append(("Tax", order.tax))
    summary.append(("Total", order.total))
    summary_rows = "".join(
        f"<tr><td colspan='2'>{label}</td><td align='right'>{_money(value, currency)}</td></tr>"
        for label, value in summary
    )
    address = order.shipping_address
    name = html.escape(order.customer_info.full_name or address.full_name or "there")

    body = (
        f"<p>Hi {name},</p>"
        f"<p>Thanks for your order <b>{html.escape(order.order_id)}</b>.</p>"
        f"<table width='100%'>{rows}{summary_rows}</table>"
        f"<p>Shipping to: {html.escape(address.address)}, {html.escape(address.city)}, "
        f"{html.escape(address.state)} {html.escape(address.postal_code)}</p>"
        f"<p>Payment: {html.escape(order.payment_method.upper())}</p>"
    )
    return f"Order confirmed: {order.order_id}", body


class EmailNotifier:
    """Sends order confirmations through Brevo."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self.api_key = os.environ.get("BREVO_API_KEY", "")
        self.sender_email = os.environ.get("EMAIL_FROM", "")
        self.sender_name = os.environ.get("EMAIL_FROM_NAME", "Store")
        self._http_client = http_client

    def is_configured(self) -> bool:
        return bool(self.api_key and self.sender_email)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
        return self._http_client

    async def send_order_confirmation(self, order: Order, recipient: str) -> str | None:
        """Send the confirmation; returns Brevo's message id."""
        if not self.is_configured():
            raise NotificationError("Email provider not configured")

        subject, body = render_order_confirmation(order)
        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": recipient, "name": order.customer_info.full_name or recipient}],
            "subject": subject,
            "htmlContent": body,
        }

        client = await self._get_http_client()
        try:
            response = await client.post(
                BREVO_API_URL,
                json=payload,
                headers={"api-key": self.api_key, "accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(f"Brevo HTTP {response.status_code}: {response.text}")

        logger.info(f"Confirmation email sent for order {sanitize_id_for_logging(order.order_id)}")
        try:
            return response.json().get("messageId")
        except ValueError:
            return None

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
