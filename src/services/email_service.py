"""Email service using Resend for transactional emails."""

import logging
from typing import Any, Iterable

import resend

from src.core.config import get_settings
from src.services.lifecycle_errors import ItemNotFoundError
from src.services.transition_executor import TransitionResult, find_item

logger = logging.getLogger(__name__)

STATUS_HEADLINES = {
    "Shipped": "Your order is on its way",
    "Delivered": "Your order has been delivered",
    "Cancelled": "Your order item was cancelled",
    "Return Requested": "We received your return request",
    "Departed For Returning": "Your return is on its way back to us",
    "Returned": "We received your returned item",
    "Return Cancelled": "Your return request was cancelled",
    "Refunded": "Your refund has been processed",
}


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        self.settings = get_settings()
        resend.api_key = self.settings.resend_api_key
        self.from_email = self.settings.email_from_address
        self.frontend_url = self.settings.frontend_url

    async def send_status_update_email(
        self,
        to_email: str,
        customer_name: str | None,
        order_reference: str,
        product_name: str,
        quantity: int,
        status: str,
        note: str | None = None,
    ) -> dict[str, Any]:
        """Send an order item status update email.

        Args:
            to_email: Recipient email address.
            customer_name: Customer's display name.
            order_reference: Human-readable order id.
            product_name: Name of the product that changed status.
            quantity: Units affected.
            status: New item status.
            note: Optional note from the ledger entry.

        Returns:
            dict: Resend API response with email ID, or the failure reason.
        """
        orders_url = f"{self.frontend_url}/orders/{order_reference}"
        headline = STATUS_HEADLINES.get(status, f"Order update: {status}")
        greeting = f"Hi {customer_name}," if customer_name else "Hi,"
        note_html = (
            f'<p style="font-size: 14px; color: #6b7280; margin-bottom: 25px;">{note}</p>'
            if note
            else ""
        )

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{headline}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #111827; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{headline}</h1>
    </div>

    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px; margin-bottom: 20px;">{greeting}</p>

        <p style="font-size: 16px; margin-bottom: 20px;">
            <strong>{quantity} x {product_name}</strong> from order <strong>{order_reference}</strong>
            is now <strong>{status}</strong>.
        </p>

        {note_html}

        <div style="text-align: center; margin: 30px 0;">
            <a href="{orders_url}" style="background: #111827; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600; font-size: 16px; display: inline-block;">
                View Order
            </a>
        </div>
    </div>
</body>
</html>
"""

        text_content = f"""
{headline}

{greeting}

{quantity} x {product_name} from order {order_reference} is now {status}.
{note or ""}

View your order: {orders_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"{headline} ({order_reference})",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Status email sent to %s, id: %s", to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send status email to %s: %s", to_email, str(e))
            return {"success": False, "error": str(e)}

    async def notify_transitions(
        self,
        order: dict[str, Any],
        results: Iterable[TransitionResult],
    ) -> int:
        """Email the customer about each committed transition.

        Runs as a background task after the response is sent; never raises.

        Args:
            order: Committed order row.
            results: Transitions applied to the order.

        Returns:
            int: Number of emails sent.
        """
        to_email = order.get("customer_email")
        if not self.settings.email_enabled or not to_email:
            return 0

        sent = 0
        for result in results:
            try:
                item = find_item(order, result.transitioned_item_id)
            except ItemNotFoundError:
                continue
            response = await self.send_status_update_email(
                to_email=to_email,
                customer_name=order.get("customer_name"),
                order_reference=str(order.get("order_id")),
                product_name=(item.get("product") or {}).get("name") or "Item",
                quantity=result.quantity,
                status=result.to_status.value,
                note=result.entry.get("note"),
            )
            if response.get("success"):
                sent += 1
        return sent
