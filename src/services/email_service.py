"""Email service using Resend for transactional emails."""

import logging
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)

_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1f2937; padding: 24px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{title}</h1>
    </div>
    <div style="background: #f9fafb; padding: 28px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        {body}
        <div style="text-align: center; margin: 28px 0;">
            <a href="{url}" style="background: #2563eb; color: white; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">
                {cta}
            </a>
        </div>
        <p style="font-size: 12px; color: #9ca3af; text-align: center; margin: 0;">
            If the button doesn't work, copy and paste this link:<br>
            <a href="{url}" style="color: #2563eb; word-break: break-all;">{url}</a>
        </p>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending order emails via Resend.

    Delivery is fire-and-forget: every method reports failure in its return
    value instead of raising, so callers never roll back on email problems.
    """

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url

    def order_url(self, order_id: str, token: str | None = None) -> str:
        """Build the buyer-facing order link, with the magic link token for guests."""
        url = f"{self.frontend_url}/orders/{order_id}"
        return f"{url}?token={token}" if token else url

    def _send(self, to_email: str, subject: str, html: str, text: str) -> dict[str, Any]:
        if not self.enabled:
            logger.info("Resend not configured, skipping email '%s' to %s", subject, to_email)
            return {"success": False, "error": "email disabled"}

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })
            logger.info("Email '%s' sent to %s, id: %s", subject, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send email '%s' to %s: %s", subject, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation(
        self,
        to_email: str,
        order_id: str,
        short_code: str,
        vin: str,
        item_count: int,
        magic_token: str | None = None,
    ) -> dict[str, Any]:
        """Send the confirmation for a newly submitted parts request.

        Guests receive their magic link here; it is the only way back to
        the order without an account.
        """
        url = self.order_url(order_id, magic_token)
        body = (
            f"<p>We received your request <strong>#{short_code}</strong> for VIN "
            f"<strong>{vin}</strong> ({item_count} part(s)).</p>"
            "<p>Our team will price every part and let you know when offers are ready.</p>"
        )
        html = _LAYOUT.format(title="Request received", body=body, url=url, cta="View your request")
        text = (
            f"We received your request #{short_code} for VIN {vin} ({item_count} part(s)).\n"
            f"Follow it here: {url}\n"
        )
        return self._send(to_email, f"Order Confirmation #{short_code} - PartsFlow", html, text)

    async def send_offers_ready(
        self,
        to_email: str,
        order_id: str,
        short_code: str,
        magic_token: str | None = None,
    ) -> dict[str, Any]:
        """Tell the buyer that their request has been priced."""
        url = self.order_url(order_id, magic_token)
        body = (
            f"<p>Offers for your request <strong>#{short_code}</strong> are ready.</p>"
            "<p>Pick the parts you want and proceed to checkout.</p>"
        )
        html = _LAYOUT.format(title="Your quotes are ready", body=body, url=url, cta="Review offers")
        text = f"Offers for your request #{short_code} are ready: {url}\n"
        return self._send(to_email, f"Your Quotes Are Ready #{short_code} - PartsFlow", html, text)

    async def send_payment_confirmed(
        self,
        to_email: str,
        order_id: str,
        short_code: str,
        amount: str,
        currency: str,
        magic_token: str | None = None,
    ) -> dict[str, Any]:
        """Confirm a settled payment to the buyer."""
        url = self.order_url(order_id, magic_token)
        body = (
            f"<p>We received your payment of <strong>{amount} {currency.upper()}</strong> "
            f"for order <strong>#{short_code}</strong>.</p>"
            "<p>Your parts are now being prepared for shipment.</p>"
        )
        html = _LAYOUT.format(title="Payment confirmed", body=body, url=url, cta="View order")
        text = f"Payment of {amount} {currency.upper()} for order #{short_code} confirmed: {url}\n"
        return self._send(to_email, f"Payment Confirmed #{short_code} - PartsFlow", html, text)
