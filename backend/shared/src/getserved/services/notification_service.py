"""Notification dispatcher for escrow events.

Sends transactional emails through SES after a transition has been
committed. Delivery is best effort: a missing sender address, a missing
recipient profile or an SES failure is logged and never reaches the caller.
"""

import html
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import boto3

from getserved.config import Settings, get_settings
from getserved.models.booking import Booking
from getserved.models.events import EscrowEvent, PaymentConfirmed, PaymentReleased

from .dynamodb import DynamoDBService
from .ledger import BookingLedger

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$", "EUR": "€", "GBP": "£"}

EMAIL_SUBJECTS = {
    "payment_confirmed": "Payment Confirmed - GetServed",
    "payment_released": "Payment Released - GetServed",
    "refund_processed": "Refund Processed - GetServed",
}


def format_amount(amount: Decimal, currency: str) -> str:
    """Format money for display, e.g. ₦10,000 or ₦10,000.50."""
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    if amount == amount.to_integral_value():
        return f"{symbol}{int(amount):,}"
    return f"{symbol}{amount:,.2f}"


def _wrap(heading: str, body: str) -> str:
    year = datetime.now(timezone.utc).year
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #14b8a6, #0d9488); padding: 20px; text-align: center;">
        <h1 style="color: white; margin: 0;">GetServed</h1>
      </div>
      <div style="padding: 30px; background: #f8fafc;">
        <h2 style="color: #0f172a;">{heading}</h2>
        {body}
      </div>
      <div style="padding: 20px; text-align: center; color: #94a3b8; font-size: 12px;">
        <p>&copy; {year} GetServed. All rights reserved.</p>
      </div>
    </div>
    """


def render_email(
    event: EscrowEvent,
    *,
    recipient_name: str | None,
    counterpart_name: str | None,
    booking: Booking | None,
) -> tuple[str, str, str]:
    """Render (subject, html, text) for an event."""
    subject = EMAIL_SUBJECTS[event.kind]
    greeting = html.escape(recipient_name or "there")
    counterpart = html.escape(counterpart_name or "your GetServed partner")
    when = ""
    if booking is not None:
        when = f"{booking.scheduled_date.isoformat()} {booking.scheduled_time}"

    if isinstance(event, PaymentConfirmed):
        amount = format_amount(event.amount, event.currency)
        body = f"""
        <p style="color: #475569;">Hi {greeting},</p>
        <p style="color: #475569;">Your payment of <strong>{amount}</strong> has been confirmed and is being held securely until your service is completed.</p>
        <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <p style="margin: 5px 0;"><strong>Booking:</strong> {html.escape(event.booking_id)}</p>
          <p style="margin: 5px 0;"><strong>Provider:</strong> {counterpart}</p>
          <p style="margin: 5px 0;"><strong>Scheduled:</strong> {html.escape(when)}</p>
        </div>
        <p style="color: #475569;">Your provider will be notified and will arrive at the scheduled time.</p>
        """
        text = (
            f"Hi {recipient_name or 'there'},\n\n"
            f"Your payment of {amount} for booking {event.booking_id} has been confirmed "
            "and is being held securely until your service is completed.\n"
        )
        return subject, _wrap("Payment Confirmed!", body), text

    if isinstance(event, PaymentReleased):
        payout = format_amount(event.provider_payout, event.currency)
        fee = format_amount(event.platform_fee, event.currency)
        body = f"""
        <p style="color: #475569;">Hi {greeting},</p>
        <p style="color: #475569;">Great news! Your payment of <strong>{payout}</strong> has been released to your account.</p>
        <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <p style="margin: 5px 0;"><strong>Booking:</strong> {html.escape(event.booking_id)}</p>
          <p style="margin: 5px 0;"><strong>Customer:</strong> {counterpart}</p>
          <p style="margin: 5px 0;"><strong>Payout:</strong> {payout}</p>
          <p style="margin: 5px 0;"><strong>Platform fee:</strong> {fee}</p>
        </div>
        <p style="color: #475569;">Thank you for providing excellent service!</p>
        """
        text = (
            f"Hi {recipient_name or 'there'},\n\n"
            f"Your payment of {payout} for booking {event.booking_id} has been released "
            f"(platform fee {fee}).\n"
        )
        return subject, _wrap("Payment Released!", body), text

    refund = format_amount(event.refund_amount, event.currency)
    original = format_amount(event.original_amount, event.currency)
    body = f"""
    <p style="color: #475569;">Hi {greeting},</p>
    <p style="color: #475569;">Your refund of <strong>{refund}</strong> has been processed.</p>
    <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0;">
      <p style="margin: 5px 0;"><strong>Original Amount:</strong> {original}</p>
      <p style="margin: 5px 0;"><strong>Refund Amount:</strong> {refund}</p>
      <p style="margin: 5px 0;"><strong>Reason:</strong> {html.escape(event.reason)}</p>
    </div>
    <p style="color: #475569;">The refund will be credited to your original payment method within 5-10 business days.</p>
    """
    text = (
        f"Hi {recipient_name or 'there'},\n\n"
        f"Your refund of {refund} (of {original}) for booking {event.booking_id} "
        "has been processed.\n"
    )
    return subject, _wrap("Refund Processed", body), text


class NotificationDispatcher:
    """Consumes escrow events and emails the affected party."""

    def __init__(
        self,
        db: DynamoDBService,
        settings: Settings | None = None,
        ses_client: Any | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self._ses = ses_client

    def _get_ses(self) -> Any:
        if self._ses is None:
            self._ses = boto3.client("ses", region_name=self.settings.ses_region)
        return self._ses

    @staticmethod
    def _recipient_id(event: EscrowEvent) -> tuple[str, str]:
        """(recipient, counterpart) principal ids for an event."""
        if isinstance(event, PaymentReleased):
            return event.provider_id, event.customer_id
        return event.customer_id, event.provider_id

    def dispatch(self, event: EscrowEvent) -> bool:
        """Send the email for one event.

        Returns:
            True if SES accepted the message, False otherwise
        """
        try:
            return self._send(event)
        except Exception as e:
            logger.error(
                "Failed to send %s notification for booking %s: %s",
                event.kind,
                event.booking_id,
                e,
            )
            return False

    def dispatch_all(self, events: list[EscrowEvent]) -> None:
        for event in events:
            self.dispatch(event)

    def _send(self, event: EscrowEvent) -> bool:
        sender = self.settings.ses_from_email
        if not sender:
            logger.error("SES_FROM_EMAIL not set; skipping %s notification", event.kind)
            return False

        recipient_id, counterpart_id = self._recipient_id(event)
        profile = self.db.get_profile(recipient_id)
        if not profile or not profile.get("email"):
            logger.warning(
                "No email on profile %s; skipping %s notification", recipient_id, event.kind
            )
            return False

        counterpart = self.db.get_profile(counterpart_id) or {}
        booking = BookingLedger(self.db).get(event.booking_id)

        subject, html_body, text_body = render_email(
            event,
            recipient_name=profile.get("full_name"),
            counterpart_name=counterpart.get("full_name"),
            booking=booking,
        )

        self._get_ses().send_email(
            Source=sender,
            Destination={"ToAddresses": [profile["email"]]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": text_body, "Charset": "UTF-8"},
                    "Html": {"Data": html_body, "Charset": "UTF-8"},
                },
            },
        )
        logger.info("Sent %s email for booking %s", event.kind, event.booking_id)
        return True
