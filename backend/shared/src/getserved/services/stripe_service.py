"""Stripe gateway using Checkout Sessions.

Provides integration with Stripe using the v8+ StripeClient pattern. The
payment reference is the session's client_reference_id and anchors both
idempotency keys (``checkout_{reference}``, ``refund_{reference}``).
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import stripe
from stripe import StripeClient

from getserved.models.enums import GatewayProvider
from getserved.models.money import from_minor_units, to_minor_units
from getserved.models.payment import Checkout, GatewayRefund, GatewayTransaction

from .gateway import GatewayError, PaymentGateway

logger = logging.getLogger(__name__)

CHECKOUT_TTL_SECONDS = 1800


def _to_gateway_error(action: str, e: stripe.StripeError) -> GatewayError:
    error_code = getattr(e, "code", None)
    logger.error("Stripe %s failed: %s (code: %s)", action, str(e), error_code)
    return GatewayError(
        f"Failed to {action}: {e}",
        status_code=getattr(e, "http_status", None),
        rate_limited=isinstance(e, stripe.RateLimitError),
    )


class StripeGateway(PaymentGateway):
    """Stripe hosted checkout.

    Usage:
        gateway = StripeGateway(secret_key, app_base_url="https://getserved.ng")
        checkout = gateway.initialize(
            reference="BK_bk-123_1767225600000",
            booking_id="bk-123",
            amount=Decimal("10000"),
            currency="NGN",
            email="ada@example.com",
        )
    """

    provider = GatewayProvider.STRIPE

    def __init__(
        self,
        secret_key: str,
        *,
        app_base_url: str = "http://localhost:3000",
        client: StripeClient | None = None,
    ) -> None:
        self._client = client or StripeClient(secret_key, max_network_retries=2)
        self.app_base_url = app_base_url.rstrip("/")

    def initialize(
        self,
        *,
        reference: str,
        booking_id: str,
        amount: Decimal,
        currency: str,
        email: str,
        callback_url: str | None = None,
    ) -> Checkout:
        success_url = callback_url or (
            f"{self.app_base_url}/dashboard?payment=success&reference={reference}"
        )
        cancel_url = f"{self.app_base_url}/dashboard?payment=cancelled&reference={reference}"

        try:
            logger.info(
                "Creating Stripe checkout session for booking %s, reference %s",
                booking_id,
                reference,
            )
            session = self._client.checkout.sessions.create(
                params={
                    "mode": "payment",
                    "payment_method_types": ["card"],
                    "client_reference_id": reference,
                    "line_items": [
                        {
                            "price_data": {
                                "currency": currency.lower(),
                                "unit_amount": to_minor_units(amount),
                                "product_data": {"name": f"GetServed booking {booking_id}"},
                            },
                            "quantity": 1,
                        }
                    ],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": {"booking_id": booking_id, "reference": reference},
                    "customer_email": email,
                    "expires_at": int(datetime.now(timezone.utc).timestamp())
                    + CHECKOUT_TTL_SECONDS,
                },
                options={"idempotency_key": f"checkout_{reference}"},
            )
        except stripe.StripeError as e:
            raise _to_gateway_error("create checkout session", e) from e

        logger.info("Checkout session created: %s for reference %s", session.id, reference)
        return Checkout(reference=reference, access_code=session.id, authorization_url=session.url)

    def _retrieve_session(self, access_code: str | None) -> Any:
        if not access_code:
            raise GatewayError("Stripe verification requires the checkout session id")
        try:
            return self._client.checkout.sessions.retrieve(access_code)
        except stripe.StripeError as e:
            raise _to_gateway_error("retrieve checkout session", e) from e

    def verify(self, reference: str, access_code: str | None = None) -> GatewayTransaction:
        session = self._retrieve_session(access_code)

        if session.client_reference_id != reference:
            raise GatewayError(
                f"Checkout session {session.id} does not belong to reference {reference}"
            )

        if session.payment_status == "paid":
            status = "success"
        elif session.status == "expired":
            status = "abandoned"
        else:
            status = "pending"

        metadata = dict(session.metadata or {})
        amount_total = session.amount_total
        return GatewayTransaction(
            reference=reference,
            status=status,
            amount=from_minor_units(amount_total) if amount_total is not None else None,
            currency=(session.currency or "").upper() or None,
            booking_id=metadata.get("booking_id"),
        )

    def refund(
        self,
        *,
        reference: str,
        amount: Decimal,
        reason: str,
        access_code: str | None = None,
    ) -> GatewayRefund:
        session = self._retrieve_session(access_code)
        payment_intent = session.payment_intent
        if not payment_intent:
            raise GatewayError(f"No payment intent on session for reference {reference}")
        payment_intent_id = payment_intent if isinstance(payment_intent, str) else payment_intent.id

        try:
            logger.info("Creating refund for PaymentIntent %s, amount %s", payment_intent_id, amount)
            refund = self._client.refunds.create(
                params={
                    "payment_intent": payment_intent_id,
                    "amount": to_minor_units(amount),
                    "metadata": {"reason": reason, "reference": reference},
                },
                options={"idempotency_key": f"refund_{reference}"},
            )
        except stripe.StripeError as e:
            raise _to_gateway_error("create refund", e) from e

        logger.info("Refund created: %s for PaymentIntent %s", refund.id, payment_intent_id)
        return GatewayRefund(
            refund_id=refund.id,
            status=refund.status or "pending",
            amount=from_minor_units(refund.amount),
        )
