"""Payment gateway interface and gateway selection.

The escrow core treats the gateway as a request/response oracle keyed by the
payment reference. Concrete gateways live in ``paystack_service`` and
``stripe_service``; ``DemoGateway`` is used when no secret key is available.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from functools import lru_cache

from getserved.config import Settings, get_settings
from getserved.models.enums import GatewayProvider
from getserved.models.payment import Checkout, GatewayRefund, GatewayTransaction

from .ssm_service import resolve_secret

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when a gateway call fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        rate_limited: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.rate_limited = rate_limited


class PaymentGateway(ABC):
    """Hosted-checkout payment gateway."""

    provider: GatewayProvider

    @abstractmethod
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
        """Create a hosted checkout for the reference."""

    @abstractmethod
    def verify(self, reference: str, access_code: str | None = None) -> GatewayTransaction:
        """Ask the gateway for the current status of a reference."""

    @abstractmethod
    def refund(
        self,
        *,
        reference: str,
        amount: Decimal,
        reason: str,
        access_code: str | None = None,
    ) -> GatewayRefund:
        """Refund part or all of the payment made under a reference."""

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        """Check a webhook signature. Gateways without webhooks reject everything."""
        return False


class DemoGateway(PaymentGateway):
    """Simulated gateway for local development ("demo mode").

    Every checkout succeeds; no money moves.
    """

    provider = GatewayProvider.DEMO

    def __init__(self, app_base_url: str = "http://localhost:3000") -> None:
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
        logger.info("Demo checkout for booking %s, reference %s", booking_id, reference)
        return Checkout(
            reference=reference,
            access_code=f"demo_{uuid.uuid4().hex[:12]}",
            authorization_url=callback_url
            or f"{self.app_base_url}/dashboard?payment=success&reference={reference}",
        )

    def verify(self, reference: str, access_code: str | None = None) -> GatewayTransaction:
        return GatewayTransaction(reference=reference, status="success")

    def refund(
        self,
        *,
        reference: str,
        amount: Decimal,
        reason: str,
        access_code: str | None = None,
    ) -> GatewayRefund:
        logger.info("Demo refund of %s for reference %s", amount, reference)
        return GatewayRefund(refund_id=f"demo_refund_{reference}", status="processed", amount=amount)

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        return False


def build_gateway(settings: Settings) -> PaymentGateway:
    """Build the configured gateway, falling back to demo mode without a key."""
    if settings.payment_gateway == GatewayProvider.STRIPE:
        secret = resolve_secret("STRIPE_SECRET_KEY", settings.ssm_path("stripe/secret_key"))
        if secret:
            from .stripe_service import StripeGateway

            return StripeGateway(secret, app_base_url=settings.app_base_url)

    elif settings.payment_gateway == GatewayProvider.PAYSTACK:
        secret = resolve_secret("PAYSTACK_SECRET_KEY", settings.ssm_path("paystack/secret_key"))
        if secret:
            from .paystack_service import PaystackGateway

            return PaystackGateway(secret)

    logger.warning(
        "No secret key for payment gateway %s; running in demo mode",
        settings.payment_gateway.value,
    )
    return DemoGateway(app_base_url=settings.app_base_url)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Get the shared gateway for this process."""
    return build_gateway(get_settings())
