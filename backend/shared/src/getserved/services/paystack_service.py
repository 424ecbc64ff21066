"""Paystack gateway over the Paystack REST API.

Amounts are sent in the currency's minor unit (kobo for NGN). Retries are
bounded: reads retry on any transport error, writes only when the request
never reached Paystack (connection refused or connect timeout).
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any

import httpx

from getserved.models.enums import GatewayProvider
from getserved.models.money import from_minor_units, to_minor_units
from getserved.models.payment import Checkout, GatewayRefund, GatewayTransaction

from .gateway import GatewayError, PaymentGateway

logger = logging.getLogger(__name__)

PAYSTACK_BASE_URL = "https://api.paystack.co"


class PaystackGateway(PaymentGateway):
    """Paystack hosted checkout.

    Usage:
        gateway = PaystackGateway(secret_key)
        checkout = gateway.initialize(
            reference="BK_bk-123_1767225600000",
            booking_id="bk-123",
            amount=Decimal("10000"),
            currency="NGN",
            email="ada@example.com",
        )
    """

    provider = GatewayProvider.PAYSTACK
    MAX_ATTEMPTS = 3
    TIMEOUT_SECONDS = 15.0

    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = PAYSTACK_BASE_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
            timeout=self.TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        idempotent: bool,
    ) -> dict[str, Any]:
        """Send a request and unwrap Paystack's ``{status, message, data}`` envelope."""
        last_error: Exception | None = None
        response: httpx.Response | None = None

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                response = self._client.request(method, path, json=json)
                break
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last_error = e
            except httpx.TransportError as e:
                if not idempotent:
                    raise GatewayError(f"Paystack request failed: {e}") from e
                last_error = e
            logger.warning(
                "Paystack %s %s attempt %d/%d failed: %s",
                method,
                path,
                attempt,
                self.MAX_ATTEMPTS,
                last_error,
            )

        if response is None:
            raise GatewayError(f"Paystack unreachable: {last_error}") from last_error

        if response.status_code == 429:
            raise GatewayError(
                "Paystack rate limit exceeded", status_code=429, rate_limited=True
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(
                f"Paystack returned a non-JSON response ({response.status_code})",
                status_code=response.status_code,
            ) from e

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.error("Paystack %s %s failed: %s", method, path, message)
            raise GatewayError(
                f"Paystack error: {message}", status_code=response.status_code
            )

        data: dict[str, Any] = body.get("data") or {}
        return data

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
        payload: dict[str, Any] = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "reference": reference,
            "metadata": {
                "booking_id": booking_id,
                "custom_fields": [
                    {
                        "display_name": "Booking ID",
                        "variable_name": "booking_id",
                        "value": booking_id,
                    }
                ],
            },
        }
        if callback_url:
            payload["callback_url"] = callback_url

        logger.info("Initializing Paystack transaction %s for booking %s", reference, booking_id)
        data = self._request("POST", "/transaction/initialize", json=payload, idempotent=False)

        return Checkout(
            reference=data.get("reference", reference),
            access_code=data.get("access_code"),
            authorization_url=data.get("authorization_url"),
        )

    def verify(self, reference: str, access_code: str | None = None) -> GatewayTransaction:
        data = self._request("GET", f"/transaction/verify/{reference}", idempotent=True)

        metadata = data.get("metadata")
        booking_id = metadata.get("booking_id") if isinstance(metadata, dict) else None
        amount = data.get("amount")

        return GatewayTransaction(
            reference=data.get("reference", reference),
            status=str(data.get("status", "unknown")),
            amount=from_minor_units(int(amount)) if amount is not None else None,
            currency=data.get("currency"),
            booking_id=booking_id,
        )

    def refund(
        self,
        *,
        reference: str,
        amount: Decimal,
        reason: str,
        access_code: str | None = None,
    ) -> GatewayRefund:
        payload = {
            "transaction": reference,
            "amount": to_minor_units(amount),
            "merchant_note": reason,
        }
        logger.info("Creating Paystack refund of %s for %s", amount, reference)
        data = self._request("POST", "/refund", json=payload, idempotent=False)

        refunded = data.get("amount")
        return GatewayRefund(
            refund_id=str(data.get("id", "")),
            status=str(data.get("status", "pending")),
            amount=from_minor_units(int(refunded)) if refunded is not None else amount,
        )

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        """Paystack signs the raw body with HMAC-SHA512 keyed by the secret key."""
        if not signature:
            return False
        expected = hmac.new(
            self._secret_key.encode("utf-8"), payload, hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(expected, signature)
