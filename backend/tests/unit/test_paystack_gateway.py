"""Unit tests for PaystackGateway.

Paystack is replaced by an httpx.MockTransport; no network calls are made.

Test categories:
- initialize(): minor units, metadata, write retries
- verify(): amount and metadata parsing, read retries
- refund()
- Error mapping: 429, envelope failures, non-JSON bodies
- Webhook signature (HMAC-SHA512)
"""

import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Callable

import httpx
import pytest

from getserved.services.gateway import GatewayError
from getserved.services.paystack_service import PaystackGateway


TEST_SECRET_KEY = "sk_test_paystack"
REFERENCE = "BK_bk-001_1767225600000"


def _gateway(handler: Callable[[httpx.Request], httpx.Response]) -> PaystackGateway:
    return PaystackGateway(TEST_SECRET_KEY, transport=httpx.MockTransport(handler))


def _ok(data: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"status": True, "message": "ok", "data": data})


class TestInitialize:
    def test_sends_minor_units_and_booking_metadata(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok(
                {
                    "reference": REFERENCE,
                    "access_code": "acc_123",
                    "authorization_url": "https://checkout.paystack.com/acc_123",
                }
            )

        checkout = _gateway(handler).initialize(
            reference=REFERENCE,
            booking_id="bk-001",
            amount=Decimal("10000.50"),
            currency="NGN",
            email="ada@example.com",
            callback_url="https://getserved.ng/dashboard",
        )

        assert checkout.access_code == "acc_123"
        assert checkout.authorization_url == "https://checkout.paystack.com/acc_123"
        request = seen[0]
        assert request.url.path == "/transaction/initialize"
        assert request.headers["Authorization"] == f"Bearer {TEST_SECRET_KEY}"
        payload = json.loads(request.content)
        assert payload["amount"] == 1000050
        assert payload["reference"] == REFERENCE
        assert payload["metadata"]["booking_id"] == "bk-001"
        assert payload["callback_url"] == "https://getserved.ng/dashboard"

    def test_write_not_retried_after_read_timeout(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GatewayError):
            _gateway(handler).initialize(
                reference=REFERENCE,
                booking_id="bk-001",
                amount=Decimal("10000"),
                currency="NGN",
                email="ada@example.com",
            )

        assert len(calls) == 1

    def test_write_retried_when_connection_refused(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) < 2:
                raise httpx.ConnectError("refused", request=request)
            return _ok({"reference": REFERENCE, "access_code": "acc_2"})

        checkout = _gateway(handler).initialize(
            reference=REFERENCE,
            booking_id="bk-001",
            amount=Decimal("10000"),
            currency="NGN",
            email="ada@example.com",
        )

        assert checkout.access_code == "acc_2"
        assert len(calls) == 2


class TestVerify:
    def test_parses_amount_and_metadata(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/transaction/verify/{REFERENCE}"
            return _ok(
                {
                    "reference": REFERENCE,
                    "status": "success",
                    "amount": 1000000,
                    "currency": "NGN",
                    "metadata": {"booking_id": "bk-001"},
                }
            )

        transaction = _gateway(handler).verify(REFERENCE)

        assert transaction.succeeded
        assert transaction.amount == Decimal("10000.00")
        assert transaction.booking_id == "bk-001"

    def test_missing_metadata_tolerated(self) -> None:
        gateway = _gateway(lambda request: _ok({"reference": REFERENCE, "status": "abandoned", "metadata": ""}))

        transaction = gateway.verify(REFERENCE)

        assert not transaction.succeeded
        assert transaction.booking_id is None
        assert transaction.amount is None

    def test_read_retried_then_gives_up(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GatewayError, match="unreachable"):
            _gateway(handler).verify(REFERENCE)

        assert len(calls) == PaystackGateway.MAX_ATTEMPTS


class TestRefund:
    def test_refund_in_minor_units(self) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _ok({"id": 991, "status": "pending", "amount": 500000})

        receipt = _gateway(handler).refund(
            reference=REFERENCE, amount=Decimal("5000"), reason="Partial no-show"
        )

        assert seen[0] == {
            "transaction": REFERENCE,
            "amount": 500000,
            "merchant_note": "Partial no-show",
        }
        assert receipt.refund_id == "991"
        assert receipt.amount == Decimal("5000.00")


class TestErrors:
    def test_rate_limit_flagged(self) -> None:
        gateway = _gateway(lambda request: httpx.Response(429, json={"status": False}))

        with pytest.raises(GatewayError) as exc_info:
            gateway.verify(REFERENCE)

        assert exc_info.value.rate_limited is True
        assert exc_info.value.status_code == 429

    def test_false_envelope_status_is_error(self) -> None:
        gateway = _gateway(
            lambda request: httpx.Response(
                200, json={"status": False, "message": "Transaction reference not found"}
            )
        )

        with pytest.raises(GatewayError, match="Transaction reference not found") as exc_info:
            gateway.verify(REFERENCE)

        assert exc_info.value.rate_limited is False

    def test_non_json_body(self) -> None:
        gateway = _gateway(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))

        with pytest.raises(GatewayError, match="non-JSON") as exc_info:
            gateway.verify(REFERENCE)

        assert exc_info.value.status_code == 502


class TestWebhookSignature:
    def test_valid_signature(self) -> None:
        gateway = _gateway(lambda request: _ok({}))
        body = b'{"event":"charge.success"}'
        signature = hmac.new(TEST_SECRET_KEY.encode(), body, hashlib.sha512).hexdigest()

        assert gateway.verify_webhook_signature(body, signature) is True

    def test_tampered_body_rejected(self) -> None:
        gateway = _gateway(lambda request: _ok({}))
        signature = hmac.new(TEST_SECRET_KEY.encode(), b"original", hashlib.sha512).hexdigest()

        assert gateway.verify_webhook_signature(b"tampered", signature) is False

    def test_missing_signature_rejected(self) -> None:
        gateway = _gateway(lambda request: _ok({}))

        assert gateway.verify_webhook_signature(b"{}", None) is False
