"""Tests for the FastAPI application shell.

Covers the health check, correlation ids, principal parsing and the
ErrorCode-to-HTTP mapping. Route behaviour is covered by the contract tests.
"""

import pytest
from fastapi.testclient import TestClient

from factories import CUSTOMER_ID, PROVIDER_ID, build_booking
from getserved.models.errors import ErrorCode, EscrowError
from getserved_api.exceptions import get_http_status_for_error
from getserved_api.middleware.correlation import CORRELATION_ID_HEADER
from getserved_api.security import (
    Principal,
    ensure_party,
    ensure_self_or_admin,
    get_principal,
    require_admin,
)


@pytest.fixture
def client() -> TestClient:
    from getserved_api.main import app

    return TestClient(app)


class TestHealthCheck:
    def test_ping_returns_ok(self, client: TestClient) -> None:
        response = client.get("/api/ping")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "getserved-api"
        assert "timestamp" in data

    def test_correlation_id_echoed(self, client: TestClient) -> None:
        response = client.get("/api/ping", headers={CORRELATION_ID_HEADER: "corr-123"})

        assert response.headers[CORRELATION_ID_HEADER] == "corr-123"

    def test_correlation_id_generated(self, client: TestClient) -> None:
        response = client.get("/api/ping")

        assert response.headers[CORRELATION_ID_HEADER]


class TestRoutesRegistered:
    def test_escrow_routes_mounted_under_api(self) -> None:
        from getserved_api.main import app

        route_paths = {route.path for route in app.routes}

        assert {
            "/api/bookings",
            "/api/bookings/{booking_id}",
            "/api/payments/initiate",
            "/api/payments/verify",
            "/api/payments/mark-complete",
            "/api/payments/release",
            "/api/payments/refund",
            "/api/webhooks/paystack",
            "/api/providers/{provider_id}/verification",
            "/api/providers/{provider_id}/earnings",
            "/api/customers/{customer_id}/payments",
        } <= route_paths


class TestPrincipal:
    def test_missing_sub_is_auth_required(self) -> None:
        with pytest.raises(EscrowError) as exc_info:
            get_principal(x_user_sub=None, x_user_roles=None)

        assert exc_info.value.code == ErrorCode.AUTH_REQUIRED

    def test_roles_parsed(self) -> None:
        principal = get_principal(x_user_sub=" admin-1 ", x_user_roles="Customer, ADMIN,,")

        assert principal.sub == "admin-1"
        assert principal.roles == frozenset({"customer", "admin"})
        assert principal.is_admin

    def test_require_admin(self) -> None:
        with pytest.raises(EscrowError) as exc_info:
            require_admin(Principal(sub=CUSTOMER_ID))

        assert exc_info.value.code == ErrorCode.FORBIDDEN

    def test_party_check(self) -> None:
        booking = build_booking()

        ensure_party(Principal(sub=CUSTOMER_ID), booking)
        ensure_party(Principal(sub=PROVIDER_ID), booking)
        ensure_party(Principal(sub="admin-1", roles=frozenset({"admin"})), booking)
        with pytest.raises(EscrowError):
            ensure_party(Principal(sub="someone-else"), booking)
        with pytest.raises(EscrowError):
            ensure_party(Principal(sub="admin-1", roles=frozenset({"admin"})), booking, allow_admin=False)

    def test_self_or_admin(self) -> None:
        ensure_self_or_admin(Principal(sub=PROVIDER_ID), PROVIDER_ID)
        with pytest.raises(EscrowError):
            ensure_self_or_admin(Principal(sub=CUSTOMER_ID), PROVIDER_ID)


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.AMOUNT_MISMATCH, 400),
            (ErrorCode.COMPLETION_OUTSTANDING, 400),
            (ErrorCode.AUTH_REQUIRED, 401),
            (ErrorCode.INVALID_WEBHOOK_SIGNATURE, 401),
            (ErrorCode.ORACLE_CREDITS_EXHAUSTED, 402),
            (ErrorCode.FORBIDDEN, 403),
            (ErrorCode.BOOKING_NOT_FOUND, 404),
            (ErrorCode.CONCURRENT_UPDATE, 409),
            (ErrorCode.GATEWAY_RATE_LIMITED, 429),
            (ErrorCode.GATEWAY_ERROR, 502),
            (ErrorCode.ORACLE_NOT_CONFIGURED, 503),
        ],
    )
    def test_status_for_code(self, code: ErrorCode, status: int) -> None:
        assert get_http_status_for_error(code) == status

    def test_unauthenticated_request_body(self, client: TestClient) -> None:
        response = client.get("/api/bookings/bk-001")

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Authentication required",
            "error_code": "ERR_AUTH_001",
            "details": None,
        }
