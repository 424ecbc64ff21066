"""Contract tests for /api/bookings.

Test categories:
- POST /bookings: camelCase and snake_case bodies, validation errors
- GET /bookings/{id}: party access, escrow state, 403/404
"""

from fastapi.testclient import TestClient

from factories import ADMIN_ID, CUSTOMER_ID, PROVIDER_ID, auth_headers, paid_booking


class TestCreateBooking:
    def test_camel_case_body(self, client: TestClient) -> None:
        response = client.post(
            "/api/bookings",
            json={
                "providerId": PROVIDER_ID,
                "totalAmount": 10000,
                "durationHours": 2,
                "scheduledDate": "2026-11-02",
                "scheduledTime": "10:00",
            },
            headers=auth_headers(CUSTOMER_ID),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        booking = data["booking"]
        assert booking["customer_id"] == CUSTOMER_ID
        assert booking["provider_id"] == PROVIDER_ID
        assert booking["status"] == "pending_payment"
        assert booking["payment_status"] == "pending"
        assert booking["total_amount"] == 10000
        assert data["escrow"] == {"kind": "awaiting_payment", "reference": None}

    def test_snake_case_body(self, client: TestClient) -> None:
        response = client.post(
            "/api/bookings",
            json={
                "provider_id": PROVIDER_ID,
                "total_amount": "7500.50",
                "scheduled_date": "2026-11-03",
                "scheduled_time": "14:00",
            },
            headers=auth_headers(CUSTOMER_ID),
        )

        assert response.status_code == 201
        assert response.json()["booking"]["total_amount"] == 7500.5

    def test_non_positive_amount_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/bookings",
            json={
                "providerId": PROVIDER_ID,
                "totalAmount": 0,
                "scheduledDate": "2026-11-02",
                "scheduledTime": "10:00",
            },
            headers=auth_headers(CUSTOMER_ID),
        )

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "ERR_VALIDATION"
        assert data["details"]["errors"]

    def test_sub_minor_unit_amount_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/bookings",
            json={
                "providerId": PROVIDER_ID,
                "totalAmount": 100.005,
                "scheduledDate": "2026-11-02",
                "scheduledTime": "10:00",
            },
            headers=auth_headers(CUSTOMER_ID),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_VALIDATION"

    def test_cent_amount_kept(self, client: TestClient) -> None:
        response = client.post(
            "/api/bookings",
            json={
                "providerId": PROVIDER_ID,
                "totalAmount": 99.99,
                "scheduledDate": "2026-11-02",
                "scheduledTime": "10:00",
            },
            headers=auth_headers(CUSTOMER_ID),
        )

        assert response.status_code == 201
        assert response.json()["booking"]["total_amount"] == 99.99

    def test_requires_principal(self, client: TestClient) -> None:
        response = client.post("/api/bookings", json={})

        assert response.status_code == 401


class TestGetBooking:
    def test_customer_reads_escrow_state(self, client: TestClient, store) -> None:
        store(paid_booking(customer_completed=True))

        response = client.get("/api/bookings/bk-001", headers=auth_headers(CUSTOMER_ID))

        assert response.status_code == 200
        assert response.json()["escrow"] == {
            "kind": "awaiting_completion",
            "customer_done": True,
            "provider_done": False,
        }

    def test_provider_and_admin_can_read(self, client: TestClient, store) -> None:
        store(paid_booking())

        assert client.get("/api/bookings/bk-001", headers=auth_headers(PROVIDER_ID)).status_code == 200
        assert (
            client.get("/api/bookings/bk-001", headers=auth_headers(ADMIN_ID, "admin")).status_code
            == 200
        )

    def test_stranger_forbidden(self, client: TestClient, store) -> None:
        store(paid_booking())

        response = client.get("/api/bookings/bk-001", headers=auth_headers("cust-eve"))

        assert response.status_code == 403
        assert response.json()["error_code"] == "ERR_AUTH_002"

    def test_missing_booking(self, client: TestClient) -> None:
        response = client.get("/api/bookings/bk-nope", headers=auth_headers(CUSTOMER_ID))

        assert response.status_code == 404
        assert response.json()["error_code"] == "ERR_404_BOOKING"
