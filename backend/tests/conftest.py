"""Pytest configuration and fixtures for GetServed backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (tables created from TABLE_SCHEMAS)
- A fixed clock and an EscrowService wired to the DemoGateway
- Booking persistence helper
- A TestClient whose service providers are overridden, so no SSM, gateway
  or SES call leaves the process
"""

import os
from datetime import datetime
from typing import Callable, Generator
from unittest.mock import MagicMock

import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ["DYNAMODB_TABLE_PREFIX"] = "test-getserved"
os.environ["ENVIRONMENT"] = "test"

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

# Tests must never pick up real gateway or oracle credentials
for _secret in ("PAYSTACK_SECRET_KEY", "STRIPE_SECRET_KEY", "FACE_MATCH_API_KEY", "SES_FROM_EMAIL"):
    os.environ.pop(_secret, None)

from fastapi.testclient import TestClient  # noqa: E402

from factories import FIXED_NOW  # noqa: E402
from getserved.config import EscrowPolicy, get_settings  # noqa: E402
from getserved.models.booking import Booking  # noqa: E402
from getserved.models.enums import MatchConfidence  # noqa: E402
from getserved.models.verification import FaceMatchVerdict  # noqa: E402
from getserved.services.dynamodb import DynamoDBService  # noqa: E402
from getserved.services.escrow_service import EscrowService  # noqa: E402
from getserved.services.face_match_service import FaceMatchOracle  # noqa: E402
from getserved.services.gateway import DemoGateway, PaymentGateway  # noqa: E402
from getserved.services.ledger import BookingLedger  # noqa: E402
from getserved.services.notification_service import NotificationDispatcher  # noqa: E402
from getserved.services.verification_service import ProviderVerificationService  # noqa: E402


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws need fresh boto3 clients created inside the mock.
    """
    from getserved_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === DynamoDB Fixtures ===


@pytest.fixture
def dynamodb() -> Generator[DynamoDBService, None, None]:
    """DynamoDBService with every table created inside mock_aws."""
    with mock_aws():
        db = DynamoDBService()
        db.create_tables()
        yield db


@pytest.fixture
def ledger(dynamodb: DynamoDBService) -> BookingLedger:
    return BookingLedger(dynamodb)


@pytest.fixture
def store(ledger: BookingLedger) -> Callable[[Booking], Booking]:
    """Persist a booking row and return it."""
    return ledger.create


# === Escrow Fixtures ===


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def policy() -> EscrowPolicy:
    return EscrowPolicy()


@pytest.fixture
def demo_gateway() -> DemoGateway:
    return DemoGateway(app_base_url="http://localhost:3000")


@pytest.fixture
def escrow(
    ledger: BookingLedger,
    demo_gateway: DemoGateway,
    policy: EscrowPolicy,
    clock: Callable[[], datetime],
) -> EscrowService:
    return EscrowService(ledger, demo_gateway, policy, clock=clock)


@pytest.fixture
def settings_env(monkeypatch: pytest.MonkeyPatch) -> Callable[..., None]:
    """Set environment variables and rebuild cached settings."""

    def _set(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

    return _set


# === API Fixtures ===


@pytest.fixture
def gateway(demo_gateway: DemoGateway) -> PaymentGateway:
    """Gateway used by the app; test modules override this fixture."""
    return demo_gateway


@pytest.fixture
def notifier() -> MagicMock:
    """Stands in for NotificationDispatcher; see factories.dispatched_kinds."""
    return MagicMock(spec=NotificationDispatcher)


@pytest.fixture
def oracle() -> MagicMock:
    mock = MagicMock(spec=FaceMatchOracle)
    mock.compare.return_value = FaceMatchVerdict(
        match=True, confidence=MatchConfidence.HIGH, reason="Same person"
    )
    return mock


@pytest.fixture
def client(
    dynamodb: DynamoDBService,
    gateway: PaymentGateway,
    notifier: MagicMock,
    oracle: MagicMock,
    policy: EscrowPolicy,
    clock: Callable[[], datetime],
) -> Generator[TestClient, None, None]:
    """TestClient for the app with service providers bound to moto and mocks."""
    from getserved_api.dependencies import (
        get_escrow_service,
        get_gateway,
        get_notification_dispatcher,
        get_verification_service,
    )
    from getserved_api.main import app

    escrow_service = EscrowService(BookingLedger(dynamodb), gateway, policy, clock=clock)
    verification = ProviderVerificationService(dynamodb, oracle, clock=clock)

    app.dependency_overrides[get_escrow_service] = lambda: escrow_service
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_dispatcher] = lambda: notifier
    app.dependency_overrides[get_verification_service] = lambda: verification
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
