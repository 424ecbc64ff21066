"""FastAPI dependency injection providers for shared services.

Services are built lazily and cached with @lru_cache so a warm Lambda
container reuses its boto3 clients and gateway connection.

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── BookingLedger
        │       └── EscrowService (+ PaymentGateway, EscrowPolicy)
        ├── NotificationDispatcher (+ SES)
        └── ProviderVerificationService (+ FaceMatchOracle)

Testing:
    Override a provider with ``app.dependency_overrides`` or call
    reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from getserved.config import get_settings
from getserved.services.dynamodb import get_dynamodb_service, reset_dynamodb_service
from getserved.services.escrow_service import EscrowService
from getserved.services.gateway import PaymentGateway, get_payment_gateway
from getserved.services.ledger import BookingLedger
from getserved.services.notification_service import NotificationDispatcher
from getserved.services.ssm_service import get_ssm_service
from getserved.services.verification_service import (
    ProviderVerificationService,
    get_face_match_oracle,
)


def get_gateway() -> PaymentGateway:
    """Get the process-wide payment gateway (demo mode without a key)."""
    return get_payment_gateway()


@lru_cache
def get_booking_ledger() -> BookingLedger:
    return BookingLedger(get_dynamodb_service())


@lru_cache
def get_escrow_service() -> EscrowService:
    """Get cached EscrowService instance.

    Returns:
        EscrowService wired to the ledger, the configured gateway and policy.
    """
    return EscrowService(
        ledger=get_booking_ledger(),
        gateway=get_payment_gateway(),
        policy=get_settings().policy,
    )


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_dynamodb_service(), get_settings())


@lru_cache
def get_verification_service() -> ProviderVerificationService:
    """Get cached ProviderVerificationService instance.

    The oracle is None when no face-match key is configured; face matching
    then fails with ORACLE_NOT_CONFIGURED while the rest of the gate works.
    """
    return ProviderVerificationService(
        db=get_dynamodb_service(),
        oracle=get_face_match_oracle(),
    )


def reset_services() -> None:
    """Clear all cached service instances, settings and secrets."""
    get_booking_ledger.cache_clear()
    get_escrow_service.cache_clear()
    get_notification_dispatcher.cache_clear()
    get_verification_service.cache_clear()
    get_payment_gateway.cache_clear()
    get_face_match_oracle.cache_clear()
    get_ssm_service.cache_clear()
    get_settings.cache_clear()
    reset_dynamodb_service()
