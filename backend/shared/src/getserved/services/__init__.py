"""Backend services for GetServed."""

from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .escrow_service import EscrowService
from .gateway import DemoGateway, GatewayError, PaymentGateway, get_payment_gateway
from .ledger import BookingLedger
from .notification_service import NotificationDispatcher
from .payout import split_payout
from .refund_policy_service import RefundPolicyService, calculate_refund
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .verification_service import ProviderVerificationService, get_face_match_oracle

__all__ = [
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "BookingLedger",
    "EscrowService",
    "DemoGateway",
    "GatewayError",
    "PaymentGateway",
    "get_payment_gateway",
    "NotificationDispatcher",
    "split_payout",
    "RefundPolicyService",
    "calculate_refund",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "ProviderVerificationService",
    "get_face_match_oracle",
]
