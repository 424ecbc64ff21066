"""Pydantic models for the GetServed escrow backend."""

from .booking import Booking, BookingCreate
from .enums import (
    BookingStatus,
    CompletionRole,
    GatewayProvider,
    MatchConfidence,
    PaymentStatus,
    VerificationStatus,
)
from .errors import ERROR_MESSAGES, ErrorCode, ErrorResponse, EscrowError
from .escrow_state import (
    AwaitingCompletion,
    AwaitingPayment,
    EscrowState,
    PaymentFailed,
    Refunded,
    Released,
    escrow_state,
)
from .events import EscrowEvent, PaymentConfirmed, PaymentReleased, RefundIssued
from .money import MinorUnitMoney, Money
from .payment import (
    Checkout,
    CompletionResult,
    CustomerPayments,
    GatewayRefund,
    GatewayTransaction,
    InitiateResult,
    PaymentRecord,
    PayoutSplit,
    ProviderEarnings,
    RefundResult,
    ReleaseResult,
    VerifyResult,
)
from .transition import Condition, GuardOp, NoOp, Transition
from .verification import FaceMatchVerdict, ProviderVerification, VerificationSubmission

__all__ = [
    # Enums
    "BookingStatus",
    "CompletionRole",
    "GatewayProvider",
    "MatchConfidence",
    "PaymentStatus",
    "VerificationStatus",
    # Booking
    "Booking",
    "BookingCreate",
    "MinorUnitMoney",
    "Money",
    # Escrow state
    "AwaitingCompletion",
    "AwaitingPayment",
    "EscrowState",
    "PaymentFailed",
    "Refunded",
    "Released",
    "escrow_state",
    # Events
    "EscrowEvent",
    "PaymentConfirmed",
    "PaymentReleased",
    "RefundIssued",
    # Payment
    "Checkout",
    "CompletionResult",
    "CustomerPayments",
    "GatewayRefund",
    "GatewayTransaction",
    "InitiateResult",
    "PaymentRecord",
    "PayoutSplit",
    "ProviderEarnings",
    "RefundResult",
    "ReleaseResult",
    "VerifyResult",
    # Transitions
    "Condition",
    "GuardOp",
    "NoOp",
    "Transition",
    # Verification
    "FaceMatchVerdict",
    "ProviderVerification",
    "VerificationSubmission",
    # Errors
    "ERROR_MESSAGES",
    "ErrorCode",
    "ErrorResponse",
    "EscrowError",
]
