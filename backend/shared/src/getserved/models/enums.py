"""Enumeration types for GetServed data models."""

from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Escrow payment status for a booking.

    pending -> paid -> released | refunded
    """

    PENDING = "pending"
    PAID = "paid"
    RELEASED = "released"
    REFUNDED = "refunded"
    FAILED = "failed"


class CompletionRole(str, Enum):
    """Party that can confirm a job is done."""

    CUSTOMER = "customer"
    PROVIDER = "provider"

    @property
    def flag_field(self) -> str:
        """Ledger attribute holding this party's completion flag."""
        return f"{self.value}_completed"


class VerificationStatus(str, Enum):
    """Identity verification status of a provider."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class MatchConfidence(str, Enum):
    """Confidence reported by the face-match oracle."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GatewayProvider(str, Enum):
    """Payment gateways the service can talk to."""

    PAYSTACK = "paystack"
    STRIPE = "stripe"
    DEMO = "demo"
