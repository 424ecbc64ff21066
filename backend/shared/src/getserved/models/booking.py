"""Booking model: one ledger row per booking."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import BookingStatus, PaymentStatus
from .money import MinorUnitMoney, Money


class Booking(BaseModel):
    """A booking and its escrow payment fields.

    The row is never deleted; each transition rewrites a subset of fields
    under a conditional update.
    """

    booking_id: str = Field(..., description="Unique booking ID")
    customer_id: str = Field(..., description="Principal ID of the customer")
    provider_id: str = Field(..., description="Principal ID of the provider")
    category_id: str | None = Field(default=None, description="Service category")
    address: str | None = None
    notes: str | None = None

    # Commercial terms
    total_amount: MinorUnitMoney = Field(..., gt=0, description="Gross amount held in escrow")
    currency: str = Field(default="NGN", description="ISO currency code")
    duration_hours: int = Field(default=1, gt=0)
    scheduled_date: date
    scheduled_time: str = Field(..., examples=["10:00"])

    # Payment reference (set once at initiation)
    payment_reference: str | None = Field(
        default=None,
        description="Idempotency anchor: {prefix}_{booking_id}_{timestamp_ms}",
        examples=["BK_bk-123_1767225600000"],
    )
    payment_access_code: str | None = Field(
        default=None, description="Opaque gateway checkout handle"
    )
    payment_authorization_url: str | None = Field(
        default=None, description="Hosted checkout URL returned by the gateway"
    )

    # State
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: BookingStatus = BookingStatus.PENDING_PAYMENT
    customer_completed: bool = False
    provider_completed: bool = False

    # Settlement (populated only at release)
    provider_payout_amount: Money | None = None
    platform_fee_amount: Money | None = None

    # Refund (populated only at refund)
    refund_amount: Money | None = None
    refund_reason: str | None = None
    refunded_at: datetime | None = None

    # Cancellation
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class BookingCreate(BaseModel):
    """Data required to open a booking request."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "provider_id": "prov-42",
                    "total_amount": 10000,
                    "duration_hours": 2,
                    "scheduled_date": "2026-11-02",
                    "scheduled_time": "10:00",
                }
            ]
        },
    )

    provider_id: str = Field(..., min_length=1)
    total_amount: MinorUnitMoney = Field(..., gt=0)
    currency: str | None = None
    duration_hours: int = Field(default=1, gt=0)
    scheduled_date: date
    scheduled_time: str = Field(..., min_length=1)
    category_id: str | None = None
    address: str | None = None
    notes: str | None = None
