"""Request/response models for the escrow payment handlers."""

from decimal import Decimal

from pydantic import Field

from getserved.models.enums import CompletionRole, PaymentStatus
from getserved.models.money import MinorUnitMoney, Money

from .common import ApiRequest, SuccessResponse


class InitiatePaymentRequest(ApiRequest):
    booking_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, description="Customer email for the gateway receipt")
    amount: MinorUnitMoney = Field(..., description="Must equal the booking total")
    currency: str | None = None
    callback_url: str | None = None


class InitiatePaymentResponse(SuccessResponse):
    reference: str
    access_code: str | None = None
    authorization_url: str | None = None
    created: bool = Field(..., description="False when an existing checkout was returned")


class VerifyPaymentRequest(ApiRequest):
    reference: str = Field(..., min_length=1)
    access_code: str | None = Field(
        default=None, description="Gateway checkout handle; defaults to the stored one"
    )


class VerifyPaymentResponse(SuccessResponse):
    booking_id: str
    reference: str
    payment_status: str
    confirmed: bool


class MarkCompleteRequest(ApiRequest):
    booking_id: str = Field(..., min_length=1)
    role: CompletionRole


class MarkCompleteResponse(SuccessResponse):
    booking_id: str
    customer_completed: bool
    provider_completed: bool
    released: bool
    provider_payout: Money | None = None
    platform_fee: Money | None = None


class ReleasePaymentRequest(ApiRequest):
    booking_id: str = Field(..., min_length=1)


class ReleasePaymentResponse(SuccessResponse):
    booking_id: str
    provider_payout: Money
    platform_fee: Money


class RefundRequest(ApiRequest):
    booking_id: str = Field(..., min_length=1)
    refund_percentage: Decimal = Field(..., description="0 to 100 inclusive")
    reason: str | None = None


class RefundResponse(SuccessResponse):
    booking_id: str
    refund_amount: Money
    original_amount: Money
    payment_status: PaymentStatus
