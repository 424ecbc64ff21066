"""Payment value objects exchanged with gateways and returned by the escrow service."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from .enums import PaymentStatus
from .events import EscrowEvent
from .money import Money


class Checkout(BaseModel):
    """Hosted checkout handle for one payment reference."""

    reference: str = Field(..., examples=["BK_bk-123_1767225600000"])
    access_code: str | None = Field(
        default=None, description="Gateway checkout handle (Paystack access code, Stripe session id)"
    )
    authorization_url: str | None = Field(
        default=None, description="URL the customer is redirected to for payment"
    )


class GatewayTransaction(BaseModel):
    """Result of verifying a reference with the gateway."""

    reference: str
    status: str = Field(..., description="Gateway-reported status, e.g. 'success', 'abandoned'")
    amount: Money | None = None
    currency: str | None = None
    booking_id: str | None = Field(
        default=None, description="booking_id echoed back from checkout metadata"
    )

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class GatewayRefund(BaseModel):
    """Result of a refund call to the gateway."""

    refund_id: str
    status: str
    amount: Money


class PayoutSplit(BaseModel):
    """Division of the held total into provider payout and platform fee."""

    provider_payout: Money
    platform_fee: Money


class InitiateResult(BaseModel):
    checkout: Checkout
    created: bool = Field(
        ..., description="False when an existing checkout was returned"
    )


class VerifyResult(BaseModel):
    booking_id: str
    reference: str
    payment_status: str = Field(
        ..., description="Ledger status when confirmed, otherwise the gateway status"
    )
    confirmed: bool
    events: list[EscrowEvent] = Field(default_factory=list)


class CompletionResult(BaseModel):
    booking_id: str
    customer_completed: bool
    provider_completed: bool
    released: bool = False
    split: PayoutSplit | None = None
    events: list[EscrowEvent] = Field(default_factory=list)


class ReleaseResult(BaseModel):
    booking_id: str
    split: PayoutSplit
    events: list[EscrowEvent] = Field(default_factory=list)


class RefundResult(BaseModel):
    booking_id: str
    refund_amount: Money
    original_amount: Money
    payment_status: PaymentStatus = PaymentStatus.REFUNDED
    events: list[EscrowEvent] = Field(default_factory=list)


class ProviderEarnings(BaseModel):
    """Earnings summary for a provider's dashboard."""

    provider_id: str
    currency: str
    total_earnings: Money
    pending_payouts: Money
    this_month_earnings: Money
    last_month_earnings: Money
    completed_jobs: int
    total_jobs: int
    refunded_jobs: int


class PaymentRecord(BaseModel):
    """One line of a customer's payment history."""

    booking_id: str
    kind: Literal["payment", "refund"]
    amount: Money
    status: PaymentStatus
    occurred_on: date = Field(
        ..., description="Service date for payments, refund date for refunds"
    )
    reference: str | None = None


class CustomerPayments(BaseModel):
    """Payment history for a customer's dashboard, newest booking first."""

    customer_id: str
    currency: str
    total_paid: Money = Field(..., description="Money collected by the gateway, refunds included")
    total_refunded: Money
    records: list[PaymentRecord]
