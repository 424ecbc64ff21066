"""Escrow events emitted after a committed conditional write.

Events are plain data. The escrow service returns them with its result and
the API layer hands them to the notification dispatcher after the response
is sent.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .money import Money


class PaymentConfirmed(BaseModel):
    """Gateway confirmed the customer's payment; funds are now held."""

    kind: Literal["payment_confirmed"] = "payment_confirmed"
    booking_id: str
    customer_id: str
    provider_id: str
    reference: str
    amount: Money
    currency: str


class PaymentReleased(BaseModel):
    """Both parties confirmed completion; escrow was split and released."""

    kind: Literal["payment_released"] = "payment_released"
    booking_id: str
    customer_id: str
    provider_id: str
    provider_payout: Money
    platform_fee: Money
    currency: str


class RefundIssued(BaseModel):
    """An admin refunded the held payment and cancelled the booking."""

    kind: Literal["refund_processed"] = "refund_processed"
    booking_id: str
    customer_id: str
    provider_id: str
    reference: str | None = None
    refund_amount: Money
    original_amount: Money
    reason: str
    currency: str


EscrowEvent = Annotated[
    Union[PaymentConfirmed, PaymentReleased, RefundIssued],
    Field(discriminator="kind"),
]
