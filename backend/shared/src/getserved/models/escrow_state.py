"""Tagged escrow state reconstructed from a stored booking row.

The ledger stores flat attributes. Reading a row through ``escrow_state``
yields exactly one of the variants below, so a released booking always has a
split and a refunded booking always has an amount. Rows that cannot be mapped
to a variant are rejected instead of being passed along.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .booking import Booking
from .enums import PaymentStatus
from .errors import ErrorCode, EscrowError
from .money import Money


class AwaitingPayment(BaseModel):
    kind: Literal["awaiting_payment"] = "awaiting_payment"
    reference: str | None = None


class AwaitingCompletion(BaseModel):
    """Funds held; waiting on one or both completion flags."""

    kind: Literal["awaiting_completion"] = "awaiting_completion"
    customer_done: bool = False
    provider_done: bool = False


class Released(BaseModel):
    kind: Literal["released"] = "released"
    payout: Money
    fee: Money
    completed_at: datetime


class Refunded(BaseModel):
    kind: Literal["refunded"] = "refunded"
    amount: Money
    reason: str
    refunded_at: datetime


class PaymentFailed(BaseModel):
    kind: Literal["payment_failed"] = "payment_failed"
    reference: str | None = None


EscrowState = Annotated[
    Union[AwaitingPayment, AwaitingCompletion, Released, Refunded, PaymentFailed],
    Field(discriminator="kind"),
]


def _inconsistent(booking: Booking, problem: str) -> EscrowError:
    return EscrowError(
        ErrorCode.INCONSISTENT_LEDGER_ROW,
        details={
            "booking_id": booking.booking_id,
            "payment_status": booking.payment_status.value,
            "problem": problem,
        },
    )


def escrow_state(booking: Booking) -> EscrowState:
    """Map a booking row to its escrow state variant.

    Raises:
        EscrowError: INCONSISTENT_LEDGER_ROW if the row violates a stored invariant
    """
    status = booking.payment_status

    if status == PaymentStatus.PENDING:
        return AwaitingPayment(reference=booking.payment_reference)

    if status == PaymentStatus.PAID:
        return AwaitingCompletion(
            customer_done=booking.customer_completed,
            provider_done=booking.provider_completed,
        )

    if status == PaymentStatus.RELEASED:
        if not (booking.customer_completed and booking.provider_completed):
            raise _inconsistent(booking, "released without both completion flags")
        if booking.provider_payout_amount is None or booking.platform_fee_amount is None:
            raise _inconsistent(booking, "released without a payout split")
        if (
            booking.provider_payout_amount + booking.platform_fee_amount
            != booking.total_amount
        ):
            raise _inconsistent(booking, "payout split does not sum to total")
        if booking.completed_at is None:
            raise _inconsistent(booking, "released without completed_at")
        return Released(
            payout=booking.provider_payout_amount,
            fee=booking.platform_fee_amount,
            completed_at=booking.completed_at,
        )

    if status == PaymentStatus.REFUNDED:
        if booking.refund_amount is None or booking.refunded_at is None:
            raise _inconsistent(booking, "refunded without refund amount")
        if not 0 <= booking.refund_amount <= booking.total_amount:
            raise _inconsistent(booking, "refund amount outside booking total")
        return Refunded(
            amount=booking.refund_amount,
            reason=booking.refund_reason or "",
            refunded_at=booking.refunded_at,
        )

    return PaymentFailed(reference=booking.payment_reference)
