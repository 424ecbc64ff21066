"""Escrow state machine.

Pure decision logic: each ``plan_*`` function takes the current booking row
and an incoming event and returns a Transition (updates plus the guard the
row must still satisfy), a NoOp when the event is already reflected in the
row, or raises EscrowError when the event is illegal. Nothing here touches
storage, the gateway or the clock; callers pass ``now`` in.

    pending --initiate--> pending (reference stored)
    pending --confirm---> paid      (status confirmed)
    paid    --complete--> paid      (one flag set, status in_progress)
    paid    --release---> released  (status completed, split stored)
    paid    --refund----> refunded  (status cancelled)
"""

from datetime import datetime
from decimal import Decimal

from getserved.config import EscrowPolicy
from getserved.models.booking import Booking
from getserved.models.enums import BookingStatus, CompletionRole, PaymentStatus
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.escrow_state import (
    AwaitingCompletion,
    AwaitingPayment,
    Refunded,
    Released,
    escrow_state,
)
from getserved.models.events import PaymentConfirmed, PaymentReleased, RefundIssued
from getserved.models.money import to_money
from getserved.models.payment import Checkout
from getserved.models.transition import NoOp, Transition, absent, absent_or_eq, eq

from .completion_gate import describe_outstanding, outstanding_parties
from .payout import split_payout
from .refund_policy_service import RefundPolicyService


def _not_paid(booking: Booking) -> EscrowError:
    return EscrowError(
        ErrorCode.PAYMENT_NOT_PAID,
        details={
            "booking_id": booking.booking_id,
            "payment_status": booking.payment_status.value,
        },
    )


# =========================================================================
# InitiatePayment
# =========================================================================


def check_initiate(booking: Booking, amount: Decimal | int | str) -> Checkout | None:
    """Validate an initiation request before the gateway is called.

    Returns:
        The stored checkout when the booking already has a reference
        (idempotent replay), otherwise None meaning a new checkout is needed.

    Raises:
        EscrowError: INVALID_AMOUNT, AMOUNT_MISMATCH or PAYMENT_NOT_PENDING
    """
    requested = to_money(amount)
    if requested <= 0:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, details={"amount": str(requested)})
    if requested != booking.total_amount:
        raise EscrowError(
            ErrorCode.AMOUNT_MISMATCH,
            details={
                "amount": str(requested),
                "total_amount": str(booking.total_amount),
            },
        )

    state = escrow_state(booking)
    if not isinstance(state, AwaitingPayment):
        raise EscrowError(
            ErrorCode.PAYMENT_NOT_PENDING,
            details={
                "booking_id": booking.booking_id,
                "payment_status": booking.payment_status.value,
            },
        )

    if state.reference:
        return Checkout(
            reference=state.reference,
            access_code=booking.payment_access_code,
            authorization_url=booking.payment_authorization_url,
        )
    return None


def plan_initiate(booking: Booking, checkout: Checkout, currency: str, now: datetime) -> Transition:
    """Store a freshly created checkout. The reference can only be written once."""
    return Transition(
        operation="initiate_payment",
        booking_id=booking.booking_id,
        updates={
            "payment_reference": checkout.reference,
            "payment_access_code": checkout.access_code,
            "payment_authorization_url": checkout.authorization_url,
            "payment_status": PaymentStatus.PENDING,
            "currency": currency,
            "updated_at": now,
        },
        guard=[
            absent("payment_reference"),
            absent_or_eq("payment_status", PaymentStatus.PENDING),
        ],
    )


# =========================================================================
# ConfirmPayment
# =========================================================================


def plan_confirm(booking: Booking, reference: str, now: datetime) -> Transition | NoOp:
    """Move a pending payment to paid once the gateway reported success."""
    if booking.payment_reference != reference:
        raise EscrowError(
            ErrorCode.REFERENCE_MISMATCH,
            details={"booking_id": booking.booking_id, "reference": reference},
        )

    state = escrow_state(booking)
    if not isinstance(state, AwaitingPayment):
        if booking.payment_status == PaymentStatus.FAILED:
            raise EscrowError(
                ErrorCode.PAYMENT_NOT_PENDING,
                details={"booking_id": booking.booking_id, "payment_status": "failed"},
            )
        return NoOp(
            operation="confirm_payment",
            booking_id=booking.booking_id,
            reason=f"payment already {booking.payment_status.value}",
        )

    return Transition(
        operation="confirm_payment",
        booking_id=booking.booking_id,
        updates={
            "payment_status": PaymentStatus.PAID,
            "status": BookingStatus.CONFIRMED,
            "updated_at": now,
        },
        guard=[
            eq("payment_status", PaymentStatus.PENDING),
            eq("payment_reference", reference),
        ],
        events=[
            PaymentConfirmed(
                booking_id=booking.booking_id,
                customer_id=booking.customer_id,
                provider_id=booking.provider_id,
                reference=reference,
                amount=booking.total_amount,
                currency=booking.currency,
            )
        ],
    )


# =========================================================================
# MarkComplete
# =========================================================================


def plan_mark_complete(booking: Booking, role: CompletionRole, now: datetime) -> Transition | NoOp:
    """Set one party's completion flag.

    Marking twice is a no-op. Whether the write completed the pair is decided
    from the post-write row by the completion gate, not here.
    """
    state = escrow_state(booking)
    already = bool(getattr(booking, role.flag_field))

    if already and isinstance(state, (AwaitingCompletion, Released)):
        return NoOp(
            operation="mark_complete",
            booking_id=booking.booking_id,
            reason=f"{role.value} already marked complete",
        )
    if not isinstance(state, AwaitingCompletion):
        raise _not_paid(booking)

    return Transition(
        operation="mark_complete",
        booking_id=booking.booking_id,
        updates={
            role.flag_field: True,
            "status": BookingStatus.IN_PROGRESS,
            "updated_at": now,
        },
        guard=[
            eq("payment_status", PaymentStatus.PAID),
            absent_or_eq(role.flag_field, False),
        ],
    )


# =========================================================================
# ReleasePayment
# =========================================================================


def plan_release(booking: Booking, policy: EscrowPolicy, now: datetime) -> Transition | NoOp:
    """Split and release held funds once both parties confirmed."""
    state = escrow_state(booking)

    if isinstance(state, Released):
        return NoOp(
            operation="release_payment",
            booking_id=booking.booking_id,
            reason="payment already released",
        )
    if not isinstance(state, AwaitingCompletion):
        raise _not_paid(booking)

    outstanding = outstanding_parties(booking)
    if outstanding:
        raise EscrowError(
            ErrorCode.COMPLETION_OUTSTANDING,
            describe_outstanding(booking),
            details={
                "booking_id": booking.booking_id,
                "outstanding": [role.value for role in outstanding],
            },
        )

    split = split_payout(booking.total_amount, policy.platform_fee_rate)

    return Transition(
        operation="release_payment",
        booking_id=booking.booking_id,
        updates={
            "payment_status": PaymentStatus.RELEASED,
            "status": BookingStatus.COMPLETED,
            "provider_payout_amount": split.provider_payout,
            "platform_fee_amount": split.platform_fee,
            "completed_at": now,
            "updated_at": now,
        },
        guard=[
            eq("payment_status", PaymentStatus.PAID),
            eq("customer_completed", True),
            eq("provider_completed", True),
        ],
        events=[
            PaymentReleased(
                booking_id=booking.booking_id,
                customer_id=booking.customer_id,
                provider_id=booking.provider_id,
                provider_payout=split.provider_payout,
                platform_fee=split.platform_fee,
                currency=booking.currency,
            )
        ],
    )


# =========================================================================
# RequestRefund
# =========================================================================


def validate_refund_request(
    percentage: Decimal | int | str,
    reason: str | None,
    refunds: RefundPolicyService,
) -> tuple[Decimal, str]:
    """Validate refund input. Runs before the row is read.

    Returns:
        (percentage, stripped reason)
    """
    pct = refunds.validate_percentage(percentage)
    cleaned = (reason or "").strip()
    if not cleaned:
        raise EscrowError(ErrorCode.REFUND_REASON_REQUIRED)
    return pct, cleaned


def plan_refund(
    booking: Booking,
    percentage: Decimal | int | str,
    reason: str | None,
    refunds: RefundPolicyService,
    now: datetime,
) -> Transition:
    """Refund a percentage of held funds and cancel the booking."""
    pct, cleaned_reason = validate_refund_request(percentage, reason, refunds)

    state = escrow_state(booking)
    if not isinstance(state, AwaitingCompletion):
        if isinstance(state, Refunded):
            raise EscrowError(
                ErrorCode.PAYMENT_NOT_PAID,
                "Payment has already been refunded",
                details={"booking_id": booking.booking_id, "payment_status": "refunded"},
            )
        raise _not_paid(booking)

    calculation = refunds.calculate_refund_amount(booking.total_amount, pct)
    refund_amount = calculation["refund_amount"]

    return Transition(
        operation="request_refund",
        booking_id=booking.booking_id,
        updates={
            "payment_status": PaymentStatus.REFUNDED,
            "status": BookingStatus.CANCELLED,
            "refund_amount": refund_amount,
            "refund_reason": cleaned_reason,
            "refunded_at": now,
            "cancellation_reason": cleaned_reason,
            "cancelled_at": now,
            "updated_at": now,
        },
        guard=[eq("payment_status", PaymentStatus.PAID)],
        events=[
            RefundIssued(
                booking_id=booking.booking_id,
                customer_id=booking.customer_id,
                provider_id=booking.provider_id,
                reference=booking.payment_reference,
                refund_amount=refund_amount,
                original_amount=booking.total_amount,
                reason=cleaned_reason,
                currency=booking.currency,
            )
        ],
    )
