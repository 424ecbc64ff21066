"""Escrow payment endpoints.

Provides REST endpoints for:
- Initiating a hosted checkout (the booking's customer)
- Verifying a payment reference (public, reference-keyed)
- Marking a job complete (the customer or provider named by ``role``)
- Releasing held funds to the provider (admin)
- Refunding a percentage of held funds (admin)

Notifications for committed transitions are sent after the response via
BackgroundTasks; a failed email never fails the request.
"""

from fastapi import APIRouter, BackgroundTasks, Depends

from getserved.models.enums import CompletionRole
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.events import EscrowEvent
from getserved.services.escrow_service import EscrowService
from getserved.services.notification_service import NotificationDispatcher
from getserved_api.dependencies import get_escrow_service, get_notification_dispatcher
from getserved_api.models.common import ERROR_RESPONSES
from getserved_api.models.payments import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    MarkCompleteRequest,
    MarkCompleteResponse,
    RefundRequest,
    RefundResponse,
    ReleasePaymentRequest,
    ReleasePaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from getserved_api.security import Principal, get_principal, require_admin

router = APIRouter(prefix="/payments", tags=["payments"])

UPSTREAM_RESPONSES = {
    **ERROR_RESPONSES,
    429: {"description": "Payment gateway rate limit"},
    502: {"description": "Payment gateway error"},
}


def _notify(
    background_tasks: BackgroundTasks,
    notifier: NotificationDispatcher,
    events: list[EscrowEvent],
) -> None:
    if events:
        background_tasks.add_task(notifier.dispatch_all, events)


@router.post(
    "/initiate",
    summary="Initiate payment",
    description="""
Create a hosted checkout for a booking and store its payment reference.

**Only the booking's customer can pay.**

- `amount` must equal the booking total
- Calling again returns the stored checkout (`created: false`) instead of a new reference
""",
    response_model=InitiatePaymentResponse,
    responses=UPSTREAM_RESPONSES,
)
async def initiate_payment(
    body: InitiatePaymentRequest,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
) -> InitiatePaymentResponse:
    booking = escrow.get_booking(body.booking_id)
    if principal.sub != booking.customer_id:
        raise EscrowError(
            ErrorCode.FORBIDDEN,
            "You can only pay for your own bookings",
            details={"booking_id": body.booking_id},
        )

    result = escrow.initiate_payment(
        body.booking_id,
        amount=body.amount,
        email=body.email,
        currency=body.currency,
        callback_url=body.callback_url,
    )
    return InitiatePaymentResponse(
        reference=result.checkout.reference,
        access_code=result.checkout.access_code,
        authorization_url=result.checkout.authorization_url,
        created=result.created,
    )


@router.post(
    "/verify",
    summary="Verify payment",
    description="""
Ask the gateway for the status of a reference. On success the booking moves to
`paid`/`confirmed` and the customer is notified once.

Public: the reference itself identifies the booking. Replays are safe.
""",
    response_model=VerifyPaymentResponse,
    responses=UPSTREAM_RESPONSES,
)
async def verify_payment(
    body: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    escrow: EscrowService = Depends(get_escrow_service),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> VerifyPaymentResponse:
    result = escrow.confirm_payment(body.reference, body.access_code)
    _notify(background_tasks, notifier, result.events)
    return VerifyPaymentResponse(
        booking_id=result.booking_id,
        reference=result.reference,
        payment_status=result.payment_status,
        confirmed=result.confirmed,
    )


@router.post(
    "/mark-complete",
    summary="Mark job complete",
    description="""
Record that the customer or the provider considers the job done.

When the second party confirms, held funds are released automatically and the
provider is notified. Marking the same role twice is a no-op.
""",
    response_model=MarkCompleteResponse,
    responses=ERROR_RESPONSES,
)
async def mark_complete(
    body: MarkCompleteRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> MarkCompleteResponse:
    booking = escrow.get_booking(body.booking_id)
    party_id = booking.customer_id if body.role == CompletionRole.CUSTOMER else booking.provider_id
    if principal.sub != party_id:
        raise EscrowError(
            ErrorCode.FORBIDDEN,
            f"Only the booking's {body.role.value} can mark it complete as {body.role.value}",
            details={"booking_id": body.booking_id},
        )

    result = escrow.mark_complete(body.booking_id, body.role)
    _notify(background_tasks, notifier, result.events)
    return MarkCompleteResponse(
        booking_id=result.booking_id,
        customer_completed=result.customer_completed,
        provider_completed=result.provider_completed,
        released=result.released,
        provider_payout=result.split.provider_payout if result.split else None,
        platform_fee=result.split.platform_fee if result.split else None,
    )


@router.post(
    "/release",
    summary="Release payment",
    description="""
Split held funds into provider payout and platform fee and mark the booking completed.

**Admin only.** Fails with 400 naming the outstanding party until both have
marked the job complete. An already-released booking returns its stored split.
""",
    response_model=ReleasePaymentResponse,
    responses=ERROR_RESPONSES,
)
async def release_payment(
    body: ReleasePaymentRequest,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    escrow: EscrowService = Depends(get_escrow_service),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReleasePaymentResponse:
    result = escrow.release_payment(body.booking_id)
    _notify(background_tasks, notifier, result.events)
    return ReleasePaymentResponse(
        booking_id=result.booking_id,
        provider_payout=result.split.provider_payout,
        platform_fee=result.split.platform_fee,
    )


@router.post(
    "/refund",
    summary="Refund payment",
    description="""
Refund a percentage (0 to 100) of held funds and cancel the booking.

**Admin only.** A reason is required. 0% is accepted and recorded for audit.
The gateway refund is issued after the ledger write; its failure is logged for
manual follow-up and does not undo the refund record.
""",
    response_model=RefundResponse,
    responses=ERROR_RESPONSES,
)
async def request_refund(
    body: RefundRequest,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    escrow: EscrowService = Depends(get_escrow_service),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> RefundResponse:
    result = escrow.request_refund(
        body.booking_id, percentage=body.refund_percentage, reason=body.reason
    )
    _notify(background_tasks, notifier, result.events)
    return RefundResponse(
        booking_id=result.booking_id,
        refund_amount=result.refund_amount,
        original_amount=result.original_amount,
        payment_status=result.payment_status,
    )
