"""Webhook endpoints for payment gateway callbacks.

Provides endpoints for:
- Paystack events (charge.success confirms the booking's payment)

These endpoints do NOT require a principal; payloads are authenticated with
the gateway's HMAC-SHA512 signature (``x-paystack-signature``). Confirmation
goes through the same conditional write as /payments/verify, so a webhook
and a client-side verify for the same reference confirm the booking once.
"""

import json

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from pydantic import BaseModel

from getserved.models.errors import ErrorCode, EscrowError
from getserved.services.escrow_service import EscrowService
from getserved.services.gateway import PaymentGateway
from getserved.services.notification_service import NotificationDispatcher
from getserved.utils.logging import get_logger, log_webhook_event
from getserved_api.dependencies import (
    get_escrow_service,
    get_gateway,
    get_notification_dispatcher,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

HANDLED_EVENT_TYPES = {"charge.success"}

# The gateway retries non-2xx deliveries; only transient failures should ask for one
RETRYABLE_CODES = {
    ErrorCode.GATEWAY_ERROR,
    ErrorCode.GATEWAY_RATE_LIMITED,
    ErrorCode.CONCURRENT_UPDATE,
}


class WebhookResponse(BaseModel):
    """Standard webhook response."""

    received: bool
    event_type: str | None = None
    reference: str | None = None
    processing_result: str  # "success", "duplicate", "skipped", "error"
    message: str | None = None


@router.post(
    "/paystack",
    summary="Paystack webhook",
    description="""
Receive signed Paystack events.

- `charge.success`: verify the reference with Paystack and confirm the booking
- Other events are acknowledged and skipped

Returns 401 when the signature is missing or invalid.
""",
    response_model=WebhookResponse,
)
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_paystack_signature: str | None = Header(default=None),
    gateway: PaymentGateway = Depends(get_gateway),
    escrow: EscrowService = Depends(get_escrow_service),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> WebhookResponse:
    payload = await request.body()

    if not gateway.verify_webhook_signature(payload, x_paystack_signature):
        logger.warning("Rejected Paystack webhook with invalid signature")
        raise EscrowError(ErrorCode.INVALID_WEBHOOK_SIGNATURE)

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise EscrowError(ErrorCode.VALIDATION_FAILED, "Webhook body is not JSON") from e

    if not isinstance(event, dict) or not isinstance(event.get("data") or {}, dict):
        raise EscrowError(ErrorCode.VALIDATION_FAILED, "Webhook body is not a Paystack event")

    event_type = str(event.get("event", ""))
    data = event.get("data") or {}
    reference = data.get("reference")

    if event_type not in HANDLED_EVENT_TYPES:
        log_webhook_event(logger, event_type, reference, result="skipped")
        return WebhookResponse(
            received=True,
            event_type=event_type,
            reference=reference,
            processing_result="skipped",
            message=f"Event type {event_type} not handled",
        )

    if not reference:
        log_webhook_event(logger, event_type, None, result="error", error="missing reference")
        return WebhookResponse(
            received=True,
            event_type=event_type,
            processing_result="error",
            message="Event carries no reference",
        )

    try:
        result = escrow.confirm_payment(reference)
    except EscrowError as e:
        log_webhook_event(logger, event_type, reference, result="error", error=e.code.value)
        if e.code in RETRYABLE_CODES:
            raise
        return WebhookResponse(
            received=True,
            event_type=event_type,
            reference=reference,
            processing_result="error",
            message=e.message,
        )

    if result.events:
        background_tasks.add_task(notifier.dispatch_all, result.events)
        processing_result = "success"
    elif result.confirmed:
        processing_result = "duplicate"
    else:
        processing_result = "skipped"

    log_webhook_event(
        logger,
        event_type,
        reference,
        booking_id=result.booking_id,
        result=processing_result,
        payment_status=result.payment_status,
    )
    return WebhookResponse(
        received=True,
        event_type=event_type,
        reference=reference,
        processing_result=processing_result,
    )
