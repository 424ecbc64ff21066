"""Booking endpoints.

- POST /bookings: a customer opens a booking request (awaiting payment)
- GET /bookings/{booking_id}: a party to the booking (or an admin) reads it
"""

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from getserved.models.escrow_state import escrow_state
from getserved.services.escrow_service import EscrowService
from getserved_api.dependencies import get_escrow_service
from getserved_api.models.bookings import BookingResponse, CreateBookingRequest
from getserved_api.models.common import ERROR_RESPONSES
from getserved_api.security import Principal, ensure_party, get_principal

router = APIRouter(tags=["bookings"])


@router.post(
    "/bookings",
    summary="Create booking",
    description="""
Open a booking request with a provider. The caller becomes the booking's customer.

The booking starts as `pending_payment` with both completion flags false.
""",
    response_model=BookingResponse,
    status_code=HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_booking(
    body: CreateBookingRequest,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
) -> BookingResponse:
    booking = escrow.create_booking(principal.sub, body.to_domain())
    return BookingResponse(booking=booking, escrow=escrow_state(booking))


@router.get(
    "/bookings/{booking_id}",
    summary="Get booking",
    description="Read a booking and its escrow state. Only its customer, its provider or an admin may read it.",
    response_model=BookingResponse,
    responses=ERROR_RESPONSES,
)
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_principal),
    escrow: EscrowService = Depends(get_escrow_service),
) -> BookingResponse:
    booking = escrow.get_booking(booking_id)
    ensure_party(principal, booking)
    return BookingResponse(booking=booking, escrow=escrow_state(booking))
