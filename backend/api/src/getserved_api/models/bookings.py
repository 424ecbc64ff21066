"""Booking request/response models."""

from datetime import date

from pydantic import Field

from getserved.models.booking import Booking, BookingCreate
from getserved.models.escrow_state import EscrowState
from getserved.models.money import MinorUnitMoney

from .common import ApiRequest, SuccessResponse


class CreateBookingRequest(ApiRequest):
    """Body of POST /bookings. The customer is the caller."""

    provider_id: str = Field(..., min_length=1)
    total_amount: MinorUnitMoney = Field(..., gt=0, examples=[10000])
    currency: str | None = Field(default=None, examples=["NGN"])
    duration_hours: int = Field(default=1, gt=0)
    scheduled_date: date
    scheduled_time: str = Field(..., min_length=1, examples=["10:00"])
    category_id: str | None = None
    address: str | None = None
    notes: str | None = None

    def to_domain(self) -> BookingCreate:
        return BookingCreate(**self.model_dump())


class BookingResponse(SuccessResponse):
    booking: Booking
    escrow: EscrowState = Field(..., description="Escrow state reconstructed from the row")
