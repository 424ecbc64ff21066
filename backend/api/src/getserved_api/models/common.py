"""Shared API request/response models.

Requests accept both snake_case and camelCase keys (``booking_id`` or
``bookingId``) so web and mobile clients can post the same payloads.
Responses are always snake_case.
"""

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from getserved.models.errors import ErrorCode, ErrorResponse

__all__ = [
    "ApiRequest",
    "ErrorCode",
    "ERROR_RESPONSES",
    "ErrorResponse",
    "SuccessResponse",
]


class ApiRequest(BaseModel):
    """Base for request bodies."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class SuccessResponse(BaseModel):
    """Base for success bodies."""

    success: bool = Field(default=True, description="Always true on success")


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation or precondition failure"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Caller may not perform this action"},
    404: {"model": ErrorResponse, "description": "Booking not found"},
    409: {"model": ErrorResponse, "description": "Concurrent update, retry"},
}
