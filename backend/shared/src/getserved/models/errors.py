"""Standard error codes for the escrow backend.

All services raise EscrowError with one of these codes so the API layer can
map failures to HTTP statuses and the uniform ``{success: false, error}`` body.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Error codes grouped by failure class."""

    # Validation errors (rejected before any write)
    VALIDATION_FAILED = "ERR_VALIDATION"
    INVALID_AMOUNT = "ERR_VAL_001"
    AMOUNT_MISMATCH = "ERR_VAL_002"
    INVALID_REFUND_PERCENTAGE = "ERR_VAL_003"
    REFUND_REASON_REQUIRED = "ERR_VAL_004"
    INVALID_REFERENCE = "ERR_VAL_005"
    REJECTION_REASON_REQUIRED = "ERR_VAL_006"

    # Missing rows
    BOOKING_NOT_FOUND = "ERR_404_BOOKING"
    PROVIDER_NOT_FOUND = "ERR_404_PROVIDER"

    # Precondition / state errors (no partial write)
    PAYMENT_NOT_PENDING = "ERR_STATE_001"
    PAYMENT_NOT_PAID = "ERR_STATE_002"
    COMPLETION_OUTSTANDING = "ERR_STATE_003"
    REFERENCE_MISMATCH = "ERR_STATE_004"
    VERIFICATION_NOT_UNDER_REVIEW = "ERR_STATE_005"
    FACE_MATCH_REQUIRED = "ERR_STATE_006"
    INCONSISTENT_LEDGER_ROW = "ERR_STATE_007"
    CONCURRENT_UPDATE = "ERR_STATE_008"
    BOOKING_ALREADY_EXISTS = "ERR_STATE_009"

    # Auth
    AUTH_REQUIRED = "ERR_AUTH_001"
    FORBIDDEN = "ERR_AUTH_002"
    INVALID_WEBHOOK_SIGNATURE = "ERR_AUTH_003"

    # Upstream / oracle errors
    GATEWAY_ERROR = "ERR_UPSTREAM_001"
    GATEWAY_RATE_LIMITED = "ERR_UPSTREAM_002"
    ORACLE_ERROR = "ERR_UPSTREAM_003"
    ORACLE_RATE_LIMITED = "ERR_UPSTREAM_004"
    ORACLE_CREDITS_EXHAUSTED = "ERR_UPSTREAM_005"
    ORACLE_NOT_CONFIGURED = "ERR_UPSTREAM_006"


# Default human-readable messages; callers may override with a more specific one
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_FAILED: "Request validation failed",
    ErrorCode.INVALID_AMOUNT: "Amount must be greater than zero",
    ErrorCode.AMOUNT_MISMATCH: "Amount does not match the booking total",
    ErrorCode.INVALID_REFUND_PERCENTAGE: "Refund percentage must be between 0 and 100",
    ErrorCode.REFUND_REASON_REQUIRED: "A refund reason is required",
    ErrorCode.INVALID_REFERENCE: "Payment reference is malformed",
    ErrorCode.REJECTION_REASON_REQUIRED: "A rejection reason is required",
    ErrorCode.BOOKING_NOT_FOUND: "Booking not found",
    ErrorCode.PROVIDER_NOT_FOUND: "Provider not found",
    ErrorCode.PAYMENT_NOT_PENDING: "Payment can only be initiated while pending",
    ErrorCode.PAYMENT_NOT_PAID: "Payment must be in 'paid' status",
    ErrorCode.COMPLETION_OUTSTANDING: "Both customer and provider must mark job as complete",
    ErrorCode.REFERENCE_MISMATCH: "Payment reference does not belong to this booking",
    ErrorCode.VERIFICATION_NOT_UNDER_REVIEW: "Provider verification is not under review",
    ErrorCode.FACE_MATCH_REQUIRED: "Provider can only be approved after a positive face match",
    ErrorCode.INCONSISTENT_LEDGER_ROW: "Booking record is in an inconsistent state",
    ErrorCode.CONCURRENT_UPDATE: "Booking was modified concurrently, please retry",
    ErrorCode.BOOKING_ALREADY_EXISTS: "Booking already exists",
    ErrorCode.AUTH_REQUIRED: "Authentication required",
    ErrorCode.FORBIDDEN: "Not authorized for this action",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.GATEWAY_ERROR: "Payment gateway error",
    ErrorCode.GATEWAY_RATE_LIMITED: "Payment gateway rate limit exceeded. Please try again later.",
    ErrorCode.ORACLE_ERROR: "Verification service error",
    ErrorCode.ORACLE_RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    ErrorCode.ORACLE_CREDITS_EXHAUSTED: "AI credits exhausted. Please add funds.",
    ErrorCode.ORACLE_NOT_CONFIGURED: "Verification service is not configured",
}


class ErrorResponse(BaseModel):
    """Uniform failure body returned by every handler."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error: str
    error_code: str
    details: Optional[dict[str, Any]] = None


class EscrowError(Exception):
    """Exception raised by escrow and verification operations.

    Converted to an ErrorResponse by the API layer.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert this exception to the uniform error body."""
        return ErrorResponse(
            error=self.message,
            error_code=self.code.value,
            details=self.details,
        )
