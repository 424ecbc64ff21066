"""FastAPI exception handlers for converting EscrowError to HTTP responses.

Every failure leaves the API as the uniform body::

    {"success": false, "error": "...", "error_code": "...", "details": {...}}

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: validation and precondition failures
- 401 Unauthorized: missing principal or bad webhook signature
- 402 Payment Required: face-match credits exhausted
- 403 Forbidden: caller is not a party to the booking / not an admin
- 404 Not Found: booking or provider row missing
- 409 Conflict: lost a race against a write that left an unexpected state
- 429 Too Many Requests: gateway or oracle rate limiting
- 502 Bad Gateway: gateway or oracle failure
- 503 Service Unavailable: face-match oracle not configured
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from getserved.models.errors import ErrorCode, ErrorResponse, EscrowError

logger = logging.getLogger(__name__)

# Codes not listed here map to 400
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Authentication -> 401
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_401_UNAUTHORIZED,
    # Authorization -> 403
    ErrorCode.FORBIDDEN: HTTP_403_FORBIDDEN,
    # Missing rows -> 404
    ErrorCode.BOOKING_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.PROVIDER_NOT_FOUND: HTTP_404_NOT_FOUND,
    # Races and duplicates -> 409
    ErrorCode.CONCURRENT_UPDATE: HTTP_409_CONFLICT,
    ErrorCode.BOOKING_ALREADY_EXISTS: HTTP_409_CONFLICT,
    ErrorCode.INCONSISTENT_LEDGER_ROW: HTTP_409_CONFLICT,
    # Upstream failures
    ErrorCode.GATEWAY_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.GATEWAY_RATE_LIMITED: HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.ORACLE_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.ORACLE_RATE_LIMITED: HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.ORACLE_CREDITS_EXHAUSTED: HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.ORACLE_NOT_CONFIGURED: HTTP_503_SERVICE_UNAVAILABLE,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def escrow_error_handler(request: Request, exc: EscrowError) -> JSONResponse:
    """Convert an EscrowError to the uniform error body."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_response().model_dump(mode="json"),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request-body validation failures as 400 with the uniform body."""
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    body = ErrorResponse(
        error=errors[0]["msg"] if errors else "Request validation failed",
        error_code=ErrorCode.VALIDATION_FAILED.value,
        details={"errors": errors},
    )
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for uncaught exceptions; internal details are not exposed."""
    logger.exception("Unhandled exception: %s", exc)
    body = ErrorResponse(error="An unexpected error occurred", error_code="ERR_INTERNAL")
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(mode="json")
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(EscrowError, escrow_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
