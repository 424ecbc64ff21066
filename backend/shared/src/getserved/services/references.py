"""Payment reference generation and parsing.

Format: ``{prefix}_{booking_id}_{timestamp_ms}``. The booking id may itself
contain underscores; the timestamp is always the last segment.
"""

import time

from getserved.models.errors import ErrorCode, EscrowError


def generate_reference(prefix: str, booking_id: str, timestamp_ms: int | None = None) -> str:
    """Build a new payment reference for a booking."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{prefix}_{booking_id}_{timestamp_ms}"


def parse_booking_id(reference: str, prefix: str) -> str:
    """Extract the booking id from a payment reference.

    Raises:
        EscrowError: INVALID_REFERENCE if the reference is not in the expected format
    """
    head = f"{prefix}_"
    if not reference.startswith(head):
        raise EscrowError(ErrorCode.INVALID_REFERENCE, details={"reference": reference})

    body = reference[len(head):]
    try:
        split_at = body.rindex("_")
    except ValueError:
        raise EscrowError(
            ErrorCode.INVALID_REFERENCE, details={"reference": reference}
        ) from None

    booking_id, timestamp = body[:split_at], body[split_at + 1:]
    if not booking_id or not timestamp.isdigit():
        raise EscrowError(ErrorCode.INVALID_REFERENCE, details={"reference": reference})

    return booking_id
