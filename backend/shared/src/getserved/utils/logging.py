"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for escrow transition and webhook logging

Usage:
    from getserved.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Releasing escrow", extra={"booking_id": "bk-123"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID, or None if not set."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for grep/filtering in CloudWatch
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; an existing structured handler is reused.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def log_escrow_transition(
    logger: logging.Logger,
    operation: str,
    *,
    booking_id: str,
    result: str,
    payment_status: str | None = None,
    reference: str | None = None,
    amount: Any = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log the outcome of one escrow transition attempt.

    Args:
        logger: Logger instance
        operation: Transition name (e.g., "initiate_payment", "release_payment")
        booking_id: Booking the transition targeted
        result: One of "applied", "noop", "rejected", "lost_race"
        payment_status: Payment status after the attempt, if known
        reference: Payment reference if relevant
        amount: Money amount if relevant (payout, refund)
        error: Error code or message for rejected attempts
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "operation": operation,
        "booking_id": booking_id,
        "result": result,
    }

    if payment_status:
        context["payment_status"] = payment_status
    if reference:
        context["reference"] = reference
    if amount is not None:
        context["amount"] = str(amount)
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Escrow transition: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if result in ("rejected", "lost_race"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    reference: str | None,
    *,
    booking_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a gateway webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: Gateway event type (e.g., "charge.success")
        reference: Payment reference carried by the event
        booking_id: Associated booking ID if available
        result: Processing result (success, duplicate, skipped, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "reference": reference,
    }

    if booking_id:
        context["booking_id"] = booking_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({reference})"]
    if result:
        msg_parts.append(f"result={result}")
    if booking_id:
        msg_parts.append(f"booking={booking_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result == "duplicate" or result == "skipped":
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)
