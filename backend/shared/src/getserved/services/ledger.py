"""Booking ledger: typed access to the bookings table.

Every escrow transition is written as one UpdateItem whose
ConditionExpression is rendered from the transition's guard. A failed
condition returns None; the caller re-reads the row and decides what that
means.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from getserved.models.booking import Booking
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.transition import Condition, GuardOp, Transition

from .dynamodb import BOOKINGS_TABLE, DynamoDBService


def to_attribute(value: Any) -> Any:
    """Convert a Python value to its DynamoDB representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dt.datetime):
        return value.isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def booking_to_item(booking: Booking) -> dict[str, Any]:
    data = booking.model_dump(exclude_none=True)
    return {key: to_attribute(value) for key, value in data.items()}


def item_to_booking(item: dict[str, Any]) -> Booking:
    return Booking.model_validate(item)


class ExpressionBuilder:
    """Accumulates placeholder names and values for one UpdateItem call."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def name(self, attribute: str) -> str:
        if attribute not in self.names.values():
            self.names[f"#f{len(self.names)}"] = attribute
        return next(k for k, v in self.names.items() if v == attribute)

    def value(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = to_attribute(value)
        return placeholder

    def update_expression(self, updates: dict[str, Any]) -> str:
        sets: list[str] = []
        removes: list[str] = []
        for attribute, value in updates.items():
            if value is None:
                removes.append(self.name(attribute))
            else:
                sets.append(f"{self.name(attribute)} = {self.value(value)}")

        parts = []
        if sets:
            parts.append("SET " + ", ".join(sets))
        if removes:
            parts.append("REMOVE " + ", ".join(removes))
        return " ".join(parts)

    def condition(self, clause: Condition) -> str:
        name = self.name(clause.attribute)
        if clause.op == GuardOp.ABSENT:
            return f"attribute_not_exists({name})"
        if clause.op == GuardOp.EQ:
            return f"{name} = {self.value(clause.value)}"
        return f"(attribute_not_exists({name}) OR {name} = {self.value(clause.value)})"

    def condition_expression(self, key_attribute: str, guard: list[Condition]) -> str:
        clauses = [f"attribute_exists({self.name(key_attribute)})"]
        clauses.extend(self.condition(clause) for clause in guard)
        return " AND ".join(clauses)


class BookingLedger:
    """Reads and conditionally writes booking rows."""

    KEY = "booking_id"

    def __init__(self, db: DynamoDBService) -> None:
        self.db = db

    def create(self, booking: Booking) -> Booking:
        """Insert a new booking row.

        Raises:
            EscrowError: BOOKING_ALREADY_EXISTS if the id is taken
        """
        created = self.db.put_item(
            BOOKINGS_TABLE,
            booking_to_item(booking),
            condition_expression="attribute_not_exists(booking_id)",
        )
        if not created:
            raise EscrowError(
                ErrorCode.BOOKING_ALREADY_EXISTS,
                details={"booking_id": booking.booking_id},
            )
        return booking

    def get(self, booking_id: str) -> Booking | None:
        item = self.db.get_item(BOOKINGS_TABLE, {self.KEY: booking_id})
        return item_to_booking(item) if item else None

    def require(self, booking_id: str) -> Booking:
        """Get a booking or raise BOOKING_NOT_FOUND."""
        booking = self.get(booking_id)
        if booking is None:
            raise EscrowError(ErrorCode.BOOKING_NOT_FOUND, details={"booking_id": booking_id})
        return booking

    def apply(self, transition: Transition) -> Booking | None:
        """Apply a transition as a single compare-and-swap update.

        Returns:
            The row after the write, or None if the guard no longer held
        """
        builder = ExpressionBuilder()
        update_expression = builder.update_expression(transition.updates)
        condition_expression = builder.condition_expression(self.KEY, transition.guard)

        attrs = self.db.update_item(
            BOOKINGS_TABLE,
            key={self.KEY: transition.booking_id},
            update_expression=update_expression,
            expression_attribute_values=builder.values,
            expression_attribute_names=builder.names,
            condition_expression=condition_expression,
        )
        return item_to_booking(attrs) if attrs else None

    def for_provider(self, provider_id: str) -> list[Booking]:
        items = self.db.query_by_gsi(
            BOOKINGS_TABLE, "provider_id-index", "provider_id", provider_id
        )
        return [item_to_booking(item) for item in items]

    def for_customer(self, customer_id: str) -> list[Booking]:
        items = self.db.query_by_gsi(
            BOOKINGS_TABLE, "customer_id-index", "customer_id", customer_id
        )
        return [item_to_booking(item) for item in items]
