"""Transition plans produced by the escrow state machine.

A plan is pure data: the attribute updates to apply, and the guard the
stored row must still satisfy for the write to go through. The ledger
renders the guard into a DynamoDB ConditionExpression.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .events import EscrowEvent


class GuardOp(str, Enum):
    """Comparison applied to one stored attribute."""

    EQ = "eq"
    ABSENT = "absent"
    ABSENT_OR_EQ = "absent_or_eq"


class Condition(BaseModel):
    """One clause of a compare-and-swap guard."""

    model_config = ConfigDict(frozen=True)

    attribute: str
    op: GuardOp
    value: Any = None


class Transition(BaseModel):
    """A legal state change, to be applied as one conditional update."""

    operation: str
    booking_id: str
    updates: dict[str, Any]
    guard: list[Condition] = Field(default_factory=list)
    events: list[EscrowEvent] = Field(default_factory=list)


class NoOp(BaseModel):
    """The event is already reflected in the row; nothing to write."""

    operation: str
    booking_id: str
    reason: str


def eq(attribute: str, value: Any) -> Condition:
    return Condition(attribute=attribute, op=GuardOp.EQ, value=value)


def absent(attribute: str) -> Condition:
    return Condition(attribute=attribute, op=GuardOp.ABSENT)


def absent_or_eq(attribute: str, value: Any) -> Condition:
    return Condition(attribute=attribute, op=GuardOp.ABSENT_OR_EQ, value=value)
