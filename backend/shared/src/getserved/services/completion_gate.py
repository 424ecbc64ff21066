"""Completion gate: two independent confirmations, one release.

Release is edge-triggered. Only the write that flipped the second flag
(observed through the post-write row) may trigger it; a replay that finds
both flags already true does not.
"""

from getserved.models.booking import Booking
from getserved.models.enums import CompletionRole


def flag_value(booking: Booking, role: CompletionRole) -> bool:
    return bool(getattr(booking, role.flag_field))


def outstanding_parties(booking: Booking) -> list[CompletionRole]:
    """Parties that have not yet marked the job complete, customer first."""
    return [role for role in CompletionRole if not flag_value(booking, role)]


def is_fully_confirmed(booking: Booking) -> bool:
    return not outstanding_parties(booking)


def flipped_second_flag(before: Booking, after: Booking, role: CompletionRole) -> bool:
    """Whether this role's write is the one that completed the pair.

    Args:
        before: Row as read before the conditional write
        after: Row returned by the conditional write (ALL_NEW)
        role: Role whose flag the write set
    """
    return (
        not flag_value(before, role)
        and flag_value(after, role)
        and is_fully_confirmed(after)
    )


def describe_outstanding(booking: Booking) -> str:
    """Human-readable message naming the parties still to confirm."""
    parties = outstanding_parties(booking)
    if not parties:
        return "Both parties have marked the job complete"
    if len(parties) == 2:
        return "Both customer and provider must mark job as complete"
    return f"Waiting for {parties[0].value} to mark job as complete"
