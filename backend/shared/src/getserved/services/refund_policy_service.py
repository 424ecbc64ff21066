"""Refund calculator and refund policy.

The calculator is pure arithmetic over [0, 100] percent. The policy layer adds
the configurable constraints (minimum percentage, percentage step) that the
admin dashboard applies; by default it allows any percentage in range.
"""

from decimal import Decimal
from typing import TypedDict

from getserved.config import EscrowPolicy
from getserved.models.errors import ErrorCode, EscrowError
from getserved.models.money import round_half_up, to_money

HUNDRED = Decimal("100")


class RefundCalculation(TypedDict):
    """Result of a refund calculation."""

    refund_amount: Decimal
    refund_percentage: Decimal
    original_amount: Decimal
    description: str


def calculate_refund(
    total_amount: Decimal | int | str,
    percentage: Decimal | int | str,
) -> Decimal:
    """Refund amount for a percentage of the held total, half-up at the minor unit.

    Raises:
        EscrowError: INVALID_REFUND_PERCENTAGE if percentage is outside [0, 100]
    """
    total = to_money(total_amount)
    pct = to_money(percentage)
    if not Decimal("0") <= pct <= HUNDRED:
        raise EscrowError(
            ErrorCode.INVALID_REFUND_PERCENTAGE,
            details={"refund_percentage": str(pct)},
        )
    return round_half_up(total * pct / HUNDRED)


class RefundPolicyService:
    """Applies refund policy and computes refund amounts.

    Policy knobs come from EscrowPolicy:
    - min_refund_percentage: smallest percentage an admin may refund (default 0)
    - refund_percentage_step: percentages must be a multiple of this (default: any)
    """

    def __init__(self, policy: EscrowPolicy | None = None) -> None:
        self.policy = policy or EscrowPolicy()

    def validate_percentage(self, percentage: Decimal | int | str) -> Decimal:
        """Check a refund percentage against range and policy.

        Returns:
            The percentage as Decimal

        Raises:
            EscrowError: INVALID_REFUND_PERCENTAGE
        """
        pct = to_money(percentage)

        if not Decimal("0") <= pct <= HUNDRED:
            raise EscrowError(
                ErrorCode.INVALID_REFUND_PERCENTAGE,
                details={"refund_percentage": str(pct)},
            )

        if pct < self.policy.min_refund_percentage:
            raise EscrowError(
                ErrorCode.INVALID_REFUND_PERCENTAGE,
                f"Refund percentage must be at least {self.policy.min_refund_percentage}",
                details={"refund_percentage": str(pct)},
            )

        step = self.policy.refund_percentage_step
        if step is not None and pct % step != 0:
            raise EscrowError(
                ErrorCode.INVALID_REFUND_PERCENTAGE,
                f"Refund percentage must be a multiple of {step}",
                details={"refund_percentage": str(pct)},
            )

        return pct

    def calculate_refund_amount(
        self,
        total_amount: Decimal | int | str,
        percentage: Decimal | int | str,
    ) -> RefundCalculation:
        """Validate the percentage and compute the refund.

        Args:
            total_amount: Amount held in escrow
            percentage: Requested refund percentage

        Returns:
            RefundCalculation with the refund amount and a description
        """
        pct = self.validate_percentage(percentage)
        total = to_money(total_amount)
        refund_amount = calculate_refund(total, pct)

        if pct == HUNDRED:
            description = "Full refund (100%)"
        elif pct == 0:
            description = "No refund (0%), recorded for audit"
        else:
            description = f"Partial refund ({pct.normalize():f}%)"

        return RefundCalculation(
            refund_amount=refund_amount,
            refund_percentage=pct,
            original_amount=total,
            description=description,
        )
