"""Payout splitter.

The provider payout is rounded down to the minor unit and the platform fee
takes the remainder, so payout + fee always equals the held total.
"""

from decimal import Decimal

from getserved.models.money import round_down, to_money
from getserved.models.payment import PayoutSplit

DEFAULT_PLATFORM_FEE_RATE = Decimal("0.10")


def split_payout(
    total_amount: Decimal | int | str,
    platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE,
) -> PayoutSplit:
    """Split a held total into provider payout and platform fee.

    Args:
        total_amount: Gross amount held in escrow (>= 0)
        platform_fee_rate: Platform take rate in [0, 1)

    Returns:
        PayoutSplit whose two amounts sum exactly to total_amount

    Raises:
        ValueError: If the amount is negative or the rate is out of range
    """
    total = to_money(total_amount)
    if total < 0:
        raise ValueError(f"total_amount must be >= 0, got {total}")
    if not Decimal("0") <= platform_fee_rate < Decimal("1"):
        raise ValueError(f"platform_fee_rate must be in [0, 1), got {platform_fee_rate}")

    provider_payout = round_down(total * (Decimal("1") - platform_fee_rate))
    platform_fee = total - provider_payout

    return PayoutSplit(provider_payout=provider_payout, platform_fee=platform_fee)
