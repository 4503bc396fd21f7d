# backend/convozo/services/pricing_service.py

from decimal import ROUND_FLOOR, Decimal
from typing import NamedTuple


class FeeSplit(NamedTuple):
    amount: int
    platform_fee: int
    creator_amount: int


def calculate_fee_split(amount: int, fee_percentage: float) -> FeeSplit:
    """
    platform_fee = floor(amount * fee_percentage / 100), creator gets the rest.
    Amounts are integer minor units (cents). Decimal keeps fractional
    percentages like 12.5 from drifting.
    """
    if amount < 0:
        raise ValueError("amount must not be negative")
    if not 0 <= fee_percentage <= 100:
        raise ValueError("fee_percentage must be between 0 and 100")

    fee = (Decimal(amount) * Decimal(str(fee_percentage)) / Decimal(100)).to_integral_value(
        rounding=ROUND_FLOOR
    )
    platform_fee = int(fee)
    return FeeSplit(amount, platform_fee, amount - platform_fee)
