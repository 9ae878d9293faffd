"""Driver earnings: gross fare minus transaction fee and platform commission."""

import math
from typing import Dict, Optional

from ridepay.core.config import settings
from ridepay.core.exceptions import ValidationException


def calculate_driver_earnings(
    amount: float,
    *,
    fee_rate: Optional[float] = None,
    fee_fixed: Optional[float] = None,
    commission_rate: Optional[float] = None,
) -> Dict[str, float]:
    """
    Rates are percentages. Results are rounded to 2 decimals and driver
    earnings never go below zero.
    """
    if amount is None or math.isnan(amount) or amount < 0:
        raise ValidationException(f"Invalid payout amount: {amount}", code="INVALID_AMOUNT")

    rate = settings.transaction_fee_rate if fee_rate is None else fee_rate
    fixed = settings.transaction_fee_fixed if fee_fixed is None else fee_fixed
    commission_pct = settings.commission_rate if commission_rate is None else commission_rate

    transaction_fee = round(amount * rate / 100 + fixed, 2)
    commission = round(amount * commission_pct / 100, 2)
    driver_earnings = round(max(0.0, amount - transaction_fee - commission), 2)

    return {
        "original_amount": amount,
        "transaction_fee": transaction_fee,
        "commission": commission,
        "driver_earnings": driver_earnings,
    }
