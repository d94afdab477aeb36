# Platform fee computation
# Every fee figure in the pipeline comes from compute_fee_split

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from config.app_config import PLATFORM_FEE_PERCENT

CENT = Decimal("0.01")


def round2(value) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_fee_split(amount, percent: Optional[int] = None) -> Tuple[Decimal, Decimal]:
    """
    Split a brand payment into (app_fee, influencer_amount).

    Each step is rounded to cents, so app_fee + influencer_amount == round2(amount).
    """
    rate = Decimal(str(PLATFORM_FEE_PERCENT if percent is None else percent)) / Decimal(100)
    amount = Decimal(str(amount))
    app_fee = round2(amount * rate)
    influencer_amount = round2(amount - app_fee)
    return app_fee, influencer_amount
