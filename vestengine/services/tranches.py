from __future__ import annotations

from decimal import Decimal

from vestengine.services import share_math
from vestengine.services.calendar import CLIFF_MONTHS, TOTAL_VESTING_MONTHS


def allocate_tranches(total_shares) -> list[Decimal]:
    """Split a grant into 48 monthly tranches.

    Tranches 1-47 get the rounded standard size and the last one absorbs the
    remainder, so the tranches always sum to ``total_shares`` exactly. For
    grants of a few hundredths of a share the standard size rounds up and the
    remainder goes to zero or below; callers skip such tranches and cap what
    they record at the grant total.
    """
    amount = share_math.to_decimal(total_shares)
    if not share_math.has_share_precision(amount):
        raise ValueError("share amount must have at most three decimal places")
    if amount <= 0:
        raise ValueError("share amount must be positive")

    standard = share_math.divide(amount, TOTAL_VESTING_MONTHS)
    tranches = [standard] * (TOTAL_VESTING_MONTHS - 1)
    tranches.append(share_math.subtract(amount, share_math.multiply(standard, TOTAL_VESTING_MONTHS - 1)))
    return tranches


def cliff_amount(tranches: list[Decimal]) -> Decimal:
    return share_math.total(tranches[:CLIFF_MONTHS])
