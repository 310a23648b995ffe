"""Commission and transfer-fee arithmetic for creator payouts

All amounts are integers in the smallest currency unit.
"""

COMMISSION_RATE_PERCENT = 12
CREATOR_SHARE_PERCENT = 100 - COMMISSION_RATE_PERCENT
TRANSFER_FEE = 330
MIN_PAYOUT_AMOUNT = 1000


def net_amount(gross: int) -> int:
    """
    Amount owed to the creator for one contract.

    Floors the creator's 88% share, so the platform keeps any fraction:
        3000 → 2640, 900 → 792, 1 → 0
    """
    if gross < 0:
        raise ValueError(f"gross price must be non-negative, got {gross}")
    return gross * CREATOR_SHARE_PERCENT // 100


def commission(gross: int) -> int:
    """Platform cut; commission(g) + net_amount(g) == g"""
    return gross - net_amount(gross)


def is_eligible_for_payout(total_net: int) -> bool:
    return total_net >= MIN_PAYOUT_AMOUNT


def transfer_fee_for(total_net: int) -> int:
    """Fee is charged once per eligible batch, never per line item"""
    return TRANSFER_FEE if is_eligible_for_payout(total_net) else 0


def final_payable(total_net: int) -> int:
    """
    Amount actually transferred for a batch.

    Below the minimum the batch is carried forward and nothing is payable:
        999 → 0, 1000 → 670
    """
    if not is_eligible_for_payout(total_net):
        return 0
    return total_net - TRANSFER_FEE
