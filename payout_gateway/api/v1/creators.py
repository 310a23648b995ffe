"""GET /v1/creators/{creator_id}/... - Creator-facing payout views"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import PayoutHistoryItem, PayoutHistoryResponse, PayoutSummaryResponse
from payout_gateway.api.dependencies import get_now
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.services.earnings import EarningsAggregator
from payout_gateway.utils.date_utils import ensure_utc

router = APIRouter()


@router.get("/creators/{creator_id}/payout-summary", response_model=PayoutSummaryResponse)
def get_payout_summary(
    creator_id: str,
    as_of: Optional[datetime] = Query(None, description="Reference time (defaults to now)"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Cumulative outstanding balance across all due pending months.

    Returns:
        Months included, net total, transfer fee, final payable and whether
        the creator can be paid (threshold met and bank account on file)
    """
    reference = ensure_utc(as_of) if as_of else now
    summary = EarningsAggregator(db).outstanding_summary(creator_id, reference)
    return PayoutSummaryResponse.from_domain(summary, reference)


@router.get("/creators/{creator_id}/payout-history", response_model=PayoutHistoryResponse)
def get_payout_history(
    creator_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Completed payouts grouped by payout date, newest first"""
    history = EarningsAggregator(db).payout_history(creator_id, now)
    return PayoutHistoryResponse(
        creator_id=creator_id,
        payouts=[PayoutHistoryItem.from_domain(entry) for entry in history],
    )
