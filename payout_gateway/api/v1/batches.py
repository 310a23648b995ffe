"""GET /v1/settlement-batches - Current settlement batches for admin and creator views"""

from datetime import datetime
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import BatchListResponse, SettlementBatchSchema, WarningSchema
from payout_gateway.api.dependencies import get_now, get_request_id
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.services.earnings import EarningsAggregator
from payout_gateway.utils.date_utils import ensure_utc

router = APIRouter()


@router.get("/settlement-batches", response_model=BatchListResponse)
def list_settlement_batches(
    request: Request,
    creator_id: Optional[str] = Query(None, description="Limit to one creator; omit for all creators"),
    as_of: Optional[datetime] = Query(None, description="Reference time (defaults to now)"),
    status: Optional[Literal["pending", "paid"]] = Query(None, description="Filter by ledger status"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Group completed contracts into per-creator, per-month settlement batches.

    Returns:
        Batches newest month first, each with net total, transfer fee,
        final payable and eligibility, plus reconciliation warnings for
        contracts that were excluded.
    """
    reference = ensure_utc(as_of) if as_of else now
    aggregator = EarningsAggregator(db)
    result = aggregator.aggregate(reference, creator_id=creator_id, request_id=get_request_id(request))

    batches = result.batches
    if status is not None:
        batches = [b for b in batches if b.status.value == status]

    bank_flags = aggregator.bank_account_flags(batches)

    return BatchListResponse(
        as_of=reference,
        batches=[SettlementBatchSchema.from_domain(b, bank_flags.get(b.creator_id)) for b in batches],
        warnings=[WarningSchema.from_domain(w) for w in result.warnings],
    )
