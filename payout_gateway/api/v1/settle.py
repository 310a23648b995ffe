"""POST settle endpoints - commit pending payout batches to paid"""

import time
import logging
from datetime import datetime
from typing import Any, Dict, Optional
import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import SettleRequest, SettlementResponse
from payout_gateway.api.dependencies import get_now, get_request_id, get_webhook_client
from payout_gateway.config import settings
from payout_gateway.domain.exceptions import BatchNotFoundError, InvalidMonthError
from payout_gateway.domain.models import SettlementFailure, SettlementResult
from payout_gateway.infrastructure.clients.webhook import PayoutWebhookClient, settlement_event
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.infrastructure.observability.logging import log_settlement
from payout_gateway.infrastructure.observability.metrics import record_settlement
from payout_gateway.services.settlement import SettlementStateMachine

router = APIRouter()


async def deliver_settlement_event(client: PayoutWebhookClient, payload: Dict[str, Any]) -> None:
    """Background delivery; the ledger commit already happened"""
    try:
        await client.send_settlement_event(payload)
    except httpx.HTTPError as e:
        logging.error(
            f"Payout webhook delivery failed: {e}",
            extra={"creator_id": payload.get("creator_id"), "months": payload.get("months")},
        )


def _respond(
    result: SettlementResult,
    request_id: str,
    start_time: float,
    background_tasks: BackgroundTasks,
    webhook_client: PayoutWebhookClient,
) -> SettlementResponse:
    outcome = "settled" if result.settled else result.failure.value
    duration_ms = (time.time() - start_time) * 1000
    record_settlement(outcome, result.final_payable)
    log_settlement(request_id, result.creator_id, result.months, outcome, result.final_payable, duration_ms)

    # Transient ledger failure: nothing was written, caller may retry
    if result.failure is SettlementFailure.SETTLEMENT_FAILED:
        raise HTTPException(status_code=503, detail=result.detail)

    if result.settled and settings.webhook_enabled:
        background_tasks.add_task(deliver_settlement_event, webhook_client, settlement_event(result))

    return SettlementResponse.from_domain(result)


@router.post("/settlement-batches/{creator_id}/{month}/settle", response_model=SettlementResponse)
def settle_batch(
    creator_id: str,
    month: str,
    background_tasks: BackgroundTasks,
    request: Request,
    request_body: Optional[SettleRequest] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    webhook_client: PayoutWebhookClient = Depends(get_webhook_client),
):
    """
    Mark a creator's pending batch for one month as paid.

    Flow:
    1. Rebuild the batch from contracts + ledger
    2. Check threshold, transfer date and bank account
    3. Write every ledger row in one transaction (fee on the first row)
    4. Notify accounting via webhook in the background

    Precondition failures return 200 with settled=false and a failure code;
    repeating a successful call returns failure=already_settled.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    note = request_body.note if request_body else None

    try:
        result = SettlementStateMachine(db).settle(creator_id, month, now, note=note)

    except InvalidMonthError as e:
        raise HTTPException(status_code=400, detail=str(e))

    except BatchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(result, request_id, start_time, background_tasks, webhook_client)


@router.post("/creators/{creator_id}/settle-outstanding", response_model=SettlementResponse)
def settle_outstanding(
    creator_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    request_body: Optional[SettleRequest] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    webhook_client: PayoutWebhookClient = Depends(get_webhook_client),
):
    """
    Pay all due pending months of a creator as one cumulative payout.

    Carried-forward months below the minimum are included, so their
    combined total can clear the threshold.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    note = request_body.note if request_body else None

    try:
        result = SettlementStateMachine(db).settle_outstanding(creator_id, now, note=note)

    except BatchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(result, request_id, start_time, background_tasks, webhook_client)
