"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional

from payout_gateway.domain.models import (
    PayoutHistoryEntry,
    PayoutSummary,
    ReconciliationWarning,
    SettlementBatch,
    SettlementResult,
)


class LineItemSchema(BaseModel):
    """Single contract within a settlement batch"""

    contract_id: str
    title: str
    gross_price: int
    net_amount: int
    completed_at: datetime
    transfer_fee: Optional[int] = None
    paid_at: Optional[datetime] = None


class SettlementBatchSchema(BaseModel):
    """Settlement batch for one creator, month and ledger status"""

    creator_id: str
    completed_month: str
    status: str
    line_items: List[LineItemSchema]
    total_gross: int
    total_net: int
    transfer_fee_applied: int
    final_payable: int
    eligible: bool
    carried_forward: bool
    transfer_eligible_date: date
    transfer_available: bool
    all_paid: bool
    paid_at: Optional[datetime] = None
    has_bank_account: Optional[bool] = None

    @classmethod
    def from_domain(cls, batch: SettlementBatch, has_bank_account: Optional[bool] = None) -> "SettlementBatchSchema":
        return cls(
            creator_id=batch.creator_id,
            completed_month=batch.completed_month,
            status=batch.status.value,
            line_items=[LineItemSchema(**vars(item)) for item in batch.line_items],
            total_gross=batch.total_gross,
            total_net=batch.total_net,
            transfer_fee_applied=batch.transfer_fee_applied,
            final_payable=batch.final_payable,
            eligible=batch.eligible,
            carried_forward=batch.carried_forward,
            transfer_eligible_date=batch.transfer_eligible_date,
            transfer_available=batch.transfer_available,
            all_paid=batch.all_paid,
            paid_at=batch.paid_at,
            has_bank_account=has_bank_account,
        )


class WarningSchema(BaseModel):
    """Contract excluded or flagged during aggregation"""

    kind: str
    creator_id: str
    contract_id: Optional[str] = None
    detail: str

    @classmethod
    def from_domain(cls, warning: ReconciliationWarning) -> "WarningSchema":
        return cls(**vars(warning))


class BatchListResponse(BaseModel):
    """Response for GET /v1/settlement-batches"""

    as_of: datetime
    batches: List[SettlementBatchSchema]
    warnings: List[WarningSchema]


class SettleRequest(BaseModel):
    """Optional body for settle endpoints"""

    note: Optional[str] = Field(None, max_length=1000, description="Admin note stored on every ledger row")


class SettlementResponse(BaseModel):
    """Response for settle endpoints"""

    creator_id: str
    months: List[str]
    settled: bool
    failure: Optional[str] = None
    contract_ids: List[str]
    total_net: int
    transfer_fee: int
    final_payable: int
    paid_at: Optional[datetime] = None
    detail: Optional[str] = None

    @classmethod
    def from_domain(cls, result: SettlementResult) -> "SettlementResponse":
        return cls(
            creator_id=result.creator_id,
            months=result.months,
            settled=result.settled,
            failure=result.failure.value if result.failure else None,
            contract_ids=result.contract_ids,
            total_net=result.total_net,
            transfer_fee=result.transfer_fee,
            final_payable=result.final_payable,
            paid_at=result.paid_at,
            detail=result.detail,
        )


class PayoutSummaryResponse(BaseModel):
    """Response for GET /v1/creators/{creator_id}/payout-summary"""

    creator_id: str
    as_of: datetime
    due_months: List[str]
    line_item_count: int
    total_net: int
    transfer_fee_applied: int
    final_payable: int
    eligible: bool
    pending_not_due: int
    lifetime_paid: int
    has_bank_account: bool

    @classmethod
    def from_domain(cls, summary: PayoutSummary, as_of: datetime) -> "PayoutSummaryResponse":
        return cls(as_of=as_of, **vars(summary))


class PayoutHistoryItem(BaseModel):
    """Payout committed on one date"""

    paid_on: date
    months: List[str]
    contract_ids: List[str]
    total_net: int
    transfer_fee: int
    final_amount: int

    @classmethod
    def from_domain(cls, entry: PayoutHistoryEntry) -> "PayoutHistoryItem":
        return cls(**vars(entry))


class PayoutHistoryResponse(BaseModel):
    """Response for GET /v1/creators/{creator_id}/payout-history"""

    creator_id: str
    payouts: List[PayoutHistoryItem]
