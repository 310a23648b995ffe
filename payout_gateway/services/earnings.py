"""Earnings aggregation service - reads the ledger snapshot and builds batch views"""

from datetime import datetime, tzinfo
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from payout_gateway.config import settings
from payout_gateway.domain.aggregation import (
    build_settlement_batches,
    group_paid_history,
    summarize_outstanding,
)
from payout_gateway.domain.models import AggregationResult, PayoutHistoryEntry, PayoutSummary, SettlementBatch
from payout_gateway.infrastructure.database.repositories import BankAccountRepository, ContractRepository
from payout_gateway.infrastructure.observability.logging import log_reconciliation_warning
from payout_gateway.infrastructure.observability.metrics import (
    aggregation_duration_histogram,
    reconciliation_warning_counter,
)


class EarningsAggregator:
    """
    Stateless view over completed contracts and the payout ledger.

    Used by the admin surface (all creators) and the creator surface (one
    creator); every call recomputes from the current database state.
    """

    def __init__(
        self,
        db: Session,
        tz: tzinfo | None = None,
        contracts: ContractRepository | None = None,
        bank_accounts: BankAccountRepository | None = None,
    ):
        self.tz = tz or settings.business_tz
        self.contracts = contracts or ContractRepository(db)
        self.bank_accounts = bank_accounts or BankAccountRepository(db)

    def aggregate(
        self,
        now: datetime,
        creator_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> AggregationResult:
        """Settlement batches for one creator, or every creator when creator_id is None"""
        with aggregation_duration_histogram.time():
            entries = self.contracts.get_completed_entries(creator_id)
            result = build_settlement_batches(entries, now, self.tz)

        for warning in result.warnings:
            reconciliation_warning_counter.labels(kind=warning.kind).inc()
            log_reconciliation_warning(warning, request_id)

        return result

    def bank_account_flags(self, batches: List[SettlementBatch]) -> Dict[str, bool]:
        """creator_id -> whether a payout account is on file"""
        creator_ids = {b.creator_id for b in batches}
        accounts = self.bank_accounts.get_by_creators(creator_ids)
        return {creator_id: creator_id in accounts for creator_id in creator_ids}

    def outstanding_summary(self, creator_id: str, now: datetime) -> PayoutSummary:
        result = self.aggregate(now, creator_id=creator_id)
        summary = summarize_outstanding(result.batches, creator_id, now, self.tz)
        summary.has_bank_account = self.bank_accounts.get_by_creator(creator_id) is not None
        return summary

    def payout_history(self, creator_id: str, now: datetime) -> List[PayoutHistoryEntry]:
        result = self.aggregate(now, creator_id=creator_id)
        return group_paid_history(result.batches, self.tz)
