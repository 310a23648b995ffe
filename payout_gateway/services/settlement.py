"""Settlement state machine - commits pending payout batches to paid"""

import logging
from datetime import datetime, tzinfo
from typing import List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_gateway.config import settings
from payout_gateway.domain.aggregation import build_settlement_batches, due_pending_batches
from payout_gateway.domain.exceptions import (
    AlreadySettledError,
    BatchNotFoundError,
    BelowThresholdError,
    MissingBankAccountError,
    NotYetEligibleError,
    SettlementError,
    SettlementFailedError,
)
from payout_gateway.domain.fees import (
    MIN_PAYOUT_AMOUNT,
    TRANSFER_FEE,
    final_payable,
    is_eligible_for_payout,
    transfer_fee_for,
)
from payout_gateway.domain.models import (
    LineItem,
    PaymentStatus,
    SettlementBatch,
    SettlementFailure,
    SettlementResult,
)
from payout_gateway.domain.schedule import parse_month
from payout_gateway.infrastructure.database.repositories import (
    BankAccountRepository,
    ContractRepository,
    PaymentRepository,
)
from payout_gateway.utils.date_utils import local_date


class SettlementStateMachine:
    """
    Executes the pending -> paid transition for settlement batches.

    Every ledger row of a settlement is written in one transaction: either all
    line items become paid or none do. The unique contract_id on the ledger
    plus the pending-only update make a second concurrent settle fail with
    AlreadySettled instead of charging the transfer fee twice.
    """

    def __init__(
        self,
        db: Session,
        tz: tzinfo | None = None,
        contracts: ContractRepository | None = None,
        ledger: PaymentRepository | None = None,
        bank_accounts: BankAccountRepository | None = None,
    ):
        self.db = db
        self.tz = tz or settings.business_tz
        self.contracts = contracts or ContractRepository(db)
        self.ledger = ledger or PaymentRepository(db)
        self.bank_accounts = bank_accounts or BankAccountRepository(db)

    def settle(
        self,
        creator_id: str,
        completed_month: str,
        now: datetime,
        note: Optional[str] = None,
    ) -> SettlementResult:
        """
        Mark one creator's pending batch for a month as paid.

        Preconditions, checked in order:
        1. A pending batch exists (a paid-only month reports ALREADY_SETTLED)
        2. total_net clears the minimum payout amount
        3. Today (business tz) is on or after the transfer eligible date
        4. The creator has a bank account on file

        Raises:
            InvalidMonthError: completed_month is not YYYY-MM
            BatchNotFoundError: creator has no completed contracts in that month
        """
        parse_month(completed_month)
        batches = self._current_batches(creator_id, now)

        pending = self._find(batches, completed_month, PaymentStatus.PENDING)
        if pending is None:
            paid = self._find(batches, completed_month, PaymentStatus.PAID)
            if paid is None:
                raise BatchNotFoundError(f"No completed contracts for {creator_id} in {completed_month}")
            return self._already_settled(creator_id, [paid])

        return self._execute(creator_id, [pending], now, note)

    def settle_outstanding(
        self,
        creator_id: str,
        now: datetime,
        note: Optional[str] = None,
    ) -> SettlementResult:
        """
        Pay every due pending month of a creator as one cumulative payout.

        Months carried forward below the minimum become payable here once
        their sum clears it. One transfer fee is charged for the whole payout.

        Raises:
            BatchNotFoundError: creator has no completed contracts at all
        """
        batches = self._current_batches(creator_id, now)
        pending = [b for b in batches if b.status is PaymentStatus.PENDING]

        if not pending:
            paid = [b for b in batches if b.status is PaymentStatus.PAID]
            if not paid:
                raise BatchNotFoundError(f"No completed contracts for {creator_id}")
            return self._already_settled(creator_id, paid)

        due = due_pending_batches(pending, creator_id, now, self.tz)
        if not due:
            months = sorted(b.completed_month for b in pending)
            error = NotYetEligibleError(
                f"No pending month is due yet; earliest transfer date is "
                f"{min(b.transfer_eligible_date for b in pending).isoformat()}"
            )
            return self._failure(creator_id, months, sum(b.total_net for b in pending), error)

        return self._execute(creator_id, due, now, note)

    def _current_batches(self, creator_id: str, now: datetime) -> List[SettlementBatch]:
        entries = self.contracts.get_completed_entries(creator_id)
        return build_settlement_batches(entries, now, self.tz).batches

    @staticmethod
    def _find(
        batches: List[SettlementBatch], completed_month: str, status: PaymentStatus
    ) -> Optional[SettlementBatch]:
        for batch in batches:
            if batch.completed_month == completed_month and batch.status is status:
                return batch
        return None

    def _execute(
        self,
        creator_id: str,
        batches: List[SettlementBatch],
        now: datetime,
        note: Optional[str],
    ) -> SettlementResult:
        months = [b.completed_month for b in batches]
        total_net = sum(b.total_net for b in batches)

        try:
            self._check_preconditions(creator_id, batches, total_net, now)
            self._commit(creator_id, batches, now, note)
        except SettlementError as e:
            return self._failure(creator_id, months, total_net, e)

        return SettlementResult(
            creator_id=creator_id,
            months=months,
            settled=True,
            contract_ids=[cid for b in batches for cid in b.contract_ids],
            total_net=total_net,
            transfer_fee=transfer_fee_for(total_net),
            final_payable=final_payable(total_net),
            paid_at=now,
        )

    def _check_preconditions(
        self,
        creator_id: str,
        batches: List[SettlementBatch],
        total_net: int,
        now: datetime,
    ) -> None:
        if not is_eligible_for_payout(total_net):
            raise BelowThresholdError(
                f"Total {total_net} is below the minimum payout of {MIN_PAYOUT_AMOUNT}; carried forward"
            )

        today = local_date(now, self.tz)
        latest_date = max(b.transfer_eligible_date for b in batches)
        if today < latest_date:
            raise NotYetEligibleError(f"Transfer available from {latest_date.isoformat()}")

        if self.bank_accounts.get_by_creator(creator_id) is None:
            raise MissingBankAccountError(f"Creator {creator_id} has no bank account on file")

    def _commit(
        self,
        creator_id: str,
        batches: List[SettlementBatch],
        now: datetime,
        note: Optional[str],
    ) -> None:
        """
        Write all ledger rows and commit once.

        The transfer fee is recorded on the first line item (earliest month,
        then earliest completion) and left NULL on the others.
        """
        rows = [(b.completed_month, item) for b in batches for item in b.line_items]
        try:
            for index, (month, item) in enumerate(rows):
                self.ledger.upsert(
                    contract_id=item.contract_id,
                    creator_id=creator_id,
                    completed_month=month,
                    amount=item.net_amount,
                    status=PaymentStatus.PAID.value,
                    paid_at=now,
                    transfer_fee=TRANSFER_FEE if index == 0 else None,
                    note=note,
                )
            self._verify_written(creator_id, rows)
            self.db.commit()
        except (AlreadySettledError, SettlementFailedError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(
                f"Ledger write failed, settlement rolled back: {e}",
                extra={"creator_id": creator_id, "months": [b.completed_month for b in batches]},
            )
            raise SettlementFailedError("Ledger write failed; no line items were marked paid") from e

    def _verify_written(self, creator_id: str, rows: List[Tuple[str, LineItem]]) -> None:
        """Re-read each month's ledger inside the transaction before committing"""
        written = {}
        for month in sorted({month for month, _ in rows}):
            for record in self.ledger.find_by_creator_and_month(creator_id, month):
                written[record.contract_id] = record

        for _, item in rows:
            record = written.get(item.contract_id)
            if (
                record is None
                or record.status != PaymentStatus.PAID.value
                or record.amount != item.net_amount
            ):
                raise SettlementFailedError(
                    f"Ledger row for contract {item.contract_id} does not match the settlement"
                )

    @staticmethod
    def _failure(
        creator_id: str, months: List[str], total_net: int, error: SettlementError
    ) -> SettlementResult:
        return SettlementResult(
            creator_id=creator_id,
            months=months,
            settled=False,
            failure=SettlementFailure(error.code),
            total_net=total_net,
            detail=str(error),
        )

    @staticmethod
    def _already_settled(creator_id: str, paid: List[SettlementBatch]) -> SettlementResult:
        """Report the existing paid state without writing anything"""
        paid_times = [b.paid_at for b in paid if b.paid_at is not None]
        return SettlementResult(
            creator_id=creator_id,
            months=sorted(b.completed_month for b in paid),
            settled=False,
            failure=SettlementFailure.ALREADY_SETTLED,
            contract_ids=[cid for b in paid for cid in b.contract_ids],
            total_net=sum(b.total_net for b in paid),
            transfer_fee=sum(b.transfer_fee_applied for b in paid),
            final_payable=sum(b.final_payable for b in paid),
            paid_at=max(paid_times) if paid_times else None,
            detail="Batch is already settled",
        )
