"""Earnings aggregation - groups completed contracts into settlement batches"""

from collections import defaultdict
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from payout_gateway.domain.exceptions import (
    ContractIntegrityError,
    DomainException,
    DuplicatePaymentRecordError,
    InvalidLedgerMonthError,
    InvalidLedgerStatusError,
    InvalidMonthError,
    MissingCompletionDateError,
    NegativePriceError,
)
from payout_gateway.domain.fees import (
    final_payable,
    is_eligible_for_payout,
    net_amount,
    transfer_fee_for,
)
from payout_gateway.domain.models import (
    AggregationResult,
    LedgerEntry,
    LineItem,
    PaymentRecord,
    PaymentStatus,
    PayoutHistoryEntry,
    PayoutSummary,
    ReconciliationWarning,
    SettlementBatch,
)
from payout_gateway.domain.schedule import eligible_date, is_transfer_due, month_key, parse_month
from payout_gateway.utils.date_utils import local_date

BatchKey = Tuple[str, PaymentStatus]

# Older admin tooling wrote "completed" for settled rows
_LEDGER_STATUS_ALIASES = {
    "pending": PaymentStatus.PENDING,
    "paid": PaymentStatus.PAID,
    "completed": PaymentStatus.PAID,
}


def ledger_status(record: PaymentRecord) -> PaymentStatus:
    value = record.status.value if isinstance(record.status, PaymentStatus) else record.status
    try:
        return _LEDGER_STATUS_ALIASES[value]
    except KeyError:
        raise InvalidLedgerStatusError(record.contract_id, f"unknown ledger status {value!r}") from None


def build_line_item(
    entry: LedgerEntry, tz: tzinfo
) -> Tuple[PaymentStatus, str, LineItem, Optional[ReconciliationWarning]]:
    """
    Turn one contract and its ledger rows into a batch line item.

    Returns (status, completed_month, line_item, warning). The warning is
    informational and does not exclude the contract.

    Raises:
        ContractIntegrityError: contract must be excluded from aggregation
    """
    contract = entry.contract

    if len(entry.records) > 1:
        raise DuplicatePaymentRecordError(
            contract.id, f"{len(entry.records)} ledger rows for one contract"
        )
    if contract.final_price is None or contract.final_price < 0:
        raise NegativePriceError(contract.id, f"final_price={contract.final_price}")
    if contract.completed_at is None:
        raise MissingCompletionDateError(contract.id, "completed contract has no completed_at")

    record = entry.records[0] if entry.records else None
    status = ledger_status(record) if record is not None else PaymentStatus.PENDING
    computed_net = net_amount(contract.final_price)
    month = month_key(contract.completed_at, tz)
    warning = None

    # No ledger row yet: implicitly pending, amount computed on the fly
    if status is PaymentStatus.PENDING:
        if record is not None and record.amount is not None and record.amount != computed_net:
            warning = ReconciliationWarning(
                kind="amount_mismatch",
                creator_id=contract.creator_id,
                contract_id=contract.id,
                detail=f"ledger amount {record.amount} != computed net {computed_net}",
            )
        item = LineItem(
            contract_id=contract.id,
            title=contract.title,
            gross_price=contract.final_price,
            net_amount=computed_net,
            completed_at=contract.completed_at,
        )
        return PaymentStatus.PENDING, month, item, warning

    # Paid rows report what was actually written to the ledger
    if record.completed_month:
        try:
            parse_month(record.completed_month)
        except InvalidMonthError as e:
            raise InvalidLedgerMonthError(contract.id, str(e)) from e
        month = record.completed_month

    item = LineItem(
        contract_id=contract.id,
        title=contract.title,
        gross_price=contract.final_price,
        net_amount=record.amount if record.amount is not None else computed_net,
        completed_at=contract.completed_at,
        transfer_fee=record.transfer_fee,
        paid_at=record.paid_at,
    )
    return PaymentStatus.PAID, month, item, None


def build_batch(
    creator_id: str,
    completed_month: str,
    status: PaymentStatus,
    line_items: List[LineItem],
    now: datetime,
    tz: tzinfo,
) -> SettlementBatch:
    """
    Annotate a group of line items with totals, fee and eligibility.

    Pending batches:
    - fee applied once per batch, only when total_net clears the minimum
    - below the minimum: no fee, nothing payable, carried forward
    - transfer available once today (business tz) reaches the eligible date

    Paid batches report the fee recorded on the ledger rows.
    """
    items = sorted(line_items, key=lambda i: (i.completed_at, i.contract_id))
    total_net = sum(i.net_amount for i in items)
    total_gross = sum(i.gross_price for i in items)
    transfer_date = eligible_date(completed_month)

    if status is PaymentStatus.PENDING:
        eligible = is_eligible_for_payout(total_net)
        return SettlementBatch(
            creator_id=creator_id,
            completed_month=completed_month,
            status=status,
            line_items=items,
            total_gross=total_gross,
            total_net=total_net,
            transfer_fee_applied=transfer_fee_for(total_net),
            final_payable=final_payable(total_net),
            eligible=eligible,
            carried_forward=not eligible,
            transfer_eligible_date=transfer_date,
            transfer_available=eligible and is_transfer_due(completed_month, now, tz),
        )

    fee = sum(i.transfer_fee or 0 for i in items)
    paid_times = [i.paid_at for i in items if i.paid_at is not None]
    return SettlementBatch(
        creator_id=creator_id,
        completed_month=completed_month,
        status=status,
        line_items=items,
        total_gross=total_gross,
        total_net=total_net,
        transfer_fee_applied=fee,
        final_payable=total_net - fee,
        eligible=True,
        carried_forward=False,
        transfer_eligible_date=transfer_date,
        transfer_available=False,
        paid_at=max(paid_times) if paid_times else None,
    )


def _build_creator_batches(
    creator_id: str,
    entries: List[LedgerEntry],
    now: datetime,
    tz: tzinfo,
) -> Tuple[List[SettlementBatch], List[ReconciliationWarning]]:
    warnings: List[ReconciliationWarning] = []
    groups: Dict[BatchKey, List[LineItem]] = defaultdict(list)

    for entry in entries:
        try:
            status, month, item, warning = build_line_item(entry, tz)
        except ContractIntegrityError as e:
            warnings.append(
                ReconciliationWarning(
                    kind=e.kind,
                    creator_id=creator_id,
                    contract_id=e.contract_id,
                    detail=e.detail,
                )
            )
            continue
        if warning is not None:
            warnings.append(warning)
        # Pending and paid items of the same month stay in separate batches
        groups[(month, status)].append(item)

    batches = [
        build_batch(creator_id, month, status, items, now, tz)
        for (month, status), items in groups.items()
    ]
    return batches, warnings


def build_settlement_batches(
    entries: Iterable[LedgerEntry],
    now: datetime,
    tz: tzinfo,
) -> AggregationResult:
    """
    Main entry point: group completed contracts into settlement batches.

    Requirements:
    - One batch per (creator, completed month, ledger status)
    - Contracts failing integrity checks are excluded and reported as warnings
    - A failure while grouping one creator never hides other creators' batches
    - Carried-forward batches keep their original completion month
    - Sorted by completed month, newest first
    """
    by_creator: Dict[str, List[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        by_creator[entry.contract.creator_id].append(entry)

    batches: List[SettlementBatch] = []
    warnings: List[ReconciliationWarning] = []

    for creator_id, creator_entries in by_creator.items():
        try:
            creator_batches, creator_warnings = _build_creator_batches(
                creator_id, creator_entries, now, tz
            )
        except DomainException as e:
            warnings.append(
                ReconciliationWarning(
                    kind="creator_failed",
                    creator_id=creator_id,
                    contract_id=None,
                    detail=str(e),
                )
            )
            continue
        batches.extend(creator_batches)
        warnings.extend(creator_warnings)

    batches.sort(key=lambda b: (b.creator_id, b.status is PaymentStatus.PAID))
    batches.sort(key=lambda b: b.completed_month, reverse=True)

    return AggregationResult(batches=batches, warnings=warnings)


def due_pending_batches(
    batches: Iterable[SettlementBatch], creator_id: str, now: datetime, tz: tzinfo
) -> List[SettlementBatch]:
    """Pending batches of a creator whose transfer date has passed, oldest first"""
    today = local_date(now, tz)
    due = [
        b
        for b in batches
        if b.creator_id == creator_id
        and b.status is PaymentStatus.PENDING
        and today >= b.transfer_eligible_date
    ]
    return sorted(due, key=lambda b: b.completed_month)


def summarize_outstanding(
    batches: List[SettlementBatch],
    creator_id: str,
    now: datetime,
    tz: tzinfo,
) -> PayoutSummary:
    """
    Cumulative outstanding balance across every due pending month.

    Threshold and fee apply once to the cumulative total, so months that were
    carried forward become payable together once the sum clears the minimum.
    """
    creator_batches = [b for b in batches if b.creator_id == creator_id]
    due = due_pending_batches(creator_batches, creator_id, now, tz)
    due_months = {b.completed_month for b in due}

    total_net = sum(b.total_net for b in due)
    pending_not_due = sum(
        b.total_net
        for b in creator_batches
        if b.status is PaymentStatus.PENDING and b.completed_month not in due_months
    )
    lifetime_paid = sum(b.total_net for b in creator_batches if b.status is PaymentStatus.PAID)

    return PayoutSummary(
        creator_id=creator_id,
        due_months=[b.completed_month for b in due],
        line_item_count=sum(len(b.line_items) for b in due),
        total_net=total_net,
        transfer_fee_applied=transfer_fee_for(total_net),
        final_payable=final_payable(total_net),
        eligible=is_eligible_for_payout(total_net),
        pending_not_due=pending_not_due,
        lifetime_paid=lifetime_paid,
    )


def group_paid_history(batches: Iterable[SettlementBatch], tz: tzinfo) -> List[PayoutHistoryEntry]:
    """Group paid line items by payout date (business tz), newest first"""
    by_day: Dict = defaultdict(list)
    for batch in batches:
        if batch.status is not PaymentStatus.PAID:
            continue
        for item in batch.line_items:
            if item.paid_at is None:
                continue
            by_day[local_date(item.paid_at, tz)].append((batch.completed_month, item))

    history = []
    for paid_on, rows in by_day.items():
        total_net = sum(item.net_amount for _, item in rows)
        fee = sum(item.transfer_fee or 0 for _, item in rows)
        history.append(
            PayoutHistoryEntry(
                paid_on=paid_on,
                months=sorted({month for month, _ in rows}),
                contract_ids=[item.contract_id for _, item in rows],
                total_net=total_net,
                transfer_fee=fee,
                final_amount=total_net - fee,
            )
        )

    return sorted(history, key=lambda h: h.paid_on, reverse=True)
