"""Integration tests for the settlement state machine against a real database"""

import pytest
from datetime import datetime, timezone
from sqlalchemy.exc import OperationalError
from payout_gateway.domain.exceptions import AlreadySettledError, BatchNotFoundError, InvalidMonthError
from payout_gateway.domain.models import SettlementFailure
from payout_gateway.infrastructure.database.models import PaymentRecord
from payout_gateway.infrastructure.database.repositories import ContractRepository, PaymentRepository
from payout_gateway.services.earnings import EarningsAggregator
from payout_gateway.services.settlement import SettlementStateMachine


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def ledger_rows(db, creator_id):
    db.expire_all()
    return (
        db.query(PaymentRecord)
        .filter(PaymentRecord.creator_id == creator_id)
        .order_by(PaymentRecord.contract_id)
        .all()
    )


class FailingPaymentRepository(PaymentRepository):
    """Simulates an infrastructure failure on the Nth ledger write"""

    def __init__(self, db, fail_on_call: int):
        super().__init__(db)
        self.fail_on_call = fail_on_call
        self.calls = 0

    def upsert(self, *args, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise OperationalError("UPDATE payment_record", {}, Exception("connection reset"))
        return super().upsert(*args, **kwargs)


class StaleContractRepository(ContractRepository):
    """Returns a snapshot taken before another operator settled the batch"""

    def __init__(self, db, snapshot):
        super().__init__(db)
        self.snapshot = snapshot

    def get_completed_entries(self, creator_id=None):
        return self.snapshot


@pytest.fixture
def january_work(add_contract):
    """Two January contracts: 3000 + 2000 gross → 2640 + 1760 net"""
    add_contract("c1", "alice", 3000, utc(2024, 1, 10))
    add_contract("c2", "alice", 2000, utc(2024, 1, 15))


def test_end_to_end_settlement(db, tz, now, january_work, add_bank_account):
    add_bank_account("alice")

    result = SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", now)

    assert result.settled is True
    assert result.failure is None
    assert result.total_net == 4400
    assert result.transfer_fee == 330
    assert result.final_payable == 4070

    rows = ledger_rows(db, "alice")
    assert [r.status for r in rows] == ["paid", "paid"]
    assert [r.amount for r in rows] == [2640, 1760]
    assert [r.transfer_fee for r in rows] == [330, None]  # fee on the earliest line only
    assert all(r.completed_month == "2024-01" for r in rows)
    assert all(r.paid_at is not None for r in rows)

    # Re-aggregation: nothing pending for that creator/month
    batches = EarningsAggregator(db, tz=tz).aggregate(now, creator_id="alice").batches
    assert [(b.completed_month, b.status.value) for b in batches] == [("2024-01", "paid")]
    assert sum(b.total_net for b in batches if b.status.value == "pending") == 0


def test_settle_is_idempotent(db, tz, now, january_work, add_bank_account):
    add_bank_account("alice")
    machine = SettlementStateMachine(db, tz=tz)

    machine.settle("alice", "2024-01", now)
    after_first = [(r.contract_id, r.status, r.amount, r.transfer_fee) for r in ledger_rows(db, "alice")]

    second = machine.settle("alice", "2024-01", utc(2024, 2, 21))
    after_second = [(r.contract_id, r.status, r.amount, r.transfer_fee) for r in ledger_rows(db, "alice")]

    assert second.settled is False
    assert second.failure is SettlementFailure.ALREADY_SETTLED
    assert second.transfer_fee == 330
    assert after_second == after_first
    assert db.query(PaymentRecord).count() == 2


def test_below_threshold_fails_without_writes(db, tz, now, add_contract, add_bank_account):
    add_contract("c1", "bob", 900, utc(2024, 1, 10))
    add_bank_account("bob")

    result = SettlementStateMachine(db, tz=tz).settle("bob", "2024-01", now)

    assert result.settled is False
    assert result.failure is SettlementFailure.BELOW_THRESHOLD
    assert result.total_net == 792
    assert ledger_rows(db, "bob") == []


def test_carried_forward_batch_still_outstanding_next_month(db, tz, add_contract):
    add_contract("c1", "bob", 900, utc(2024, 1, 10))

    march = EarningsAggregator(db, tz=tz).aggregate(utc(2024, 3, 25), creator_id="bob")

    assert len(march.batches) == 1
    assert march.batches[0].completed_month == "2024-01"
    assert march.batches[0].carried_forward is True


def test_not_yet_eligible_before_the_20th(db, tz, january_work, add_bank_account):
    add_bank_account("alice")
    # Feb 19 23:00 in Tokyo
    result = SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", utc(2024, 2, 19, 14))

    assert result.failure is SettlementFailure.NOT_YET_ELIGIBLE
    assert ledger_rows(db, "alice") == []


def test_missing_bank_account(db, tz, now, january_work):
    result = SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", now)

    assert result.failure is SettlementFailure.MISSING_BANK_ACCOUNT
    assert ledger_rows(db, "alice") == []


def test_unknown_batch_raises(db, tz, now):
    with pytest.raises(BatchNotFoundError):
        SettlementStateMachine(db, tz=tz).settle("nobody", "2024-01", now)


def test_malformed_month_raises(db, tz, now):
    with pytest.raises(InvalidMonthError):
        SettlementStateMachine(db, tz=tz).settle("alice", "2024/01", now)


def test_write_failure_rolls_back_every_line_item(db, tz, now, add_contract, add_bank_account):
    """Failure on the second of three writes leaves none of them paid"""
    add_contract("c1", "alice", 3000, utc(2024, 1, 5))
    add_contract("c2", "alice", 2000, utc(2024, 1, 10))
    add_contract("c3", "alice", 1000, utc(2024, 1, 15))
    add_bank_account("alice")

    ledger = FailingPaymentRepository(db, fail_on_call=2)
    result = SettlementStateMachine(db, tz=tz, ledger=ledger).settle("alice", "2024-01", now)

    assert result.settled is False
    assert result.failure is SettlementFailure.SETTLEMENT_FAILED
    assert ledger_rows(db, "alice") == []

    # Retry after recovery succeeds
    retry = SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", now)
    assert retry.settled is True
    assert [r.status for r in ledger_rows(db, "alice")] == ["paid", "paid", "paid"]


def test_rollback_also_restores_pre_created_pending_rows(db, tz, now, january_work, add_bank_account, add_payment):
    add_payment("c1", "alice", "2024-01", status="pending")
    add_payment("c2", "alice", "2024-01", status="pending")
    add_bank_account("alice")

    ledger = FailingPaymentRepository(db, fail_on_call=2)
    SettlementStateMachine(db, tz=tz, ledger=ledger).settle("alice", "2024-01", now)

    rows = ledger_rows(db, "alice")
    assert [r.status for r in rows] == ["pending", "pending"]
    assert all(r.transfer_fee is None for r in rows)


def test_concurrent_settlement_is_rejected(db, tz, now, january_work, add_bank_account):
    """A second operator working from a stale snapshot cannot pay again"""
    add_bank_account("alice")
    stale_snapshot = ContractRepository(db).get_completed_entries("alice")

    SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", now)

    contracts = StaleContractRepository(db, stale_snapshot)
    late = SettlementStateMachine(db, tz=tz, contracts=contracts).settle("alice", "2024-01", now)

    assert late.settled is False
    assert late.failure is SettlementFailure.ALREADY_SETTLED
    rows = ledger_rows(db, "alice")
    assert len(rows) == 2
    assert sum(r.transfer_fee or 0 for r in rows) == 330


def test_upsert_refuses_to_overwrite_paid_row(db, add_contract, add_payment):
    add_contract("c1", "alice", 3000, utc(2024, 1, 10))
    add_payment("c1", "alice", "2024-01", status="paid", amount=2640, transfer_fee=330)

    with pytest.raises(AlreadySettledError):
        PaymentRepository(db).upsert("c1", "alice", "2024-01", 2640, "paid", paid_at=utc(2024, 3, 1))


def test_partially_settled_month_settles_remainder(db, tz, now, add_contract, add_payment, add_bank_account):
    add_contract("c1", "alice", 3000, utc(2024, 1, 10))
    add_contract("c2", "alice", 2000, utc(2024, 1, 25))
    add_payment("c1", "alice", "2024-01", status="paid", amount=2640, transfer_fee=330, paid_at=utc(2024, 2, 20))
    add_bank_account("alice")

    result = SettlementStateMachine(db, tz=tz).settle("alice", "2024-01", now)

    assert result.settled is True
    assert result.contract_ids == ["c2"]
    assert result.final_payable == 1760 - 330


def test_settle_outstanding_pays_carried_forward_months(db, tz, now, add_contract, add_bank_account):
    add_contract("c1", "bob", 900, utc(2023, 12, 10))  # 792
    add_contract("c2", "bob", 600, utc(2024, 1, 10))  # 528
    add_contract("c3", "bob", 5000, utc(2024, 2, 1))  # not due yet
    add_bank_account("bob")

    result = SettlementStateMachine(db, tz=tz).settle_outstanding("bob", now, note="Feb payout")

    assert result.settled is True
    assert result.months == ["2023-12", "2024-01"]
    assert result.total_net == 1320
    assert result.final_payable == 990

    rows = {r.contract_id: r for r in ledger_rows(db, "bob")}
    assert set(rows) == {"c1", "c2"}
    assert rows["c1"].completed_month == "2023-12"
    assert rows["c1"].transfer_fee == 330
    assert rows["c2"].transfer_fee is None
    assert rows["c2"].note == "Feb payout"


def test_settle_outstanding_nothing_due(db, tz, add_contract, add_bank_account):
    add_contract("c1", "bob", 5000, utc(2024, 2, 1))
    add_bank_account("bob")

    result = SettlementStateMachine(db, tz=tz).settle_outstanding("bob", utc(2024, 2, 20, 3))

    assert result.failure is SettlementFailure.NOT_YET_ELIGIBLE
    assert ledger_rows(db, "bob") == []


def test_settle_outstanding_below_threshold(db, tz, now, add_contract, add_bank_account):
    add_contract("c1", "bob", 900, utc(2024, 1, 10))
    add_bank_account("bob")

    result = SettlementStateMachine(db, tz=tz).settle_outstanding("bob", now)

    assert result.failure is SettlementFailure.BELOW_THRESHOLD


def test_aggregator_isolates_bad_contracts(db, tz, now, add_contract):
    add_contract("bad", "alice", -100, utc(2024, 1, 10))
    add_contract("ok", "alice", 3000, utc(2024, 1, 11))
    add_contract("other", "carol", 2000, utc(2024, 1, 12))
    add_contract("open", "carol", 9999, None, status="in_progress")

    result = EarningsAggregator(db, tz=tz).aggregate(now)

    assert [w.kind for w in result.warnings] == ["negative_price"]
    assert sorted(cid for b in result.batches for cid in b.contract_ids) == ["ok", "other"]


class SilentPaymentRepository(PaymentRepository):
    """Accepts ledger writes without persisting them"""

    def upsert(self, *args, **kwargs):
        return None


def test_find_by_creator_and_month_returns_ledger_rows_in_contract_order(db, add_contract, add_payment):
    add_contract("c2", "alice", 2000, utc(2024, 1, 5))
    add_contract("c1", "alice", 3000, utc(2024, 1, 10))
    add_contract("c3", "alice", 1000, utc(2024, 2, 1))
    add_contract("b1", "bob", 5000, utc(2024, 1, 12))
    add_payment("c2", "alice", "2024-01", status="paid", amount=1760, paid_at=utc(2024, 2, 20))
    add_payment("c1", "alice", "2024-01", status="pending", amount=2640)
    add_payment("c3", "alice", "2024-02", status="pending", amount=880)
    add_payment("b1", "bob", "2024-01", status="pending", amount=4400)

    records = PaymentRepository(db).find_by_creator_and_month("alice", "2024-01")

    assert [r.contract_id for r in records] == ["c1", "c2"]
    assert [r.status for r in records] == ["pending", "paid"]
    assert records[1].amount == 1760
    assert records[1].paid_at == utc(2024, 2, 20)


def test_unconfirmed_ledger_write_fails_settlement(db, tz, now, january_work, add_bank_account):
    add_bank_account("alice")

    ledger = SilentPaymentRepository(db)
    result = SettlementStateMachine(db, tz=tz, ledger=ledger).settle("alice", "2024-01", now)

    assert result.settled is False
    assert result.failure is SettlementFailure.SETTLEMENT_FAILED
    assert ledger_rows(db, "alice") == []
