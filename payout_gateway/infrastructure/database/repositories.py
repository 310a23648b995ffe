"""Data access layer for contracts, the payout ledger and bank accounts"""

from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from payout_gateway.infrastructure.database.models import BankAccount, PaymentRecord, WorkContract
from payout_gateway.domain import models as domain
from payout_gateway.domain.exceptions import AlreadySettledError
from payout_gateway.utils.date_utils import ensure_utc


def _to_domain_record(row: PaymentRecord) -> domain.PaymentRecord:
    return domain.PaymentRecord(
        id=str(row.id),
        contract_id=row.contract_id,
        creator_id=row.creator_id,
        status=row.status,
        amount=row.amount,
        transfer_fee=row.transfer_fee,
        completed_month=row.completed_month,
        paid_at=ensure_utc(row.paid_at) if row.paid_at else None,
        note=row.note,
    )


def _to_domain_contract(row: WorkContract) -> domain.CompletedContract:
    return domain.CompletedContract(
        id=row.id,
        title=row.title,
        creator_id=row.creator_id,
        requester_id=row.requester_id,
        final_price=row.final_price,
        completed_at=ensure_utc(row.completed_at) if row.completed_at else None,
    )


class ContractRepository:
    """Read-only access to completed contracts"""

    def __init__(self, db: Session):
        self.db = db

    def get_completed_entries(self, creator_id: Optional[str] = None) -> List[domain.LedgerEntry]:
        """
        Completed contracts joined with their ledger rows in one statement.

        A single outer join keeps contract and payment state consistent with
        each other; duplicate ledger rows surface as extra records on the entry.
        """
        query = (
            self.db.query(WorkContract, PaymentRecord)
            .outerjoin(PaymentRecord, PaymentRecord.contract_id == WorkContract.id)
            .filter(WorkContract.status == "completed")
        )
        if creator_id is not None:
            query = query.filter(WorkContract.creator_id == creator_id)

        entries: "OrderedDict[str, domain.LedgerEntry]" = OrderedDict()
        for contract, record in query.order_by(WorkContract.completed_at, WorkContract.id).all():
            entry = entries.get(contract.id)
            if entry is None:
                entry = entries[contract.id] = domain.LedgerEntry(contract=_to_domain_contract(contract))
            if record is not None:
                entry.records.append(_to_domain_record(record))

        return list(entries.values())


class PaymentRepository:
    """Payout ledger: one PaymentRecord per completed contract"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_contract_id(self, contract_id: str) -> Optional[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.contract_id == contract_id)
            .first()
        )

    def find_by_creator_and_month(self, creator_id: str, completed_month: str) -> List[domain.PaymentRecord]:
        """Ledger rows of one creator and month, ordered by contract id"""
        rows = (
            self.db.query(PaymentRecord)
            .populate_existing()
            .filter(
                PaymentRecord.creator_id == creator_id,
                PaymentRecord.completed_month == completed_month,
            )
            .order_by(PaymentRecord.contract_id)
            .all()
        )
        return [_to_domain_record(row) for row in rows]

    def upsert(
        self,
        contract_id: str,
        creator_id: str,
        completed_month: str,
        amount: int,
        status: str,
        paid_at: Optional[datetime] = None,
        transfer_fee: Optional[int] = None,
        note: Optional[str] = None,
    ) -> None:
        """
        Write a ledger row for a contract inside the caller's transaction.

        An existing row is only updated while still pending, so a concurrent
        settlement that committed first makes this call fail instead of
        overwriting it.

        Raises:
            AlreadySettledError: row is no longer pending, or another
                transaction inserted it first (unique contract_id)
        """
        values = {
            "creator_id": creator_id,
            "completed_month": completed_month,
            "amount": amount,
            "status": status,
            "paid_at": paid_at,
            "transfer_fee": transfer_fee,
            "note": note,
        }

        existing = self.find_by_contract_id(contract_id)
        if existing is not None:
            updated = (
                self.db.query(PaymentRecord)
                .filter(
                    PaymentRecord.contract_id == contract_id,
                    PaymentRecord.status == "pending",
                )
                .update(values, synchronize_session=False)
            )
            if updated == 0:
                raise AlreadySettledError(f"Contract {contract_id} is already settled")
            return

        self.db.add(PaymentRecord(contract_id=contract_id, **values))
        try:
            self.db.flush()
        except IntegrityError as e:
            raise AlreadySettledError(f"Contract {contract_id} was settled concurrently") from e


class BankAccountRepository:
    """Read-only lookup of creator payout accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_creator(self, creator_id: str) -> Optional[domain.BankAccount]:
        row = self.db.query(BankAccount).filter(BankAccount.creator_id == creator_id).first()
        return self._to_domain(row) if row else None

    def get_by_creators(self, creator_ids: Iterable[str]) -> Dict[str, domain.BankAccount]:
        ids = list(set(creator_ids))
        if not ids:
            return {}
        rows = self.db.query(BankAccount).filter(BankAccount.creator_id.in_(ids)).all()
        return {row.creator_id: self._to_domain(row) for row in rows}

    @staticmethod
    def _to_domain(row: BankAccount) -> domain.BankAccount:
        return domain.BankAccount(
            creator_id=row.creator_id,
            bank_name=row.bank_name,
            branch_name=row.branch_name,
            account_type=row.account_type,
            account_number=row.account_number,
            account_holder_name=row.account_holder_name,
        )
