"""Domain models - pure Python dataclasses representing payout entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class SettlementFailure(str, Enum):
    BELOW_THRESHOLD = "below_threshold"
    NOT_YET_ELIGIBLE = "not_yet_eligible"
    MISSING_BANK_ACCOUNT = "missing_bank_account"
    ALREADY_SETTLED = "already_settled"
    SETTLEMENT_FAILED = "settlement_failed"


@dataclass
class CompletedContract:
    """Finished unit of paid work, read-only to the payout core"""

    id: str
    title: str
    creator_id: str
    requester_id: str
    final_price: int
    completed_at: Optional[datetime]


@dataclass
class PaymentRecord:
    """Ledger entry holding the settlement state of one contract"""

    contract_id: str
    creator_id: str
    status: str  # raw ledger value, normalized during aggregation
    amount: Optional[int] = None
    transfer_fee: Optional[int] = None
    completed_month: Optional[str] = None
    paid_at: Optional[datetime] = None
    note: Optional[str] = None
    id: Optional[str] = None


@dataclass
class LedgerEntry:
    """A completed contract joined with every ledger row found for it"""

    contract: CompletedContract
    records: List[PaymentRecord] = field(default_factory=list)


@dataclass
class BankAccount:
    creator_id: str
    bank_name: str
    branch_name: str
    account_type: str
    account_number: str
    account_holder_name: str


@dataclass
class LineItem:
    """One contract inside a settlement batch"""

    contract_id: str
    title: str
    gross_price: int
    net_amount: int
    completed_at: datetime
    transfer_fee: Optional[int] = None
    paid_at: Optional[datetime] = None


@dataclass
class SettlementBatch:
    """A creator's line items for one completed month and one ledger status"""

    creator_id: str
    completed_month: str
    status: PaymentStatus
    line_items: List[LineItem]
    total_gross: int
    total_net: int
    transfer_fee_applied: int
    final_payable: int
    eligible: bool
    carried_forward: bool
    transfer_eligible_date: date
    transfer_available: bool
    paid_at: Optional[datetime] = None

    @property
    def all_paid(self) -> bool:
        return self.status is PaymentStatus.PAID

    @property
    def key(self) -> tuple[str, str]:
        return self.creator_id, self.completed_month

    @property
    def contract_ids(self) -> List[str]:
        return [item.contract_id for item in self.line_items]


@dataclass
class ReconciliationWarning:
    """Data problem found during aggregation; the offending contract is excluded"""

    kind: str
    creator_id: str
    contract_id: Optional[str]
    detail: str


@dataclass
class AggregationResult:
    batches: List[SettlementBatch]
    warnings: List[ReconciliationWarning]


@dataclass
class PayoutSummary:
    """Cumulative outstanding balance for one creator"""

    creator_id: str
    due_months: List[str]
    line_item_count: int
    total_net: int
    transfer_fee_applied: int
    final_payable: int
    eligible: bool
    pending_not_due: int
    lifetime_paid: int
    has_bank_account: bool = False


@dataclass
class PayoutHistoryEntry:
    """Paid ledger rows committed on the same payout date"""

    paid_on: date
    months: List[str]
    contract_ids: List[str]
    total_net: int
    transfer_fee: int
    final_amount: int


@dataclass
class SettlementResult:
    """Outcome of a settlement attempt"""

    creator_id: str
    months: List[str]
    settled: bool
    failure: Optional[SettlementFailure] = None
    contract_ids: List[str] = field(default_factory=list)
    total_net: int = 0
    transfer_fee: int = 0
    final_payable: int = 0
    paid_at: Optional[datetime] = None
    detail: Optional[str] = None
