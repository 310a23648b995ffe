"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidMonthError(DomainException, ValueError):
    """Month key is not a valid YYYY-MM string"""

    pass


class ContractIntegrityError(DomainException):
    """Contract or ledger data violates an integrity rule and cannot be aggregated"""

    kind = "integrity"

    def __init__(self, contract_id: str, detail: str):
        super().__init__(f"{contract_id}: {detail}")
        self.contract_id = contract_id
        self.detail = detail


class DuplicatePaymentRecordError(ContractIntegrityError):
    kind = "duplicate_payment_record"


class NegativePriceError(ContractIntegrityError):
    kind = "negative_price"


class MissingCompletionDateError(ContractIntegrityError):
    kind = "missing_completed_at"


class InvalidLedgerMonthError(ContractIntegrityError):
    kind = "invalid_ledger_month"


class InvalidLedgerStatusError(ContractIntegrityError):
    kind = "invalid_ledger_status"


class BatchNotFoundError(DomainException):
    """No completed contracts exist for the requested creator/month"""

    pass


class SettlementError(DomainException):
    """Settlement precondition or commit failure; carries a failure code"""

    code = "settlement_error"


class BelowThresholdError(SettlementError):
    """Batch total is below the minimum payout amount"""

    code = "below_threshold"


class NotYetEligibleError(SettlementError):
    """Transfer eligible date has not been reached"""

    code = "not_yet_eligible"


class MissingBankAccountError(SettlementError):
    """Creator has no bank account on file"""

    code = "missing_bank_account"


class AlreadySettledError(SettlementError):
    """Batch was already marked paid (possibly by a concurrent request)"""

    code = "already_settled"


class SettlementFailedError(SettlementError):
    """Ledger write failed; the transaction was rolled back and can be retried"""

    code = "settlement_failed"
