"""
Ledger Errors

Every failure of a ledger operation aborts its whole transaction. Each error
carries a stable ``code`` that callers use as the error kind.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    code = 'LedgerError'
    default_message = 'Ledger operation failed'
    retryable = False

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class DocumentNotFoundOrMissingFields(LedgerError):
    """Member, plan or payment is absent or lacks its numeric fields."""
    code = 'DocumentNotFoundOrMissingFields'
    default_message = 'Document not found or missing required fields'


class AmountExceedsDue(LedgerError):
    """Raised when a payment would push a plan's due balance negative."""
    code = 'AmountExceedsDue'
    default_message = 'Amount exceeds due amount'


class InvalidAmount(LedgerError):
    """Raised when an amount is not a positive number."""
    code = 'InvalidAmount'
    default_message = 'Amount must be greater than 0'


class MemberAlreadyExists(LedgerError):
    code = 'MemberAlreadyExists'
    default_message = 'Member already exists in this gym'


class TransactionConflict(LedgerError):
    """Another writer changed a record between our read and our write."""
    code = 'TransactionConflict'
    default_message = 'Transaction failed due to a concurrent update'
    retryable = True


class UnknownError(LedgerError):
    code = 'UnknownError'
    default_message = 'Something went wrong'
