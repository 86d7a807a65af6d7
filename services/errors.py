import enum


class ErrorKind(enum.Enum):
    not_found = "not_found"
    invalid_state = "invalid_state"
    insufficient_funds = "insufficient_funds"
    ledger_inconsistency = "ledger_inconsistency"
    store_failure = "store_failure"
    validation_failed = "validation_failed"
    notifier_failure = "notifier_failure"


class AdminServiceError(Exception):
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AdminServiceError):
    kind = ErrorKind.not_found


class InvalidState(AdminServiceError):
    kind = ErrorKind.invalid_state


class InsufficientFunds(AdminServiceError):
    kind = ErrorKind.insufficient_funds


class StoreFailure(AdminServiceError):
    kind = ErrorKind.store_failure


class ValidationFailed(AdminServiceError):
    kind = ErrorKind.validation_failed


class NotifierFailure(AdminServiceError):
    kind = ErrorKind.notifier_failure


class LedgerInconsistency(AdminServiceError):
    """
    The payout status was written but the balance deduction was not.
    `compensated` tells whether the payout was put back to pending; when it is
    False the payout row needs an operator.
    """
    kind = ErrorKind.ledger_inconsistency

    def __init__(self, message: str, *, payout_id, compensated: bool):
        super().__init__(message)
        self.payout_id = payout_id
        self.compensated = compensated
