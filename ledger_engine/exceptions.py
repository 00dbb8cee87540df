"""
Error taxonomy for the ledger engine.

Every rejection carries a stable machine code and a human message.
All errors subclass ValueError so callers that only care about
"the request was refused" can keep catching ValueError.

Nothing here is retried internally. Business-rule and state errors
are raised before commit; DatabaseError is raised after rollback
and the caller decides whether to resubmit.
"""


class LedgerError(ValueError):
    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# --- Validation ---

class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"


class MissingRateError(ValidationError):
    code = "MISSING_RATE"


class InvalidTdsSectionError(ValidationError):
    code = "INVALID_SECTION"


# --- Not found ---

class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


# --- State conflicts ---

class StateConflictError(LedgerError):
    status_code = 409


class AlreadyPostedError(StateConflictError):
    code = "ALREADY_POSTED"


class NotPostedError(StateConflictError):
    code = "NOT_POSTED"


class AlreadyReversedError(StateConflictError):
    code = "ALREADY_REVERSED"


class ReconciliationInProgressError(StateConflictError):
    code = "IN_PROGRESS"


class NotInProgressError(StateConflictError):
    code = "NOT_IN_PROGRESS"


class AlreadyReconciledError(StateConflictError):
    code = "RECONCILED"


class AccountInUseError(StateConflictError):
    code = "ACCOUNT_IN_USE"


class ImmutableEntryError(StateConflictError):
    code = "IMMUTABLE_ENTRY"


class DuplicateError(StateConflictError):
    code = "DUPLICATE"


# --- Business rules ---

class BusinessRuleError(LedgerError):
    status_code = 422


class OverpaymentError(BusinessRuleError):
    code = "OVERPAYMENT"


class NotBalancedError(BusinessRuleError):
    """Journal lines do not net to zero. Indicates a programming error."""
    code = "NOT_BALANCED"


class ReconciliationImbalanceError(BusinessRuleError):
    code = "NOT_BALANCED"


class MissingAccountMappingError(BusinessRuleError):
    code = "MISSING_ACCOUNT_MAPPING"

    def __init__(self, keys: list[str]):
        self.keys = list(keys)
        super().__init__(
            "Account mapping not configured for: " + ", ".join(self.keys)
        )


# --- Infrastructure ---

class DatabaseError(LedgerError):
    code = "DB_ERROR"
    status_code = 503
