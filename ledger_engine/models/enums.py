"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. Enum *values* are what is
persisted (see enum_values) so the database holds the same
strings the API returns.
"""

import enum


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """values_callable for SQLAlchemy Enum columns."""
    return [member.value for member in enum_cls]


class AccountCategory(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class JournalEntryType(str, enum.Enum):
    """Which kind of business event produced a journal entry."""
    STD = "STD"  # manual / standard
    AR = "AR"    # sales invoice
    RCT = "RCT"  # customer receipt
    PMT = "PMT"  # payment
    POS = "POS"  # point-of-sale
    PUR = "PUR"  # purchase
    INV = "INV"  # externally raised invoice
    CHG = "CHG"  # folio charge
    REF = "REF"  # refund
    REV = "REV"  # reversal of a posted entry


class JournalStatus(str, enum.Enum):
    DRAFT = "draft"
    POSTED = "posted"


class DocumentStatus(str, enum.Enum):
    """Lifecycle of invoices and bills. Only moves forward."""
    DRAFT = "draft"
    POSTED = "posted"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK = "bank"
    CHEQUE = "cheque"
    CARD = "card"
    UPI = "upi"


class BankTransactionType(str, enum.Enum):
    """Direction as reported by the bank's statement feed."""
    DEBIT = "debit"
    CREDIT = "credit"


class MatchType(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class MatchConfidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReconciliationStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeducteeType(str, enum.Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"
    FIRM = "firm"
    HUF = "huf"
    OTHERS = "others"
