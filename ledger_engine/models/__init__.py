"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from ledger_engine.models.base import Base
from ledger_engine.models.enums import (
    AccountCategory,
    JournalEntryType,
    JournalStatus,
    DocumentStatus,
    PaymentMethod,
    BankTransactionType,
    MatchType,
    MatchConfidence,
    ReconciliationStatus,
    DeducteeType,
)
from ledger_engine.models.account import Account, AccountMapping
from ledger_engine.models.journal import EntrySequence, JournalEntry, JournalLine
from ledger_engine.models.tax_code import TaxCode
from ledger_engine.models.banking import (
    BankAccount,
    BankTransaction,
    Reconciliation,
)
from ledger_engine.models.invoice import Invoice, InvoiceLine, Receipt
from ledger_engine.models.bill import Bill, BillLine, BillPayment

__all__ = [
    "Base",
    "AccountCategory",
    "JournalEntryType",
    "JournalStatus",
    "DocumentStatus",
    "PaymentMethod",
    "BankTransactionType",
    "MatchType",
    "MatchConfidence",
    "ReconciliationStatus",
    "DeducteeType",
    "Account",
    "AccountMapping",
    "EntrySequence",
    "JournalEntry",
    "JournalLine",
    "TaxCode",
    "BankAccount",
    "BankTransaction",
    "Reconciliation",
    "Invoice",
    "InvoiceLine",
    "Receipt",
    "Bill",
    "BillLine",
    "BillPayment",
]
