"""
Pydantic schemas for bank accounts, statement lines, matching
and reconciliations.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from ledger_engine.models.enums import (
    BankTransactionType,
    MatchConfidence,
    MatchType,
    ReconciliationStatus,
)


# --- Bank Accounts ---

class BankAccountCreate(BaseModel):
    """A bank account, linked to the GL account that mirrors it."""
    name: str = Field(min_length=1, max_length=100)
    bank_name: str = Field(min_length=1, max_length=100)
    account_number: str = Field(min_length=1, max_length=50)
    account_id: int
    opening_balance: Decimal = Decimal("0")


class BankAccountResponse(BaseModel):
    id: int
    name: str
    bank_name: str
    account_number: str
    account_id: int
    opening_balance: Decimal
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Statement Lines ---

class BankTransactionCreate(BaseModel):
    transaction_date: date
    description: str = Field(min_length=1, max_length=255)
    reference_number: str | None = Field(default=None, max_length=100)
    transaction_type: BankTransactionType
    amount: Decimal = Field(gt=0)


class BankTransactionResponse(BaseModel):
    id: int
    bank_account_id: int
    transaction_date: date
    description: str
    reference_number: str | None
    transaction_type: BankTransactionType
    amount: Decimal
    is_reconciled: bool
    matched_ledger_entry_id: int | None
    match_type: MatchType | None
    reconciliation_id: int | None
    import_source: str

    model_config = {"from_attributes": True}


class StatementRow(BaseModel):
    """One row of an imported statement, in debit/credit column form."""
    transaction_date: date
    description: str = Field(min_length=1, max_length=255)
    reference_number: str | None = Field(default=None, max_length=100)
    debit_amount: Decimal | None = Field(default=None, ge=0)
    credit_amount: Decimal | None = Field(default=None, ge=0)


class ImportRequest(BaseModel):
    format: Literal["csv", "ofx", "mt940", "custom"] = "csv"
    transactions: list[StatementRow] = Field(min_length=1)


class ImportResult(BaseModel):
    imported: int
    skipped: int
    total: int


# --- Matching ---

class AutoMatchRequest(BaseModel):
    """Omitted tolerances fall back to the configured defaults."""
    date_tolerance_days: int | None = Field(default=None, ge=0)
    amount_tolerance: Decimal | None = Field(default=None, ge=0)


class MatchProposalResponse(BaseModel):
    bank_transaction_id: int
    ledger_entry_id: int
    amount_difference: Decimal
    date_difference_days: int
    confidence: MatchConfidence

    model_config = {"from_attributes": True}


class AutoMatchResponse(BaseModel):
    matches: list[MatchProposalResponse]
    unmatched_bank_transactions: list[int]
    unmatched_ledger_entries: list[int]


class MatchPair(BaseModel):
    bank_transaction_id: int
    ledger_entry_id: int


class ApplyMatchesRequest(BaseModel):
    matches: list[MatchPair] = Field(min_length=1)


class ApplyMatchesResult(BaseModel):
    applied: int
    unchanged: int
    skipped: list[MatchPair]


class ManualMatchRequest(BaseModel):
    ledger_entry_id: int


# --- Reconciliations ---

class ReconciliationStart(BaseModel):
    bank_account_id: int
    statement_date: date
    statement_ending_balance: Decimal
    notes: str | None = Field(default=None, max_length=500)


class TransactionIdsRequest(BaseModel):
    transaction_ids: list[int] = Field(min_length=1)

    @model_validator(mode="after")
    def unique_ids(self):
        self.transaction_ids = list(dict.fromkeys(self.transaction_ids))
        return self


class ReconciliationComplete(BaseModel):
    force: bool = False


class ReconciliationResponse(BaseModel):
    id: int
    bank_account_id: int
    statement_date: date
    statement_opening_balance: Decimal
    statement_ending_balance: Decimal
    status: ReconciliationStatus
    reconciled_balance: Decimal | None
    difference_amount: Decimal | None
    notes: str | None
    completed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReconciliationSummary(BaseModel):
    matched_credits: Decimal
    matched_debits: Decimal
    unmatched_credits: Decimal
    unmatched_debits: Decimal
    calculated_balance: Decimal
    difference: Decimal
    is_balanced: bool


class ReconciliationDetail(BaseModel):
    reconciliation: ReconciliationResponse
    matched_transactions: list[BankTransactionResponse]
    unmatched_transactions: list[BankTransactionResponse]
    summary: ReconciliationSummary


class ClaimResult(BaseModel):
    count: int
    transactions: list[BankTransactionResponse]


class BankBalanceResponse(BaseModel):
    """Statement-side balance next to the book balance of the GL account."""
    bank_account_id: int
    statement_balance: Decimal
    book_balance: Decimal
    difference: Decimal


class UnreconciledAccountSummary(BaseModel):
    bank_account_id: int
    bank_name: str
    account_number: str
    count: int
    total_debits: Decimal
    total_credits: Decimal


class UnreconciledItems(BaseModel):
    transactions: list[BankTransactionResponse]
    summary: list[UnreconciledAccountSummary]


class ReconciliationSummary(BaseModel):
    """Reconciliation history of one active bank account."""
    bank_account_id: int
    bank_name: str
    account_number: str
    completed_count: int
    in_progress_count: int
    last_reconciliation_date: date | None
    total_differences: Decimal
