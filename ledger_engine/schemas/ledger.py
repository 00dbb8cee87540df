"""
Pydantic schemas for accounts and journal entries.

These define the API contract, what data comes in and what data
goes out. PostingRequest is the engine's own input: the already
validated, typed form every document is reduced to before posting.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from ledger_engine.models.enums import (
    AccountCategory,
    JournalEntryType,
    JournalStatus,
)
from ledger_engine.documents import SourceDocument


# --- Account Schemas ---

class AccountCreate(BaseModel):
    """Request to create a new account in a tenant's chart."""
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    category: AccountCategory


class AccountUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    category: AccountCategory | None = None
    is_active: bool | None = None


class AccountResponse(BaseModel):
    id: int
    tenant_id: str
    code: str
    name: str
    category: AccountCategory
    current_balance: Decimal
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    """Response for an account balance query."""
    account_id: int
    account_code: str
    category: AccountCategory
    balance: Decimal


# --- Journal Schemas ---

class JournalLineInput(BaseModel):
    """A single debit or credit leg."""
    account_id: int
    debit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    credit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    description: str | None = Field(default=None, max_length=255)
    cost_center_id: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def exactly_one_side(self):
        if (self.debit_amount > 0) == (self.credit_amount > 0):
            raise ValueError(
                "exactly one of debit_amount and credit_amount must be non-zero"
            )
        return self


def _require_both_sides(lines: list[JournalLineInput]) -> list[JournalLineInput]:
    has_debit = any(line.debit_amount > 0 for line in lines)
    has_credit = any(line.credit_amount > 0 for line in lines)
    if not (has_debit and has_credit):
        raise ValueError("entry must contain at least one debit and one credit")
    return lines


class JournalEntryCreate(BaseModel):
    """A hand-keyed journal entry."""
    entry_date: date
    description: str = Field(min_length=1, max_length=255)
    reference: str | None = Field(default=None, max_length=64)
    lines: list[JournalLineInput] = Field(min_length=2)
    auto_post: bool = False

    @field_validator("lines")
    @classmethod
    def must_have_debits_and_credits(cls, v: list) -> list:
        return _require_both_sides(v)


class JournalEntryUpdate(BaseModel):
    """Changes to a draft entry. Lines, when given, replace all lines."""
    entry_date: date | None = None
    description: str | None = Field(default=None, min_length=1, max_length=255)
    lines: list[JournalLineInput] | None = Field(default=None, min_length=2)

    @field_validator("lines")
    @classmethod
    def must_have_debits_and_credits(cls, v: list | None) -> list | None:
        if v is None:
            return v
        return _require_both_sides(v)


class JournalReversalRequest(BaseModel):
    reversal_date: date | None = None
    description: str | None = Field(default=None, min_length=1, max_length=255)


class PostingRequest(BaseModel):
    """Everything the posting engine needs to write one entry."""
    source: SourceDocument
    entry_date: date
    description: str = Field(min_length=1, max_length=255)
    lines: list[JournalLineInput] = Field(min_length=2)
    auto_post: bool = True
    source_system: str = "ledger_engine"
    entry_type: JournalEntryType | None = None

    model_config = {"arbitrary_types_allowed": True}

    @property
    def resolved_entry_type(self) -> JournalEntryType:
        return self.entry_type or self.source.entry_type


class JournalLineResponse(BaseModel):
    id: int
    line_number: int
    account_id: int
    description: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    cost_center_id: str | None

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    id: int
    entry_number: str
    entry_date: date
    entry_type: JournalEntryType
    description: str
    status: JournalStatus
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool
    reference_type: str | None
    reference_id: str | None
    source_system: str
    posted_at: datetime | None
    created_at: datetime
    lines: list[JournalLineResponse]

    model_config = {"from_attributes": True}


class PostingResult(BaseModel):
    """Outcome of posting one document."""
    journal_entry_id: int
    entry_number: str
    status: JournalStatus


class PostDocumentRequest(BaseModel):
    """Post a draft document by its stored reference pair."""
    reference_type: str = Field(min_length=1, max_length=32)
    reference_id: str = Field(min_length=1, max_length=64)


# --- Trial Balance Schemas ---

class TrialBalanceRow(BaseModel):
    account_id: int
    code: str
    name: str
    category: AccountCategory
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal

    model_config = {"from_attributes": True}


class TrialBalanceResponse(BaseModel):
    """Posted debits and credits per account, with grand totals."""
    as_of_date: date | None
    rows: list[TrialBalanceRow]
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool

    model_config = {"from_attributes": True}
