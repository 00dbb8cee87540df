"""
Ledger API endpoints.

These endpoints expose the chart of accounts and journal entries
to HTTP clients. The API layer is thin: it handles HTTP concerns
(status codes, response formatting) and delegates all business
logic, including commit and rollback, to the services.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.documents import source_from_reference
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError, ValidationError
from ledger_engine.models.base import get_db
from ledger_engine.models.enums import AccountCategory, JournalEntryType, JournalStatus
from ledger_engine.services.ledger_service import LedgerService
from ledger_engine.services.posting_service import PostingService
from ledger_engine.schemas.ledger import (
    AccountBalanceResponse,
    AccountCreate,
    AccountResponse,
    AccountUpdate,
    JournalEntryCreate,
    JournalEntryResponse,
    JournalEntryUpdate,
    JournalLineResponse,
    JournalReversalRequest,
    PostDocumentRequest,
    PostingResult,
    TrialBalanceResponse,
)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


# --- Accounts ---

@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    request: AccountCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """
    Create a new ledger account.

    Every account in the chart of accounts must be created
    before entries can be posted to it.
    """
    service = LedgerService(db)
    try:
        return service.create_account(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    category: AccountCategory | None = None,
    active_only: bool = False,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return LedgerService(db).list_accounts(tenant_id, category, active_only)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return LedgerService(db).get_account(tenant_id, account_id)
    except LedgerError as e:
        raise http_error(e)


@router.patch("/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: int,
    request: AccountUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Rename, recategorise or deactivate an account."""
    try:
        return LedgerService(db).update_account(tenant_id, account_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get(
    "/accounts/{account_id}/balance",
    response_model=AccountBalanceResponse,
)
def get_account_balance(
    account_id: int,
    recompute: bool = False,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """
    Get the balance for a ledger account.

    By default this is the running balance maintained at posting
    time. recompute=true derives it from posted lines instead.
    """
    service = LedgerService(db)
    try:
        account = service.get_account(tenant_id, account_id)
        if recompute:
            balance = service.compute_balance_from_lines(tenant_id, account_id)
        else:
            balance = service.get_account_balance(tenant_id, account_id)
    except LedgerError as e:
        raise http_error(e)

    return AccountBalanceResponse(
        account_id=account.id,
        account_code=account.code,
        category=account.category,
        balance=balance,
    )


@router.get(
    "/accounts/{account_id}/entries",
    response_model=list[JournalLineResponse],
)
def get_account_entries(
    account_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Get all journal lines for an account, newest first."""
    try:
        return LedgerService(db).get_entries_by_account(tenant_id, account_id)
    except LedgerError as e:
        raise http_error(e)


# --- Journal entries ---

@router.post("/entries", response_model=JournalEntryResponse, status_code=201)
def create_journal_entry(
    request: JournalEntryCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Create a manual journal entry.

    The lines must contain at least one debit and one credit, and
    total debits must equal total credits. auto_post=true posts it
    immediately; otherwise it is saved as a draft.
    """
    try:
        return LedgerService(db, publisher).create_journal_entry(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("/entries", response_model=list[JournalEntryResponse])
def list_journal_entries(
    status: JournalStatus | None = None,
    entry_type: JournalEntryType | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return LedgerService(db).list_journal_entries(
        tenant_id, status, entry_type, limit, offset
    )


@router.get("/entries/{entry_id}", response_model=JournalEntryResponse)
def get_journal_entry(
    entry_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return LedgerService(db).get_journal_entry(tenant_id, entry_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/entries/{entry_id}/post", response_model=JournalEntryResponse)
def post_journal_entry(
    entry_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Post a draft entry. Posted entries are never re-posted."""
    try:
        return LedgerService(db, publisher).post_journal_entry(tenant_id, entry_id)
    except LedgerError as e:
        raise http_error(e)


@router.patch("/entries/{entry_id}", response_model=JournalEntryResponse)
def update_journal_entry(
    entry_id: int,
    request: JournalEntryUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Edit a draft entry. Posted entries answer IMMUTABLE_ENTRY."""
    try:
        return LedgerService(db, publisher).update_draft_entry(
            tenant_id, entry_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.delete("/entries/{entry_id}", status_code=204)
def delete_journal_entry(
    entry_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        LedgerService(db, publisher).delete_draft_entry(tenant_id, entry_id)
    except LedgerError as e:
        raise http_error(e)


@router.post(
    "/entries/{entry_id}/reverse",
    response_model=JournalEntryResponse,
    status_code=201,
)
def reverse_journal_entry(
    entry_id: int,
    request: JournalReversalRequest | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Reverse a posted entry.

    Returns the new reversal entry. A second reversal of the
    same entry fails with ALREADY_REVERSED.
    """
    try:
        return LedgerService(db, publisher).reverse_journal_entry(
            tenant_id, entry_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("/trial-balance", response_model=TrialBalanceResponse)
def get_trial_balance(
    as_of_date: date | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return LedgerService(db).get_trial_balance(tenant_id, as_of_date)


# --- Document posting ---

@router.post("/postings", response_model=PostingResult)
def post_document(
    request: PostDocumentRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Post a draft invoice or bill by reference type and id."""
    try:
        document = source_from_reference(
            request.reference_type, request.reference_id
        )
    except ValueError as e:
        raise http_error(ValidationError(str(e)))

    try:
        return PostingService(db, publisher).post(tenant_id, document)
    except LedgerError as e:
        raise http_error(e)
