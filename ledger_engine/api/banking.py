"""
Bank account API endpoints: statement lines and matching.

Auto-match only proposes; a client reviews the proposals and
sends the accepted pairs to /matches.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.models.enums import ReconciliationStatus
from ledger_engine.services.bank_service import BankService
from ledger_engine.services.reconciliation_service import ReconciliationService
from ledger_engine.schemas.banking import (
    ApplyMatchesRequest,
    ApplyMatchesResult,
    AutoMatchRequest,
    AutoMatchResponse,
    BankAccountCreate,
    BankAccountResponse,
    BankBalanceResponse,
    BankTransactionCreate,
    BankTransactionResponse,
    ImportRequest,
    ImportResult,
    ManualMatchRequest,
    MatchProposalResponse,
    ReconciliationResponse,
)

router = APIRouter(prefix="/bank-accounts", tags=["Banking"])


# --- Bank accounts ---

@router.post("", response_model=BankAccountResponse, status_code=201)
def create_bank_account(
    request: BankAccountCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Register a bank account against an existing ASSET GL account."""
    try:
        return BankService(db).create_bank_account(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("", response_model=list[BankAccountResponse])
def list_bank_accounts(
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return BankService(db).list_bank_accounts(tenant_id)


@router.get("/{bank_account_id}", response_model=BankAccountResponse)
def get_bank_account(
    bank_account_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return BankService(db).get_bank_account(tenant_id, bank_account_id)
    except LedgerError as e:
        raise http_error(e)


@router.get("/{bank_account_id}/balance", response_model=BankBalanceResponse)
def get_bank_balance(
    bank_account_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return BankService(db).get_balance(tenant_id, bank_account_id)
    except LedgerError as e:
        raise http_error(e)


# --- Statement lines ---

@router.post(
    "/{bank_account_id}/transactions",
    response_model=BankTransactionResponse,
    status_code=201,
)
def add_transaction(
    bank_account_id: int,
    request: BankTransactionCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return BankService(db, publisher).add_transaction(
            tenant_id, bank_account_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.post(
    "/{bank_account_id}/transactions/import",
    response_model=ImportResult,
)
def import_transactions(
    bank_account_id: int,
    request: ImportRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Import statement rows, skipping empty rows and duplicates."""
    try:
        return BankService(db, publisher).import_transactions(
            tenant_id, bank_account_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.get(
    "/{bank_account_id}/transactions",
    response_model=list[BankTransactionResponse],
)
def list_transactions(
    bank_account_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    reconciled: bool | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return BankService(db).list_transactions(
            tenant_id, bank_account_id, start_date, end_date,
            reconciled, limit, offset,
        )
    except LedgerError as e:
        raise http_error(e)


@router.delete("/{bank_account_id}/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    bank_account_id: int,
    transaction_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        BankService(db, publisher).delete_transaction(
            tenant_id, bank_account_id, transaction_id
        )
    except LedgerError as e:
        raise http_error(e)
    return Response(status_code=204)


# --- Matching ---

@router.post("/{bank_account_id}/auto-match", response_model=AutoMatchResponse)
def auto_match(
    bank_account_id: int,
    request: AutoMatchRequest | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """
    Propose statement-to-ledger matches. Nothing is saved.

    Greedy first-fit: each statement line, oldest first, takes the
    first unused ledger line within both tolerances.
    """
    request = request or AutoMatchRequest()
    try:
        result = BankService(db).auto_match(
            tenant_id, bank_account_id,
            request.date_tolerance_days, request.amount_tolerance,
        )
    except LedgerError as e:
        raise http_error(e)

    return AutoMatchResponse(
        matches=[MatchProposalResponse.model_validate(m) for m in result.matches],
        unmatched_bank_transactions=result.unmatched_bank,
        unmatched_ledger_entries=result.unmatched_ledger,
    )


@router.post("/{bank_account_id}/matches", response_model=ApplyMatchesResult)
def apply_matches(
    bank_account_id: int,
    request: ApplyMatchesRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Save reviewed matches. Conflicting pairs are reported, not applied."""
    try:
        return BankService(db, publisher).apply_matches(
            tenant_id, bank_account_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.put(
    "/{bank_account_id}/transactions/{transaction_id}/match",
    response_model=BankTransactionResponse,
)
def match_manually(
    bank_account_id: int,
    transaction_id: int,
    request: ManualMatchRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return BankService(db, publisher).match_manually(
            tenant_id, bank_account_id, transaction_id, request.ledger_entry_id
        )
    except LedgerError as e:
        raise http_error(e)


@router.delete(
    "/{bank_account_id}/transactions/{transaction_id}/match",
    response_model=BankTransactionResponse,
)
def clear_match(
    bank_account_id: int,
    transaction_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return BankService(db).clear_match(
            tenant_id, bank_account_id, transaction_id
        )
    except LedgerError as e:
        raise http_error(e)


@router.get(
    "/{bank_account_id}/reconciliations",
    response_model=list[ReconciliationResponse],
)
def list_reconciliations(
    bank_account_id: int,
    status: ReconciliationStatus | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return ReconciliationService(db).list_reconciliations(
            tenant_id, bank_account_id, status, limit, offset
        )
    except LedgerError as e:
        raise http_error(e)
