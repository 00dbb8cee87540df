"""
Reconciliation workflow API endpoints.

start -> match/unmatch statement lines -> complete (or cancel).
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.services.reconciliation_service import ReconciliationService
from ledger_engine.schemas.banking import (
    ClaimResult,
    ReconciliationComplete,
    ReconciliationDetail,
    ReconciliationResponse,
    ReconciliationStart,
    ReconciliationSummary,
    TransactionIdsRequest,
    UnreconciledItems,
)

router = APIRouter(prefix="/reconciliations", tags=["Reconciliations"])


@router.post("", response_model=ReconciliationResponse, status_code=201)
def start_reconciliation(
    request: ReconciliationStart,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Start reconciling one bank statement.

    Fails with IN_PROGRESS when the bank account already has a
    reconciliation in progress.
    """
    try:
        return ReconciliationService(db, publisher).start_reconciliation(
            tenant_id, request
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("/unreconciled", response_model=UnreconciledItems)
def get_unreconciled_items(
    bank_account_id: int | None = None,
    cutoff_date: date | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return ReconciliationService(db).get_unreconciled_items(
        tenant_id, bank_account_id, cutoff_date
    )


@router.get("/summary", response_model=list[ReconciliationSummary])
def get_reconciliation_summary(
    start_date: date | None = None,
    end_date: date | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return ReconciliationService(db).get_reconciliation_summary(
        tenant_id, start_date, end_date
    )


@router.get("/{reconciliation_id}", response_model=ReconciliationDetail)
def get_reconciliation(
    reconciliation_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return ReconciliationService(db).get_reconciliation(
            tenant_id, reconciliation_id
        )
    except LedgerError as e:
        raise http_error(e)


@router.post("/{reconciliation_id}/match", response_model=ClaimResult)
def match_transactions(
    reconciliation_id: int,
    request: TransactionIdsRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return ReconciliationService(db, publisher).match_transactions(
            tenant_id, reconciliation_id, request.transaction_ids
        )
    except LedgerError as e:
        raise http_error(e)


@router.post("/{reconciliation_id}/unmatch", response_model=ClaimResult)
def unmatch_transactions(
    reconciliation_id: int,
    request: TransactionIdsRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return ReconciliationService(db).unmatch_transactions(
            tenant_id, reconciliation_id, request.transaction_ids
        )
    except LedgerError as e:
        raise http_error(e)


@router.post("/{reconciliation_id}/complete", response_model=ReconciliationResponse)
def complete_reconciliation(
    reconciliation_id: int,
    request: ReconciliationComplete | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Complete the reconciliation.

    Rejected with NOT_BALANCED when the difference exceeds 0.01
    unless force is true; a forced difference is kept on record.
    """
    force = request.force if request else False
    try:
        return ReconciliationService(db, publisher).complete_reconciliation(
            tenant_id, reconciliation_id, force
        )
    except LedgerError as e:
        raise http_error(e)


@router.post("/{reconciliation_id}/cancel", response_model=ReconciliationResponse)
def cancel_reconciliation(
    reconciliation_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return ReconciliationService(db, publisher).cancel_reconciliation(
            tenant_id, reconciliation_id
        )
    except LedgerError as e:
        raise http_error(e)
