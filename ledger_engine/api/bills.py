"""
Bill and bill payment API endpoints (accounts payable).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.models.enums import DocumentStatus
from ledger_engine.services.bill_service import BillService
from ledger_engine.schemas.bill import (
    BillCreate,
    BillPaymentCreate,
    BillPaymentResponse,
    BillResponse,
)

router = APIRouter(tags=["Bills"])


@router.post("/bills", response_model=BillResponse, status_code=201)
def create_bill(
    request: BillCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    try:
        return BillService(db, publisher).create_bill(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("/bills", response_model=list[BillResponse])
def list_bills(
    status: DocumentStatus | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return BillService(db).list_bills(tenant_id, status)


@router.get("/bills/{bill_id}", response_model=BillResponse)
def get_bill(
    bill_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return BillService(db).get_bill(tenant_id, bill_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/bills/{bill_id}/post", response_model=BillResponse)
def post_bill(
    bill_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Post a draft bill: expense and input tax debits, payable credit."""
    try:
        return BillService(db, publisher).post_bill(tenant_id, bill_id)
    except LedgerError as e:
        raise http_error(e)


@router.post(
    "/bill-payments",
    response_model=BillPaymentResponse,
    status_code=201,
)
def record_bill_payment(
    request: BillPaymentCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Pay a posted bill.

    TDS is withheld when tds_amount or tds_section is given;
    the bank is credited with the net amount.
    """
    try:
        return BillService(db, publisher).record_payment(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)
