"""
Invoice and receipt API endpoints (accounts receivable).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_publisher, get_tenant_id, http_error
from ledger_engine.events import EventPublisher
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.models.enums import DocumentStatus
from ledger_engine.services.invoice_service import InvoiceService
from ledger_engine.schemas.invoice import (
    InvoiceCreate,
    InvoiceResponse,
    ReceiptCreate,
    ReceiptResponse,
)

router = APIRouter(tags=["Invoices"])


# --- Invoice Endpoints ---

@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
def create_invoice(
    request: InvoiceCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """Create a draft invoice. Tax is computed per line."""
    try:
        return InvoiceService(db, publisher).create_invoice(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("/invoices", response_model=list[InvoiceResponse])
def list_invoices(
    status: DocumentStatus | None = None,
    customer_id: str | None = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return InvoiceService(db).list_invoices(tenant_id, status, customer_id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return InvoiceService(db).get_invoice(tenant_id, invoice_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/invoices/{invoice_id}/post", response_model=InvoiceResponse)
def post_invoice(
    invoice_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Post a draft invoice to the ledger.

    Writes one AR entry: receivable debit, revenue credits and
    output tax credits. Fails with ALREADY_POSTED when the
    invoice is not a draft.
    """
    try:
        return InvoiceService(db, publisher).post_invoice(tenant_id, invoice_id)
    except LedgerError as e:
        raise http_error(e)


@router.get(
    "/invoices/{invoice_id}/receipts",
    response_model=list[ReceiptResponse],
)
def list_receipts(
    invoice_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return InvoiceService(db).list_receipts(tenant_id, invoice_id)
    except LedgerError as e:
        raise http_error(e)


# --- Receipt Endpoints ---

@router.post("/receipts", response_model=ReceiptResponse, status_code=201)
def record_receipt(
    request: ReceiptCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Record a customer receipt against a posted invoice.

    Posts an RCT entry and reduces the invoice's balance due.
    Receipts larger than the balance due are rejected.
    """
    try:
        return InvoiceService(db, publisher).record_receipt(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)
