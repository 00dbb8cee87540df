"""
Tax API endpoints: tax codes, GST and TDS calculations.

Calculations are read-only; only tax code creation writes.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ledger_engine.api.deps import get_tenant_id, http_error
from ledger_engine.exceptions import LedgerError
from ledger_engine.models.base import get_db
from ledger_engine.services.tax_calculator import (
    TDS_SECTIONS,
    TaxCalculator,
    calculate_tds,
)
from ledger_engine.schemas.tax import (
    GstCalculateRequest,
    InvoiceTaxRequest,
    InvoiceTaxResponse,
    TaxBreakdownResponse,
    TaxCodeCreate,
    TaxCodeResponse,
    TdsCalculateRequest,
    TdsCalculateResponse,
    TdsSectionResponse,
)

router = APIRouter(prefix="/tax", tags=["Tax"])


@router.post("/codes", response_model=TaxCodeResponse, status_code=201)
def create_tax_code(
    request: TaxCodeCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        return TaxCalculator(db).create_tax_code(tenant_id, request)
    except LedgerError as e:
        raise http_error(e)


@router.get("/codes", response_model=list[TaxCodeResponse])
def list_tax_codes(
    active_only: bool = False,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return TaxCalculator(db).list_tax_codes(tenant_id, active_only)


@router.post("/gst/calculate", response_model=TaxBreakdownResponse)
def calculate_gst(
    request: GstCalculateRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """
    Split GST for one amount.

    Intrastate supplies split the rate into equal CGST and SGST;
    interstate supplies carry the whole rate as IGST. Cess is
    added on top in both cases.
    """
    try:
        return TaxCalculator(db).calculate(tenant_id, request).as_dict()
    except LedgerError as e:
        raise http_error(e)


@router.post("/gst/invoice", response_model=InvoiceTaxResponse)
def calculate_invoice_tax(
    request: InvoiceTaxRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Per-line GST plus invoice totals summed from the rounded lines."""
    try:
        breakdowns, summary = TaxCalculator(db).calculate_invoice(
            tenant_id, request
        )
    except LedgerError as e:
        raise http_error(e)
    return {
        "lines": [b.as_dict() for b in breakdowns],
        "totals": asdict(summary),
    }


@router.post("/tds/calculate", response_model=TdsCalculateResponse)
def calculate_tds_endpoint(request: TdsCalculateRequest):
    try:
        return calculate_tds(
            request.amount,
            request.section,
            request.deductee_type,
            request.pan_available,
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("/tds/sections", response_model=list[TdsSectionResponse])
def list_tds_sections():
    return [asdict(section) for section in TDS_SECTIONS.values()]
