"""
Pydantic schemas for GST/TDS calculation and tax codes.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ledger_engine.models.enums import DeducteeType


# --- Tax Code Schemas ---

class TaxCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    rate: Decimal = Field(ge=0, le=100)
    cess_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class TaxCodeResponse(BaseModel):
    id: int
    code: str
    name: str
    rate: Decimal
    cess_rate: Decimal
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- GST Schemas ---

class GstCalculateRequest(BaseModel):
    """
    Calculate GST on a single amount.

    Either tax_code_id or gst_rate must be given. When both are
    present the tax code wins.
    """
    amount: Decimal = Field(gt=0)
    tax_code_id: int | None = None
    gst_rate: Decimal | None = Field(default=None, ge=0, le=100)
    cess_rate: Decimal | None = Field(default=None, ge=0, le=100)
    is_interstate: bool = False
    is_inclusive: bool = False


class TaxBreakdownResponse(BaseModel):
    base_amount: Decimal
    tax_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    cess: Decimal
    total_amount: Decimal
    gst_rate: Decimal
    cess_rate: Decimal
    is_interstate: bool


class InvoiceTaxLine(BaseModel):
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_code_id: int | None = None
    gst_rate: Decimal | None = Field(default=None, ge=0, le=100)
    cess_rate: Decimal | None = Field(default=None, ge=0, le=100)


class InvoiceTaxRequest(BaseModel):
    lines: list[InvoiceTaxLine] = Field(min_length=1)
    is_interstate: bool = False
    is_inclusive: bool = False


class InvoiceTaxTotals(BaseModel):
    subtotal: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    cess: Decimal
    total_tax: Decimal
    total_amount: Decimal


class InvoiceTaxResponse(BaseModel):
    lines: list[TaxBreakdownResponse]
    totals: InvoiceTaxTotals


# --- TDS Schemas ---

class TdsCalculateRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    section: str = Field(min_length=1, max_length=10)
    deductee_type: DeducteeType = DeducteeType.INDIVIDUAL
    pan_available: bool = True


class TdsCalculateResponse(BaseModel):
    gross_amount: Decimal
    tds_rate: Decimal
    tds_amount: Decimal
    net_amount: Decimal
    section: str
    section_description: str
    deductee_type: DeducteeType
    pan_available: bool


class TdsSectionResponse(BaseModel):
    section: str
    description: str
    rate: Decimal
    rate_company: Decimal | None
