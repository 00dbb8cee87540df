"""
Pydantic schemas for purchase bills and vendor payments.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from ledger_engine.models.enums import (
    DeducteeType,
    DocumentStatus,
    PaymentMethod,
)


class BillLineCreate(BaseModel):
    """
    One bill line.

    account_id is the expense or asset account; when omitted the
    tenant's purchase_expense mapping is used.
    """
    description: str = Field(min_length=1, max_length=255)
    account_id: int | None = None
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_code_id: int | None = None
    gst_rate: Decimal | None = Field(default=None, ge=0, le=100)
    cess_rate: Decimal | None = Field(default=None, ge=0, le=100)
    cost_center_id: str | None = Field(default=None, max_length=64)


class BillCreate(BaseModel):
    vendor_id: str = Field(min_length=1, max_length=64)
    vendor_name: str = Field(min_length=1, max_length=255)
    bill_number: str = Field(min_length=1, max_length=50)
    bill_date: date
    due_date: date | None = None
    is_interstate: bool = False
    lines: list[BillLineCreate] = Field(min_length=1)


class BillLineResponse(BaseModel):
    id: int
    line_number: int
    description: str
    account_id: int | None
    quantity: Decimal
    unit_price: Decimal
    net_amount: Decimal
    tax_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_amount: Decimal

    model_config = {"from_attributes": True}


class BillResponse(BaseModel):
    id: int
    vendor_id: str
    vendor_name: str
    bill_number: str
    bill_date: date
    due_date: date | None
    is_interstate: bool
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    status: DocumentStatus
    journal_entry_id: int | None
    posted_at: datetime | None
    lines: list[BillLineResponse]

    model_config = {"from_attributes": True}


class BillPaymentCreate(BaseModel):
    """
    Payment to a vendor against a posted bill.

    When tds_section is given without tds_amount, TDS is worked
    out from the section table.
    """
    bill_id: int
    payment_date: date
    amount: Decimal = Field(gt=0)
    tds_amount: Decimal | None = Field(default=None, ge=0)
    tds_section: str | None = Field(default=None, max_length=10)
    deductee_type: DeducteeType = DeducteeType.INDIVIDUAL
    pan_available: bool = True
    payment_method: PaymentMethod = PaymentMethod.BANK
    bank_account_id: int | None = None
    reference_number: str | None = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def tds_within_amount(self):
        if self.tds_amount is not None and self.tds_amount > self.amount:
            raise ValueError("tds_amount cannot exceed amount")
        return self


class BillPaymentResponse(BaseModel):
    id: int
    bill_id: int
    payment_date: date
    amount: Decimal
    tds_amount: Decimal
    tds_section: str | None
    payment_method: PaymentMethod
    bank_account_id: int | None
    reference_number: str | None
    journal_entry_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}
