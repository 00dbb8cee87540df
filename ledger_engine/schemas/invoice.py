"""
Pydantic schemas for sales invoices and customer receipts.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from ledger_engine.models.enums import DocumentStatus, PaymentMethod


class InvoiceLineCreate(BaseModel):
    """
    One invoice line.

    account_id is the revenue account; when omitted the tenant's
    sales_revenue mapping is used. Either tax_code_id or gst_rate
    is required; pass gst_rate=0 for exempt supplies.
    """
    description: str = Field(min_length=1, max_length=255)
    account_id: int | None = None
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_code_id: int | None = None
    gst_rate: Decimal | None = Field(default=None, ge=0, le=100)
    cess_rate: Decimal | None = Field(default=None, ge=0, le=100)
    hsn_sac_code: str | None = Field(default=None, max_length=20)
    cost_center_id: str | None = Field(default=None, max_length=64)


class InvoiceCreate(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    customer_name: str = Field(min_length=1, max_length=255)
    invoice_number: str = Field(min_length=1, max_length=50)
    invoice_date: date
    due_date: date | None = None
    is_interstate: bool = False
    description: str | None = Field(default=None, max_length=255)
    lines: list[InvoiceLineCreate] = Field(min_length=1)

    @model_validator(mode="after")
    def due_after_invoice_date(self):
        if self.due_date is not None and self.due_date < self.invoice_date:
            raise ValueError("due_date cannot be before invoice_date")
        return self


class InvoiceLineResponse(BaseModel):
    id: int
    line_number: int
    description: str
    account_id: int | None
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    net_amount: Decimal
    tax_code_id: int | None
    tax_rate: Decimal
    cess_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_amount: Decimal
    hsn_sac_code: str | None

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: int
    customer_id: str
    customer_name: str
    invoice_number: str
    invoice_date: date
    due_date: date | None
    is_interstate: bool
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal
    amount_received: Decimal
    balance_due: Decimal
    status: DocumentStatus
    journal_entry_id: int | None
    posted_at: datetime | None
    lines: list[InvoiceLineResponse]

    model_config = {"from_attributes": True}


# --- Receipts ---

class ReceiptCreate(BaseModel):
    """
    Money received against a posted invoice.

    amount is the gross amount settled; tds_deducted of it was
    withheld by the customer, so amount - tds_deducted reached
    the bank.
    """
    invoice_id: int
    receipt_date: date
    amount: Decimal = Field(gt=0)
    tds_deducted: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.BANK
    bank_account_id: int | None = None
    reference_number: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def tds_within_amount(self):
        if self.tds_deducted > self.amount:
            raise ValueError("tds_deducted cannot exceed amount")
        return self


class ReceiptResponse(BaseModel):
    id: int
    invoice_id: int
    receipt_date: date
    amount: Decimal
    tds_deducted: Decimal
    payment_method: PaymentMethod
    bank_account_id: int | None
    reference_number: str | None
    journal_entry_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}
