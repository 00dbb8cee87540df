"""
Pydantic schemas for integration events from other modules.

Each payload mirrors what the publishing module sends. Only the
fields the ledger needs are declared; extra fields are ignored.
"""

from datetime import date
from decimal import Decimal

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, model_validator

from ledger_engine.models.enums import PaymentMethod


class BridgeEvent(BaseModel):
    """Envelope accepted by the bridge endpoint."""
    subject: str = Field(min_length=1, max_length=100)
    payload: dict


class BridgePayload(BaseModel):
    # Publishers send ids as numbers or strings
    model_config = {"coerce_numbers_to_str": True}


class InvoiceCreatedPayload(BridgePayload):
    invoice_id: str
    invoice_number: str
    invoice_date: date | None = None
    customer_name: str | None = None
    subtotal: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    total_amount: Decimal = Field(gt=0, decimal_places=2)

    @model_validator(mode="after")
    def totals_are_consistent(self):
        if self.tax_amount >= self.total_amount:
            raise ValueError("tax_amount must be less than total_amount")
        if (
            self.subtotal is not None
            and self.subtotal + self.tax_amount != self.total_amount
        ):
            raise ValueError("subtotal + tax_amount must equal total_amount")
        return self

    @property
    def revenue_amount(self) -> Decimal:
        return self.total_amount - self.tax_amount


class PaymentReceivedPayload(BridgePayload):
    payment_id: str
    invoice_id: str | None = None
    invoice_number: str | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: date | None = None


class PosSaleCompletedPayload(BridgePayload):
    transaction_id: str
    transaction_date: date | None = None
    total_amount: Decimal = Field(gt=0, decimal_places=2)
    cost_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)


class InventoryPurchasePayload(BridgePayload):
    purchase_order_id: str
    purchase_date: date | None = None
    vendor_name: str | None = None
    total_amount: Decimal = Field(gt=0, decimal_places=2)


class RoomServiceChargePayload(BridgePayload):
    charge_id: str
    room_number: str | None = None
    charge_date: date | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)


class EcommerceRefundPayload(BridgePayload):
    return_id: str
    order_id: str | None = None
    refund_date: date | None = None
    refund_amount: Decimal = Field(gt=0, decimal_places=2)


class HospitalityPaymentPayload(BridgePayload):
    booking_id: str
    payment_id: str | None = None
    payment_date: date | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH

    @property
    def document_id(self) -> str:
        # A booking can be paid in parts; each payment is its own document
        return self.payment_id or self.booking_id


class GuestCheckoutPayload(BridgePayload):
    booking_id: str
    guest_name: str | None = None
    checkout_date: date | None = None
    outstanding_balance: Decimal = Field(gt=0, decimal_places=2)


class RestaurantOrderPaidPayload(BridgePayload):
    order_id: str
    table_number: str | None = None
    paid_date: date | None = None
    total: Decimal = Field(
        gt=0, decimal_places=2,
        validation_alias=AliasChoices("total", "amount"),
    )
    payment_method: Literal[
        "cash", "bank", "cheque", "card", "upi", "room_charge"
    ] = "cash"


class EcommerceOrderCreatedPayload(BridgePayload):
    order_id: str
    order_date: date | None = None
    total: Decimal = Field(gt=0, decimal_places=2)


class EcommercePaymentCapturedPayload(BridgePayload):
    payment_id: str | None = None
    order_id: str | None = None
    captured_date: date | None = None
    amount: Decimal = Field(gt=0, decimal_places=2)

    @model_validator(mode="after")
    def identifies_a_document(self):
        if self.payment_id is None and self.order_id is None:
            raise ValueError("payment_id or order_id is required")
        return self

    @property
    def document_id(self) -> str:
        return self.payment_id or self.order_id
