"""
Purchase bill, bill line and vendor payment models.

The purchase-side mirror of invoices: input tax is recoverable
(an asset), the vendor is owed money (accounts payable) and TDS
withheld on payment is a liability to the tax authority.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Integer, Numeric, ForeignKey,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engine.models.base import Base
from ledger_engine.models.enums import (
    DocumentStatus,
    PaymentMethod,
    enum_values,
)


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "vendor_id", "bill_number",
            name="uq_bills_tenant_vendor_number",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bill_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_interstate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    sgst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    igst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    cess_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    total_tax: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    balance_due: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    status: Mapped[DocumentStatus] = mapped_column(
        SAEnum(
            DocumentStatus,
            name="document_status_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=DocumentStatus.DRAFT,
    )
    journal_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["BillLine"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillLine.line_number",
    )
    payments: Mapped[list["BillPayment"]] = relationship(
        back_populates="bill",
        order_by="BillPayment.id",
    )

    def __repr__(self) -> str:
        return (
            f"<Bill {self.bill_number} {self.total_amount} "
            f"({self.status.value})>"
        )


class BillLine(Base):
    __tablename__ = "bill_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    # Expense/asset account; None means "use the purchase_expense mapping"
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False
    )
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )
    net_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    tax_code_id: Mapped[int | None] = mapped_column(
        ForeignKey("tax_codes.id"), nullable=True
    )
    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )
    cess_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )
    cgst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    sgst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    igst_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    cess_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    cost_center_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )

    bill: Mapped["Bill"] = relationship(back_populates="lines")


class BillPayment(Base):
    """Money paid to a vendor against one bill."""

    __tablename__ = "bill_payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id"), nullable=False, index=True
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    tds_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    tds_section: Mapped[str | None] = mapped_column(
        String(10), nullable=True
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            name="payment_method_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=PaymentMethod.BANK,
    )
    bank_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("bank_accounts.id"), nullable=True
    )
    reference_number: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    journal_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    bill: Mapped["Bill"] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return f"<BillPayment {self.amount} for bill {self.bill_id}>"
