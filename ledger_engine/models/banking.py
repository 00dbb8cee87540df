"""
Bank account, bank statement transaction and reconciliation models.

A BankAccount is linked to the GL account that mirrors it in the
ledger. BankTransactions are statement lines as the bank reports
them. A Reconciliation claims transactions (reconciliation_id)
while in progress and marks them reconciled when completed.

At most one reconciliation per bank account may be in progress.
The partial unique index enforces that in the database, so two
concurrent starts cannot both succeed.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Numeric, ForeignKey, Index,
    Enum as SAEnum, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engine.models.base import Base
from ledger_engine.models.enums import (
    BankTransactionType,
    MatchType,
    ReconciliationStatus,
    enum_values,
)


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    gl_account: Mapped["Account"] = relationship()
    transactions: Mapped[list["BankTransaction"]] = relationship(
        back_populates="bank_account"
    )

    def __repr__(self) -> str:
        return f"<BankAccount {self.bank_name} {self.account_number}>"


class BankTransaction(Base):
    __tablename__ = "bank_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    bank_account_id: Mapped[int] = mapped_column(
        ForeignKey("bank_accounts.id"), nullable=False, index=True
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_number: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    transaction_type: Mapped[BankTransactionType] = mapped_column(
        SAEnum(
            BankTransactionType,
            name="bank_transaction_type_enum",
            values_callable=enum_values,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    is_reconciled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    matched_ledger_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_lines.id"), nullable=True
    )
    match_type: Mapped[MatchType | None] = mapped_column(
        SAEnum(MatchType, name="match_type_enum", values_callable=enum_values),
        nullable=True,
    )
    reconciliation_id: Mapped[int | None] = mapped_column(
        ForeignKey("reconciliations.id"), nullable=True, index=True
    )
    import_source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="manual"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    bank_account: Mapped["BankAccount"] = relationship(
        back_populates="transactions"
    )

    def __repr__(self) -> str:
        return (
            f"<BankTransaction {self.transaction_date} "
            f"{self.transaction_type.value} {self.amount}>"
        )


class Reconciliation(Base):
    __tablename__ = "reconciliations"
    __table_args__ = (
        Index(
            "uq_reconciliations_one_in_progress",
            "bank_account_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    bank_account_id: Mapped[int] = mapped_column(
        ForeignKey("bank_accounts.id"), nullable=False
    )
    statement_date: Mapped[date] = mapped_column(Date, nullable=False)
    statement_opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    statement_ending_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False
    )
    status: Mapped[ReconciliationStatus] = mapped_column(
        SAEnum(
            ReconciliationStatus,
            name="reconciliation_status_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=ReconciliationStatus.IN_PROGRESS,
    )
    reconciled_balance: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    difference_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    bank_account: Mapped["BankAccount"] = relationship()
    transactions: Mapped[list["BankTransaction"]] = relationship(
        order_by="BankTransaction.transaction_date",
    )

    def __repr__(self) -> str:
        return (
            f"<Reconciliation {self.statement_date} "
            f"({self.status.value})>"
        )
