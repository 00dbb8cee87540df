"""
Chart of accounts and tenant account mappings.

Every journal line is posted against an Account. current_balance
is a running debit-minus-credit total maintained by the posting
engine when an entry is posted.

AccountMapping lets a tenant point a semantic role such as
"accounts_receivable" at one of its own accounts, overriding the
configured default account code for that role.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, ForeignKey,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engine.models.base import Base
from ledger_engine.models.enums import AccountCategory, enum_values


class Account(Base):
    """
    A single account in a tenant's chart of accounts.

    Once journal lines reference an account its category is
    frozen; accounts are deactivated, never deleted.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_accounts_tenant_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[AccountCategory] = mapped_column(
        SAEnum(
            AccountCategory,
            name="account_category_enum",
            values_callable=enum_values,
        ),
        nullable=False,
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account"
    )

    def __repr__(self) -> str:
        return f"<Account {self.code} ({self.category.value})>"


class AccountMapping(Base):
    """Tenant override: semantic role -> concrete account."""

    __tablename__ = "account_mappings"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "mapping_key", name="uq_account_mappings_tenant_key"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mapping_key: Mapped[str] = mapped_column(String(50), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        return f"<AccountMapping {self.mapping_key} -> {self.account_id}>"
