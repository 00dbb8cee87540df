"""
Journal entry, journal line and entry-number sequence models.

A JournalEntry groups the debit and credit legs (JournalLines)
of one financial transaction. Once an entry is posted it is
immutable: its lines can be neither changed nor extended. The
posting engine is responsible for balance; the model guards
immutability.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Integer, Numeric, ForeignKey,
    Index, UniqueConstraint, Enum as SAEnum, event, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engine.exceptions import ImmutableEntryError
from ledger_engine.models.base import Base
from ledger_engine.models.enums import (
    JournalEntryType,
    JournalStatus,
    enum_values,
)


class EntrySequence(Base):
    """
    Per-tenant journal entry counter.

    Numbers are handed out with an atomic UPDATE ... RETURNING,
    so two concurrent postings for the same tenant serialize on
    this row and never receive the same number. A rolled-back
    posting leaves a gap, which is acceptable.
    """

    __tablename__ = "entry_sequences"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_value: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )


class JournalEntry(Base):
    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "entry_number", name="uq_journal_entries_number"
        ),
        # One entry per integration event document
        Index(
            "uq_journal_entries_bridge_reference",
            "tenant_id", "reference_type", "reference_id",
            unique=True,
            postgresql_where=text("source_system = 'integration_bridge'"),
            sqlite_where=text("source_system = 'integration_bridge'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    entry_type: Mapped[JournalEntryType] = mapped_column(
        SAEnum(
            JournalEntryType,
            name="journal_entry_type_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=JournalEntryType.STD,
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[JournalStatus] = mapped_column(
        SAEnum(
            JournalStatus,
            name="journal_status_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=JournalStatus.DRAFT,
    )
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    is_balanced: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    reference_type: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    source_system: Mapped[str] = mapped_column(
        String(50), nullable=False, default="ledger_engine"
    )
    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
    )

    @property
    def is_posted(self) -> bool:
        return self.status == JournalStatus.POSTED

    def __repr__(self) -> str:
        return (
            f"<JournalEntry {self.entry_number} {self.entry_type.value} "
            f"({self.status.value})>"
        )


class JournalLine(Base):
    """
    One debit or credit leg. Exactly one of debit_amount and
    credit_amount is non-zero.
    """

    __tablename__ = "journal_lines"
    __table_args__ = (
        UniqueConstraint(
            "journal_entry_id", "line_number", name="uq_journal_lines_number"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    journal_entry_id: Mapped[int] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    description: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    cost_center_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")
    account: Mapped["Account"] = relationship(back_populates="lines")

    @property
    def net_amount(self) -> Decimal:
        """Signed effect on the account balance (debit positive)."""
        return Decimal(self.debit_amount) - Decimal(self.credit_amount)

    def __repr__(self) -> str:
        return (
            f"<JournalLine #{self.line_number} acct={self.account_id} "
            f"dr={self.debit_amount} cr={self.credit_amount}>"
        )


# --- Immutability guards ---

@event.listens_for(JournalLine, "before_insert")
def _reject_line_on_posted_entry(mapper, connection, target):
    if target.entry is not None and target.entry.is_posted:
        raise ImmutableEntryError(
            f"Journal entry {target.entry.entry_number} is posted; "
            f"lines cannot be added"
        )


@event.listens_for(JournalLine, "before_update")
def _reject_line_update_on_posted_entry(mapper, connection, target):
    if target.entry is not None and target.entry.is_posted:
        raise ImmutableEntryError(
            f"Journal entry {target.entry.entry_number} is posted; "
            f"lines cannot be changed"
        )
