"""
GST tax code model.

A tax code names a GST slab (e.g. "GST18") and an optional
compensation cess rate. CGST/SGST/IGST are derived from the
single rate at calculation time, never stored here.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_engine.models.base import Base


class TaxCode(Base):
    __tablename__ = "tax_codes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_tax_codes_tenant_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    cess_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<TaxCode {self.code} {self.rate}%>"
