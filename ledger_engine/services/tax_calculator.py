"""
Tax calculator: Indian GST and TDS.

GST rules:
1. Intrastate supplies split the GST rate evenly into CGST and SGST
2. Interstate supplies carry the whole rate as IGST
3. Compensation cess is always computed on the base and never split
4. An inclusive amount already contains the tax; the base is backed out

All arithmetic is Decimal. Intermediate values are never rounded;
every monetary output is rounded to 2 places, half-up, once.
Document lines are rounded on running totals (compute_line_taxes),
so the lines add up to the document-level tax to the paisa.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engine.exceptions import (
    DuplicateError,
    InvalidTdsSectionError,
    MissingRateError,
    NotFoundError,
    ValidationError,
)
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.enums import DeducteeType
from ledger_engine.models.tax_code import TaxCode
from ledger_engine.schemas.tax import (
    GstCalculateRequest,
    InvoiceTaxRequest,
    TaxCodeCreate,
    TdsCalculateRequest,
)

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

LINE_COMPONENTS = ("base", "cgst", "sgst", "igst", "cess")

# Rate applied under any section when the deductee has no PAN
NO_PAN_TDS_RATE = Decimal("20")


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, float):
        # repr round-trips floats without binary noise
        return Decimal(repr(value))
    return Decimal(value)


@dataclass(frozen=True)
class TaxBreakdown:
    base_amount: Decimal
    tax_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    cess: Decimal
    total_amount: Decimal
    gst_rate: Decimal = ZERO
    cess_rate: Decimal = ZERO
    is_interstate: bool = False

    @property
    def component_total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst + self.cess

    def as_dict(self) -> dict:
        return {
            "base_amount": self.base_amount,
            "tax_amount": self.tax_amount,
            "cgst": self.cgst,
            "sgst": self.sgst,
            "igst": self.igst,
            "cess": self.cess,
            "total_amount": self.total_amount,
            "gst_rate": self.gst_rate,
            "cess_rate": self.cess_rate,
            "is_interstate": self.is_interstate,
        }


@dataclass(frozen=True)
class InvoiceTaxSummary:
    subtotal: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    cess: Decimal
    total_tax: Decimal
    total_amount: Decimal


def _split_tax(amount, rate, cess_rate, is_interstate, is_inclusive) -> dict:
    """Unrounded base, tax and components for one amount."""
    if rate is None:
        raise MissingRateError("GST rate is required")

    amount = _as_decimal(amount)
    rate = _as_decimal(rate)
    cess_rate = _as_decimal(cess_rate)

    if amount < 0:
        raise ValidationError("Amount must not be negative")
    if rate < 0 or cess_rate < 0:
        raise ValidationError("Tax rates must not be negative")

    if is_inclusive:
        base = amount / (1 + (rate + cess_rate) / HUNDRED)
        tax = amount - base
    else:
        base = amount
        tax = base * (rate + cess_rate) / HUNDRED

    if is_interstate:
        igst = base * rate / HUNDRED
        cgst = sgst = ZERO
    else:
        cgst = sgst = base * rate / (2 * HUNDRED)
        igst = ZERO

    return {
        "base": base,
        "tax": tax,
        "cgst": cgst,
        "sgst": sgst,
        "igst": igst,
        "cess": base * cess_rate / HUNDRED,
        "rate": rate,
        "cess_rate": cess_rate,
    }


def compute_tax(
    amount,
    rate,
    cess_rate=ZERO,
    is_interstate: bool = False,
    is_inclusive: bool = False,
) -> TaxBreakdown:
    """
    Split GST on an amount into its components.

    Inclusive:  base = amount / (1 + (rate + cess) / 100)
                tax  = amount - base
    Exclusive:  base = amount
                tax  = base * (rate + cess) / 100

    Raises MissingRateError if rate is None; an exempt supply must
    pass rate=0 explicitly.
    """
    parts = _split_tax(amount, rate, cess_rate, is_interstate, is_inclusive)
    return TaxBreakdown(
        base_amount=round_money(parts["base"]),
        tax_amount=round_money(parts["tax"]),
        cgst=round_money(parts["cgst"]),
        sgst=round_money(parts["sgst"]),
        igst=round_money(parts["igst"]),
        cess=round_money(parts["cess"]),
        total_amount=round_money(parts["base"] + parts["tax"]),
        gst_rate=parts["rate"],
        cess_rate=parts["cess_rate"],
        is_interstate=is_interstate,
    )


def compute_line_taxes(
    items,
    is_interstate: bool = False,
    is_inclusive: bool = False,
) -> list[TaxBreakdown]:
    """
    Breakdowns for the lines of one document.

    items is an iterable of (amount, rate, cess_rate). Each of base,
    cgst, sgst, igst and cess is rounded on its running total, and a
    line gets the difference from the previous rounded total. The
    rounded lines therefore add up to the rounded document totals
    for any number of lines. A line's tax is the sum of its rounded
    components.
    """
    exact = dict.fromkeys(LINE_COMPONENTS, ZERO)
    rounded = dict.fromkeys(LINE_COMPONENTS, ZERO)
    breakdowns = []

    for amount, rate, cess_rate in items:
        parts = _split_tax(amount, rate, cess_rate, is_interstate, is_inclusive)
        line = {}
        for name in LINE_COMPONENTS:
            exact[name] += parts[name]
            running = round_money(exact[name])
            line[name] = running - rounded[name]
            rounded[name] = running

        tax = line["cgst"] + line["sgst"] + line["igst"] + line["cess"]
        breakdowns.append(TaxBreakdown(
            base_amount=line["base"],
            tax_amount=tax,
            cgst=line["cgst"],
            sgst=line["sgst"],
            igst=line["igst"],
            cess=line["cess"],
            total_amount=line["base"] + tax,
            gst_rate=parts["rate"],
            cess_rate=parts["cess_rate"],
            is_interstate=is_interstate,
        ))
    return breakdowns


def line_amount(quantity, unit_price, discount_percent=ZERO) -> Decimal:
    """quantity * unit_price less discount, unrounded."""
    gross = _as_decimal(quantity) * _as_decimal(unit_price)
    return gross * (1 - _as_decimal(discount_percent) / HUNDRED)


def summarize_lines(lines: list[TaxBreakdown]) -> InvoiceTaxSummary:
    """Invoice totals as the sums of already-rounded line values."""
    cgst = sum((b.cgst for b in lines), ZERO)
    sgst = sum((b.sgst for b in lines), ZERO)
    igst = sum((b.igst for b in lines), ZERO)
    cess = sum((b.cess for b in lines), ZERO)
    subtotal = sum((b.base_amount for b in lines), ZERO)
    total_tax = cgst + sgst + igst + cess
    return InvoiceTaxSummary(
        subtotal=subtotal,
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        cess=cess,
        total_tax=total_tax,
        total_amount=subtotal + total_tax,
    )


# --- TDS ---

@dataclass(frozen=True)
class TdsSection:
    section: str
    description: str
    rate: Decimal
    rate_company: Decimal | None = None


TDS_SECTIONS: dict[str, TdsSection] = {
    s.section: s
    for s in (
        TdsSection("194A", "Interest other than interest on securities",
                   Decimal("10")),
        TdsSection("194C", "Payment to contractors",
                   Decimal("1"), Decimal("2")),
        TdsSection("194H", "Commission or brokerage", Decimal("5")),
        TdsSection("194I", "Rent", Decimal("10")),
        TdsSection("194J", "Professional/Technical fees", Decimal("10")),
        TdsSection("194Q", "Purchase of goods", Decimal("0.1")),
        TdsSection("194R", "Benefits or perquisites", Decimal("10")),
    )
}


def tds_rate_for(
    section: str,
    deductee_type: DeducteeType = DeducteeType.INDIVIDUAL,
    pan_available: bool = True,
) -> Decimal:
    info = TDS_SECTIONS.get(section)
    if info is None:
        raise InvalidTdsSectionError(f"Invalid TDS section '{section}'")
    if not pan_available:
        return NO_PAN_TDS_RATE
    if deductee_type == DeducteeType.COMPANY and info.rate_company:
        return info.rate_company
    return info.rate


def calculate_tds(
    amount,
    section: str,
    deductee_type: DeducteeType = DeducteeType.INDIVIDUAL,
    pan_available: bool = True,
) -> dict:
    """
    Tax deducted at source on a payment.

    Companies get the section's company rate where one exists.
    Without a PAN the flat 20% rate applies regardless of section.
    """
    amount = _as_decimal(amount)
    if amount <= 0:
        raise ValidationError("Amount must be positive")

    rate = tds_rate_for(section, deductee_type, pan_available)
    tds_amount = round_money(amount * rate / HUNDRED)
    return {
        "gross_amount": amount,
        "tds_rate": rate,
        "tds_amount": tds_amount,
        "net_amount": round_money(amount - tds_amount),
        "section": section,
        "section_description": TDS_SECTIONS[section].description,
        "deductee_type": deductee_type,
        "pan_available": pan_available,
    }


class TaxCalculator:
    """
    Tenant-aware front end to compute_tax.

    Resolves tax codes to rates, then delegates the arithmetic
    to the pure functions above.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_tax_code(self, tenant_id: str, tax_code_id: int) -> TaxCode:
        tax_code = self.db.execute(
            select(TaxCode).where(
                TaxCode.id == tax_code_id,
                TaxCode.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not tax_code:
            raise NotFoundError(f"Tax code {tax_code_id} not found")
        return tax_code

    def resolve_rate(
        self,
        tenant_id: str,
        tax_code_id: int | None,
        gst_rate,
        cess_rate=None,
    ) -> tuple[Decimal, Decimal]:
        """
        Return (gst_rate, cess_rate) for one line.

        A tax code wins over an explicit rate. An explicit cess_rate
        overrides the tax code's cess. No code and no rate is
        MISSING_RATE, never a silent zero.
        """
        if tax_code_id is not None:
            tax_code = self.get_tax_code(tenant_id, tax_code_id)
            if not tax_code.is_active:
                raise ValidationError(f"Tax code {tax_code.code} is not active")
            rate = _as_decimal(tax_code.rate)
            cess = (
                _as_decimal(cess_rate) if cess_rate is not None
                else _as_decimal(tax_code.cess_rate)
            )
            return rate, cess

        if gst_rate is None:
            raise MissingRateError(
                "Either tax_code_id or gst_rate is required"
            )
        return _as_decimal(gst_rate), _as_decimal(cess_rate)

    def calculate(
        self, tenant_id: str, request: GstCalculateRequest
    ) -> TaxBreakdown:
        rate, cess = self.resolve_rate(
            tenant_id, request.tax_code_id, request.gst_rate, request.cess_rate
        )
        return compute_tax(
            request.amount, rate, cess,
            request.is_interstate, request.is_inclusive,
        )

    def calculate_invoice(
        self, tenant_id: str, request: InvoiceTaxRequest
    ) -> tuple[list[TaxBreakdown], InvoiceTaxSummary]:
        items = []
        for line in request.lines:
            rate, cess = self.resolve_rate(
                tenant_id, line.tax_code_id, line.gst_rate, line.cess_rate
            )
            items.append((
                line_amount(line.quantity, line.unit_price,
                            line.discount_percent),
                rate, cess,
            ))
        breakdowns = compute_line_taxes(
            items, request.is_interstate, request.is_inclusive
        )
        return breakdowns, summarize_lines(breakdowns)

    # --- Tax code administration ---

    def create_tax_code(
        self, tenant_id: str, request: TaxCodeCreate
    ) -> TaxCode:
        with unit_of_work(self.db):
            existing = self.db.execute(
                select(TaxCode).where(
                    TaxCode.tenant_id == tenant_id,
                    TaxCode.code == request.code,
                )
            ).scalar_one_or_none()
            if existing:
                raise DuplicateError(
                    f"Tax code '{request.code}' already exists"
                )

            tax_code = TaxCode(
                tenant_id=tenant_id,
                code=request.code,
                name=request.name,
                rate=request.rate,
                cess_rate=request.cess_rate,
            )
            self.db.add(tax_code)
            self.db.flush()
        return tax_code

    def list_tax_codes(
        self, tenant_id: str, active_only: bool = False
    ) -> list[TaxCode]:
        query = select(TaxCode).where(TaxCode.tenant_id == tenant_id)
        if active_only:
            query = query.where(TaxCode.is_active.is_(True))
        return list(
            self.db.execute(query.order_by(TaxCode.rate, TaxCode.code))
            .scalars().all()
        )
