"""
Bill service: purchase bills and vendor payments.

The purchase-side mirror of InvoiceService, with the same
fail-fast account resolution and single unit of work per call.

Accounting:
    Bill     DEBIT  Expense (per line)          net amount
             DEBIT  Input CGST/SGST/IGST/Cess   (per line)
             CREDIT Accounts Payable            total
    Payment  DEBIT  Accounts Payable            amount
             CREDIT Bank or Cash                amount - TDS
             CREDIT TDS Payable                 TDS withheld
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engine.documents import BillDocument, PaymentDocument
from ledger_engine.events import (
    EventPublisher,
    get_event_publisher,
    publish_after_commit,
)
from ledger_engine.exceptions import (
    AlreadyPostedError,
    DuplicateError,
    NotFoundError,
    NotPostedError,
    OverpaymentError,
    ValidationError,
)
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.bill import Bill, BillLine, BillPayment
from ledger_engine.models.enums import DocumentStatus
from ledger_engine.schemas.bill import BillCreate, BillPaymentCreate
from ledger_engine.schemas.ledger import JournalLineInput, PostingRequest
from ledger_engine.services.account_resolver import AccountResolver
from ledger_engine.services.invoice_service import bank_gl_account, payment_role
from ledger_engine.services.ledger_service import LedgerService
from ledger_engine.services.tax_calculator import (
    TaxCalculator,
    calculate_tds,
    compute_line_taxes,
    line_amount,
    round_money,
    summarize_lines,
)

ZERO = Decimal("0")

INPUT_TAX_ROLES = (
    ("cgst_amount", "input_cgst", "Input CGST"),
    ("sgst_amount", "input_sgst", "Input SGST"),
    ("igst_amount", "input_igst", "Input IGST"),
    ("cess_amount", "input_cess", "Input Cess"),
)


class BillService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()
        self.ledger_service = LedgerService(db, self.publisher)
        self.tax_calculator = TaxCalculator(db)
        self.resolver = AccountResolver(db)

    def create_bill(self, tenant_id: str, request: BillCreate) -> Bill:
        with unit_of_work(self.db):
            existing = self.db.execute(
                select(Bill.id).where(
                    Bill.tenant_id == tenant_id,
                    Bill.vendor_id == request.vendor_id,
                    Bill.bill_number == request.bill_number,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateError(
                    f"Bill '{request.bill_number}' from vendor "
                    f"{request.vendor_id} already exists"
                )

            items = []
            for item in request.lines:
                if item.account_id is not None:
                    self.ledger_service.get_account(tenant_id, item.account_id)

                rate, cess_rate = self.tax_calculator.resolve_rate(
                    tenant_id, item.tax_code_id, item.gst_rate, item.cess_rate
                )
                items.append((
                    line_amount(item.quantity, item.unit_price,
                                item.discount_percent),
                    rate, cess_rate,
                ))
            breakdowns = compute_line_taxes(items, request.is_interstate)

            lines = []
            for line_number, (item, breakdown) in enumerate(
                zip(request.lines, breakdowns), start=1
            ):
                lines.append(BillLine(
                    line_number=line_number,
                    description=item.description,
                    account_id=item.account_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount_percent=item.discount_percent,
                    net_amount=breakdown.base_amount,
                    tax_code_id=item.tax_code_id,
                    tax_rate=breakdown.gst_rate,
                    cess_rate=breakdown.cess_rate,
                    cgst_amount=breakdown.cgst,
                    sgst_amount=breakdown.sgst,
                    igst_amount=breakdown.igst,
                    cess_amount=breakdown.cess,
                    total_amount=(
                        breakdown.base_amount + breakdown.component_total
                    ),
                    cost_center_id=item.cost_center_id,
                ))

            summary = summarize_lines(breakdowns)
            bill = Bill(
                tenant_id=tenant_id,
                vendor_id=request.vendor_id,
                vendor_name=request.vendor_name,
                bill_number=request.bill_number,
                bill_date=request.bill_date,
                due_date=request.due_date,
                is_interstate=request.is_interstate,
                subtotal=summary.subtotal,
                cgst_amount=summary.cgst,
                sgst_amount=summary.sgst,
                igst_amount=summary.igst,
                cess_amount=summary.cess,
                total_tax=summary.total_tax,
                total_amount=summary.total_amount,
                amount_paid=ZERO,
                balance_due=summary.total_amount,
                status=DocumentStatus.DRAFT,
                lines=lines,
            )
            self.db.add(bill)
            self.db.flush()

        publish_after_commit(
            self.publisher, "bill.created", tenant_id,
            bill_id=bill.id,
            bill_number=bill.bill_number,
            total_amount=str(bill.total_amount),
        )
        return bill

    def get_bill(self, tenant_id: str, bill_id: int) -> Bill:
        bill = self.db.execute(
            select(Bill).where(Bill.id == bill_id, Bill.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if not bill:
            raise NotFoundError(f"Bill {bill_id} not found")
        return bill

    def list_bills(
        self, tenant_id: str, status: DocumentStatus | None = None
    ) -> list[Bill]:
        query = select(Bill).where(Bill.tenant_id == tenant_id)
        if status is not None:
            query = query.where(Bill.status == status)
        query = query.order_by(Bill.bill_date.desc(), Bill.id.desc())
        return list(self.db.execute(query).scalars().all())

    def post_bill(self, tenant_id: str, bill_id: int) -> Bill:
        """Post a draft bill to the ledger (entry type PUR)."""
        with unit_of_work(self.db):
            bill = self.get_bill(tenant_id, bill_id)
            if bill.status != DocumentStatus.DRAFT:
                raise AlreadyPostedError(
                    f"Bill {bill.bill_number} is already posted"
                )
            if bill.total_amount <= 0:
                raise ValidationError(
                    f"Bill {bill.bill_number} has no value to post"
                )

            roles = ["accounts_payable"]
            if any(line.account_id is None for line in bill.lines):
                roles.append("purchase_expense")
            for field, role, _ in INPUT_TAX_ROLES:
                if any(getattr(line, field) > 0 for line in bill.lines):
                    roles.append(role)
            accounts = self.resolver.require(tenant_id, *roles)

            lines = []
            for item in bill.lines:
                if item.net_amount > 0:
                    lines.append(JournalLineInput(
                        account_id=item.account_id or accounts["purchase_expense"],
                        debit_amount=item.net_amount,
                        description=item.description,
                        cost_center_id=item.cost_center_id,
                    ))
            for item in bill.lines:
                for field, role, label in INPUT_TAX_ROLES:
                    amount = getattr(item, field)
                    if amount > 0:
                        lines.append(JournalLineInput(
                            account_id=accounts[role],
                            debit_amount=amount,
                            description=label,
                        ))
            lines.append(JournalLineInput(
                account_id=accounts["accounts_payable"],
                credit_amount=bill.total_amount,
                description=f"Payable to {bill.vendor_name}",
            ))

            entry = self.ledger_service.post_entry(tenant_id, PostingRequest(
                source=BillDocument(bill.id),
                entry_date=bill.bill_date,
                description=f"Bill from {bill.vendor_name}: {bill.bill_number}",
                lines=lines,
            ))

            bill.status = DocumentStatus.POSTED
            bill.journal_entry_id = entry.id
            bill.posted_at = datetime.utcnow()
            self.db.flush()

        publish_after_commit(
            self.publisher, "bill.posted", tenant_id,
            bill_id=bill.id,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
        )
        return bill

    def record_payment(
        self, tenant_id: str, request: BillPaymentCreate
    ) -> BillPayment:
        """Pay a posted bill (entry type PMT)."""
        amount = round_money(request.amount)
        if request.tds_amount is not None:
            tds = round_money(request.tds_amount)
        elif request.tds_section:
            tds = calculate_tds(
                amount, request.tds_section,
                request.deductee_type, request.pan_available,
            )["tds_amount"]
        else:
            tds = ZERO

        with unit_of_work(self.db):
            bill = self.get_bill(tenant_id, request.bill_id)
            if bill.status == DocumentStatus.DRAFT:
                raise NotPostedError(
                    f"Bill {bill.bill_number} must be posted before payment"
                )
            if amount > bill.balance_due:
                raise OverpaymentError(
                    f"Payment {amount} exceeds balance due {bill.balance_due}"
                )

            roles = ["accounts_payable"]
            if request.bank_account_id is not None:
                money_account = bank_gl_account(
                    self.db, tenant_id, request.bank_account_id
                )
            else:
                roles.append(payment_role(request.payment_method))
            if tds > 0:
                roles.append("tds_payable")
            accounts = self.resolver.require(tenant_id, *roles)
            if request.bank_account_id is None:
                money_account = accounts[payment_role(request.payment_method)]

            payment = BillPayment(
                tenant_id=tenant_id,
                bill_id=bill.id,
                payment_date=request.payment_date,
                amount=amount,
                tds_amount=tds,
                tds_section=request.tds_section,
                payment_method=request.payment_method,
                bank_account_id=request.bank_account_id,
                reference_number=request.reference_number,
            )
            self.db.add(payment)
            self.db.flush()

            bill.amount_paid = bill.amount_paid + amount
            bill.balance_due = bill.balance_due - amount
            bill.status = (
                DocumentStatus.PAID if bill.balance_due <= 0
                else DocumentStatus.PARTIAL
            )

            lines = [JournalLineInput(
                account_id=accounts["accounts_payable"],
                debit_amount=amount,
                description=f"Payment to {bill.vendor_name}",
            )]
            if amount - tds > 0:
                lines.append(JournalLineInput(
                    account_id=money_account,
                    credit_amount=amount - tds,
                    description=f"Payment for bill {bill.bill_number}",
                ))
            if tds > 0:
                lines.append(JournalLineInput(
                    account_id=accounts["tds_payable"],
                    credit_amount=tds,
                    description="TDS Payable",
                ))

            entry = self.ledger_service.post_entry(tenant_id, PostingRequest(
                source=PaymentDocument(payment.id),
                entry_date=request.payment_date,
                description=(
                    f"Payment to {bill.vendor_name} for bill "
                    f"{bill.bill_number}"
                ),
                lines=lines,
            ))
            payment.journal_entry_id = entry.id
            self.db.flush()

        publish_after_commit(
            self.publisher, "payment.created", tenant_id,
            payment_id=payment.id,
            bill_id=bill.id,
            amount=str(amount),
            journal_entry_id=entry.id,
        )
        return payment
