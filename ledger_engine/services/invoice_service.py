"""
Invoice service: sales invoices and customer receipts.

Each operation:
1. Loads the document and checks its state (NOT_FOUND, ALREADY_POSTED,
   NOT_POSTED, OVERPAYMENT)
2. Resolves every account role it needs, failing fast with
   MISSING_ACCOUNT_MAPPING before anything is written
3. Posts the journal entry through LedgerService
4. Updates the document's own status and derived fields

Steps 3 and 4 share one unit of work: either the entry and the
document change are both committed or neither is.

Accounting:
    Invoice  DEBIT  Accounts Receivable     total
             CREDIT Revenue (per line)      net amount
             CREDIT Output CGST/SGST/IGST/Cess (per line)
    Receipt  DEBIT  Bank or Cash            amount - TDS
             CREDIT Accounts Receivable     amount
             DEBIT  TDS Receivable          TDS withheld
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engine.documents import InvoiceDocument, ReceiptDocument
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
from ledger_engine.models.banking import BankAccount
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.enums import DocumentStatus, PaymentMethod
from ledger_engine.models.invoice import Invoice, InvoiceLine, Receipt
from ledger_engine.schemas.invoice import InvoiceCreate, ReceiptCreate
from ledger_engine.schemas.ledger import JournalLineInput, PostingRequest
from ledger_engine.services.account_resolver import AccountResolver
from ledger_engine.services.ledger_service import LedgerService
from ledger_engine.services.tax_calculator import (
    TaxCalculator,
    compute_line_taxes,
    line_amount,
    round_money,
    summarize_lines,
)

ZERO = Decimal("0")

# Tax legs are written in this order for every line
OUTPUT_TAX_ROLES = (
    ("cgst_amount", "output_cgst", "Output CGST"),
    ("sgst_amount", "output_sgst", "Output SGST"),
    ("igst_amount", "output_igst", "Output IGST"),
    ("cess_amount", "output_cess", "Output Cess"),
)


def payment_role(method: PaymentMethod) -> str:
    """Mapping role for money moved without an explicit bank account."""
    return "cash" if method == PaymentMethod.CASH else "bank"


def bank_gl_account(
    db: Session, tenant_id: str, bank_account_id: int
) -> int:
    """GL account id behind a bank account."""
    bank = db.execute(
        select(BankAccount).where(
            BankAccount.id == bank_account_id,
            BankAccount.tenant_id == tenant_id,
        )
    ).scalar_one_or_none()
    if not bank:
        raise NotFoundError(f"Bank account {bank_account_id} not found")
    return bank.account_id


class InvoiceService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()
        self.ledger_service = LedgerService(db, self.publisher)
        self.tax_calculator = TaxCalculator(db)
        self.resolver = AccountResolver(db)

    # --- Invoices ---

    def create_invoice(self, tenant_id: str, request: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice with per-line GST.

        Invoice totals are the sums of the rounded line values.
        """
        with unit_of_work(self.db):
            existing = self.db.execute(
                select(Invoice.id).where(
                    Invoice.tenant_id == tenant_id,
                    Invoice.invoice_number == request.invoice_number,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateError(
                    f"Invoice '{request.invoice_number}' already exists"
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
                lines.append(InvoiceLine(
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
                    hsn_sac_code=item.hsn_sac_code,
                    cost_center_id=item.cost_center_id,
                ))

            summary = summarize_lines(breakdowns)
            invoice = Invoice(
                tenant_id=tenant_id,
                customer_id=request.customer_id,
                customer_name=request.customer_name,
                invoice_number=request.invoice_number,
                invoice_date=request.invoice_date,
                due_date=request.due_date,
                is_interstate=request.is_interstate,
                description=request.description,
                subtotal=summary.subtotal,
                cgst_amount=summary.cgst,
                sgst_amount=summary.sgst,
                igst_amount=summary.igst,
                cess_amount=summary.cess,
                total_tax=summary.total_tax,
                total_amount=summary.total_amount,
                amount_received=ZERO,
                balance_due=summary.total_amount,
                status=DocumentStatus.DRAFT,
                lines=lines,
            )
            self.db.add(invoice)
            self.db.flush()

        publish_after_commit(
            self.publisher, "invoice.created", tenant_id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_amount=str(invoice.total_amount),
        )
        return invoice

    def get_invoice(self, tenant_id: str, invoice_id: int) -> Invoice:
        invoice = self.db.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def list_invoices(
        self,
        tenant_id: str,
        status: DocumentStatus | None = None,
        customer_id: str | None = None,
    ) -> list[Invoice]:
        query = select(Invoice).where(Invoice.tenant_id == tenant_id)
        if status is not None:
            query = query.where(Invoice.status == status)
        if customer_id is not None:
            query = query.where(Invoice.customer_id == customer_id)
        query = query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        return list(self.db.execute(query).scalars().all())

    def _invoice_roles(self, invoice: Invoice) -> list[str]:
        roles = ["accounts_receivable"]
        if any(line.account_id is None for line in invoice.lines):
            roles.append("sales_revenue")
        for field, role, _ in OUTPUT_TAX_ROLES:
            if any(getattr(line, field) > 0 for line in invoice.lines):
                roles.append(role)
        return roles

    def _invoice_lines(
        self, invoice: Invoice, accounts: dict[str, int]
    ) -> list[JournalLineInput]:
        lines = [JournalLineInput(
            account_id=accounts["accounts_receivable"],
            debit_amount=invoice.total_amount,
            description=f"Receivable from {invoice.customer_name}",
        )]

        for item in invoice.lines:
            if item.net_amount > 0:
                lines.append(JournalLineInput(
                    account_id=item.account_id or accounts["sales_revenue"],
                    credit_amount=item.net_amount,
                    description=item.description,
                    cost_center_id=item.cost_center_id,
                ))

        for item in invoice.lines:
            for field, role, label in OUTPUT_TAX_ROLES:
                amount = getattr(item, field)
                if amount > 0:
                    lines.append(JournalLineInput(
                        account_id=accounts[role],
                        credit_amount=amount,
                        description=label,
                    ))
        return lines

    def post_invoice(self, tenant_id: str, invoice_id: int) -> Invoice:
        """
        Post a draft invoice to the ledger (entry type AR).

        Raises NotFoundError, AlreadyPostedError or
        MissingAccountMappingError; on any of them nothing changes.
        """
        with unit_of_work(self.db):
            invoice = self.get_invoice(tenant_id, invoice_id)
            if invoice.status != DocumentStatus.DRAFT:
                raise AlreadyPostedError(
                    f"Invoice {invoice.invoice_number} is already posted"
                )
            if invoice.total_amount <= 0:
                raise ValidationError(
                    f"Invoice {invoice.invoice_number} has no value to post"
                )

            accounts = self.resolver.require(
                tenant_id, *self._invoice_roles(invoice)
            )

            entry = self.ledger_service.post_entry(tenant_id, PostingRequest(
                source=InvoiceDocument(invoice.id),
                entry_date=invoice.invoice_date,
                description=(
                    f"Invoice to {invoice.customer_name}: "
                    f"{invoice.invoice_number}"
                ),
                lines=self._invoice_lines(invoice, accounts),
            ))

            invoice.status = DocumentStatus.POSTED
            invoice.journal_entry_id = entry.id
            invoice.posted_at = datetime.utcnow()
            self.db.flush()

        publish_after_commit(
            self.publisher, "invoice.posted", tenant_id,
            invoice_id=invoice.id,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
        )
        return invoice

    # --- Receipts ---

    def record_receipt(self, tenant_id: str, request: ReceiptCreate) -> Receipt:
        """
        Record money received against a posted invoice (entry type RCT).

        Raises NotPostedError for a draft invoice and OverpaymentError
        when the amount exceeds balance_due.
        """
        amount = round_money(request.amount)
        tds = round_money(request.tds_deducted)

        with unit_of_work(self.db):
            invoice = self.get_invoice(tenant_id, request.invoice_id)
            if invoice.status == DocumentStatus.DRAFT:
                raise NotPostedError(
                    f"Invoice {invoice.invoice_number} must be posted "
                    f"before a receipt is recorded"
                )
            if amount > invoice.balance_due:
                raise OverpaymentError(
                    f"Receipt {amount} exceeds balance due "
                    f"{invoice.balance_due}"
                )

            roles = ["accounts_receivable"]
            if request.bank_account_id is not None:
                money_account = bank_gl_account(
                    self.db, tenant_id, request.bank_account_id
                )
            else:
                roles.append(payment_role(request.payment_method))
            if tds > 0:
                roles.append("tds_receivable")
            accounts = self.resolver.require(tenant_id, *roles)
            if request.bank_account_id is None:
                money_account = accounts[payment_role(request.payment_method)]

            receipt = Receipt(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                receipt_date=request.receipt_date,
                amount=amount,
                tds_deducted=tds,
                payment_method=request.payment_method,
                bank_account_id=request.bank_account_id,
                reference_number=request.reference_number,
                notes=request.notes,
            )
            self.db.add(receipt)
            self.db.flush()

            invoice.amount_received = invoice.amount_received + amount
            invoice.balance_due = invoice.balance_due - amount
            invoice.status = (
                DocumentStatus.PAID if invoice.balance_due <= 0
                else DocumentStatus.PARTIAL
            )

            lines = []
            if amount - tds > 0:
                lines.append(JournalLineInput(
                    account_id=money_account,
                    debit_amount=amount - tds,
                    description=f"Receipt for invoice {invoice.invoice_number}",
                ))
            lines.append(JournalLineInput(
                account_id=accounts["accounts_receivable"],
                credit_amount=amount,
                description=f"Receipt from {invoice.customer_name}",
            ))
            if tds > 0:
                lines.append(JournalLineInput(
                    account_id=accounts["tds_receivable"],
                    debit_amount=tds,
                    description="TDS Receivable",
                ))

            entry = self.ledger_service.post_entry(tenant_id, PostingRequest(
                source=ReceiptDocument(receipt.id),
                entry_date=request.receipt_date,
                description=(
                    f"Receipt from {invoice.customer_name} for invoice "
                    f"{invoice.invoice_number}"
                ),
                lines=lines,
            ))
            receipt.journal_entry_id = entry.id
            self.db.flush()

        publish_after_commit(
            self.publisher, "receipt.created", tenant_id,
            receipt_id=receipt.id,
            invoice_id=invoice.id,
            amount=str(amount),
            journal_entry_id=entry.id,
        )
        return receipt

    def list_receipts(self, tenant_id: str, invoice_id: int) -> list[Receipt]:
        invoice = self.get_invoice(tenant_id, invoice_id)
        return list(invoice.receipts)
