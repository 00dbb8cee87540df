"""
Posting service: post(tenant_id, document) for any postable document.

Dispatches on the document's type. Only documents that exist as
drafts in this service (invoices and bills) can be posted on
request; receipts, payments and integration events are posted at
the moment they are recorded.
"""

from sqlalchemy.orm import Session

from ledger_engine.documents import BillDocument, InvoiceDocument, SourceDocument
from ledger_engine.events import EventPublisher, get_event_publisher
from ledger_engine.exceptions import ValidationError
from ledger_engine.schemas.ledger import PostingResult
from ledger_engine.services.bill_service import BillService
from ledger_engine.services.invoice_service import InvoiceService
from ledger_engine.services.ledger_service import LedgerService


class PostingService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        publisher = publisher or get_event_publisher()
        self.invoice_service = InvoiceService(db, publisher)
        self.bill_service = BillService(db, publisher)
        self.ledger_service = LedgerService(db, publisher)

    def post(self, tenant_id: str, document: SourceDocument) -> PostingResult:
        """
        Post one draft document and report the resulting entry.

        Raises ValidationError for document kinds that are never
        posted on request.
        """
        if not isinstance(document, (InvoiceDocument, BillDocument)):
            raise ValidationError(
                f"Documents of type '{document.reference_type}' are posted "
                f"when recorded, not on request"
            )
        try:
            document_id = int(document.id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid document id '{document.id}'")

        if isinstance(document, InvoiceDocument):
            posted = self.invoice_service.post_invoice(tenant_id, document_id)
        else:
            posted = self.bill_service.post_bill(tenant_id, document_id)

        entry = self.ledger_service.get_journal_entry(
            tenant_id, posted.journal_entry_id
        )
        return PostingResult(
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
            status=entry.status,
        )
