"""
Source documents a journal entry can originate from.

JournalEntry stores its origin as a (reference_type, reference_id)
pair. In code that pair is a closed set of small frozen dataclasses,
one per document kind, so dispatch on "what produced this entry"
is a type check over a known list rather than string matching.
"""

from dataclasses import dataclass
from typing import ClassVar

from ledger_engine.models.enums import JournalEntryType


@dataclass(frozen=True)
class SourceDocument:
    """Base for every document kind. Never instantiated directly."""

    id: str

    reference_type: ClassVar[str]
    entry_type: ClassVar[JournalEntryType]

    def __post_init__(self):
        if type(self) is SourceDocument:
            raise TypeError("SourceDocument is abstract; use a subclass")
        # Ids arrive as ints from the ORM and strings from events
        if self.id is not None:
            object.__setattr__(self, "id", str(self.id))


@dataclass(frozen=True)
class InvoiceDocument(SourceDocument):
    reference_type: ClassVar[str] = "invoice"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.AR


@dataclass(frozen=True)
class ReceiptDocument(SourceDocument):
    reference_type: ClassVar[str] = "receipt"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.RCT


@dataclass(frozen=True)
class BillDocument(SourceDocument):
    reference_type: ClassVar[str] = "bill"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PUR


@dataclass(frozen=True)
class PaymentDocument(SourceDocument):
    reference_type: ClassVar[str] = "payment"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PMT


@dataclass(frozen=True)
class PosSaleDocument(SourceDocument):
    reference_type: ClassVar[str] = "pos_transaction"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.POS


@dataclass(frozen=True)
class PurchaseDocument(SourceDocument):
    reference_type: ClassVar[str] = "purchase_order"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PUR


@dataclass(frozen=True)
class ExternalInvoiceDocument(SourceDocument):
    reference_type: ClassVar[str] = "external_invoice"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.INV


@dataclass(frozen=True)
class ExternalPaymentDocument(SourceDocument):
    reference_type: ClassVar[str] = "external_payment"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PMT


@dataclass(frozen=True)
class RoomChargeDocument(SourceDocument):
    reference_type: ClassVar[str] = "room_service"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.CHG


@dataclass(frozen=True)
class RefundDocument(SourceDocument):
    reference_type: ClassVar[str] = "refund"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.REF


@dataclass(frozen=True)
class HospitalityPaymentDocument(SourceDocument):
    reference_type: ClassVar[str] = "hospitality_payment"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PMT


@dataclass(frozen=True)
class GuestFolioDocument(SourceDocument):
    reference_type: ClassVar[str] = "guest_folio"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.INV


@dataclass(frozen=True)
class RestaurantOrderDocument(SourceDocument):
    reference_type: ClassVar[str] = "restaurant_order"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.POS


@dataclass(frozen=True)
class EcommerceOrderDocument(SourceDocument):
    reference_type: ClassVar[str] = "ecommerce_order"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.INV


@dataclass(frozen=True)
class EcommercePaymentDocument(SourceDocument):
    reference_type: ClassVar[str] = "ecommerce_payment"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.PMT


@dataclass(frozen=True)
class ReversalDocument(SourceDocument):
    """The entry that cancels a posted entry; id is the original's id."""
    reference_type: ClassVar[str] = "reversal"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.REV


@dataclass(frozen=True)
class ManualDocument(SourceDocument):
    """A hand-keyed journal entry; id is the caller's reference."""
    id: str | None = None

    reference_type: ClassVar[str] = "manual"
    entry_type: ClassVar[JournalEntryType] = JournalEntryType.STD


DOCUMENT_TYPES: dict[str, type[SourceDocument]] = {
    cls.reference_type: cls
    for cls in (
        InvoiceDocument,
        ReceiptDocument,
        BillDocument,
        PaymentDocument,
        PosSaleDocument,
        PurchaseDocument,
        ExternalInvoiceDocument,
        ExternalPaymentDocument,
        RoomChargeDocument,
        RefundDocument,
        HospitalityPaymentDocument,
        GuestFolioDocument,
        RestaurantOrderDocument,
        EcommerceOrderDocument,
        EcommercePaymentDocument,
        ReversalDocument,
        ManualDocument,
    )
}


def source_from_reference(
    reference_type: str | None, reference_id: str | None
) -> SourceDocument | None:
    """Rebuild the typed document from a stored reference pair."""
    if reference_type is None:
        return None
    try:
        cls = DOCUMENT_TYPES[reference_type]
    except KeyError:
        raise ValueError(f"Unknown reference type '{reference_type}'")
    return cls(reference_id)
