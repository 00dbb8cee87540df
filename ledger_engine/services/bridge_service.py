"""
Integration bridge: turns events from other modules into journal entries.

Each subject has one handler. A handler validates its payload,
resolves the account roles it needs (all of them, before any
write), and posts one auto-posted entry through LedgerService.

Handling is idempotent per source document: an event whose
document already has an entry returns that entry unchanged, so
a redelivered event never posts twice. Two deliveries racing each
other are settled by a unique index on the reference pair of bridge
entries; the loser returns the winner's entry.
"""

import logging
from datetime import date
from decimal import Decimal

import pydantic
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engine.documents import (
    ExternalInvoiceDocument,
    EcommerceOrderDocument,
    EcommercePaymentDocument,
    ExternalPaymentDocument,
    GuestFolioDocument,
    HospitalityPaymentDocument,
    PosSaleDocument,
    PurchaseDocument,
    RefundDocument,
    RestaurantOrderDocument,
    RoomChargeDocument,
    SourceDocument,
)
from ledger_engine.events import (
    EventPublisher,
    get_event_publisher,
    publish_after_commit,
)
from ledger_engine.exceptions import (
    DatabaseError,
    MissingAccountMappingError,
    ValidationError,
)
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.journal import JournalEntry
from ledger_engine.schemas.bridge import (
    EcommerceOrderCreatedPayload,
    EcommercePaymentCapturedPayload,
    EcommerceRefundPayload,
    GuestCheckoutPayload,
    HospitalityPaymentPayload,
    InventoryPurchasePayload,
    InvoiceCreatedPayload,
    PaymentReceivedPayload,
    PosSaleCompletedPayload,
    RestaurantOrderPaidPayload,
    RoomServiceChargePayload,
)
from ledger_engine.schemas.ledger import JournalLineInput, PostingRequest
from ledger_engine.services.account_resolver import AccountResolver
from ledger_engine.services.invoice_service import payment_role
from ledger_engine.services.ledger_service import LedgerService
from ledger_engine.services.tax_calculator import round_money

logger = logging.getLogger(__name__)

SOURCE_SYSTEM = "integration_bridge"

# Restaurant settlements; room charges go to the guest folio
RESTAURANT_PAYMENT_ROLES = {
    "cash": "cash",
    "bank": "bank",
    "cheque": "bank",
    "card": "bank",
    "upi": "bank",
    "room_charge": "guest_ledger",
}


def _debit(account_id: int, amount: Decimal, description: str) -> JournalLineInput:
    return JournalLineInput(
        account_id=account_id,
        debit_amount=round_money(amount),
        description=description,
    )


def _credit(account_id: int, amount: Decimal, description: str) -> JournalLineInput:
    return JournalLineInput(
        account_id=account_id,
        credit_amount=round_money(amount),
        description=description,
    )


class BridgeService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()
        self.ledger_service = LedgerService(db, self.publisher)
        self.resolver = AccountResolver(db)
        self.handlers = {
            "invoice.created": (
                InvoiceCreatedPayload, self._invoice_created),
            "payment.received": (
                PaymentReceivedPayload, self._payment_received),
            "pos.sale.completed": (
                PosSaleCompletedPayload, self._pos_sale_completed),
            "inventory.purchase.received": (
                InventoryPurchasePayload, self._inventory_purchase),
            "room_service.charged": (
                RoomServiceChargePayload, self._room_service_charged),
            "hospitality.payment.received": (
                HospitalityPaymentPayload, self._hospitality_payment),
            "guest.checked_out": (
                GuestCheckoutPayload, self._guest_checkout),
            "restaurant.order.paid": (
                RestaurantOrderPaidPayload, self._restaurant_order_paid),
            "ecommerce.order.created": (
                EcommerceOrderCreatedPayload, self._ecommerce_order_created),
            "ecommerce.payment.captured": (
                EcommercePaymentCapturedPayload, self._ecommerce_payment_captured),
            "ecommerce.return.completed": (
                EcommerceRefundPayload, self._ecommerce_refund),
        }

    @property
    def subjects(self) -> list[str]:
        return sorted(self.handlers)

    def handle(self, subject: str, tenant_id: str, payload: dict) -> JournalEntry:
        """Post the journal entry for one integration event."""
        try:
            schema, handler = self.handlers[subject]
        except KeyError:
            raise ValidationError(f"Unsupported event subject '{subject}'")

        try:
            data = schema.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid payload for {subject}: {e.errors()[0]['msg']}"
            ) from e

        source, request_builder = handler(tenant_id, data)

        try:
            with unit_of_work(self.db):
                existing = self.ledger_service.find_entry_for(tenant_id, source)
                if existing is not None:
                    logger.info(
                        "Skipping %s for %s %s: already posted as %s",
                        subject, source.reference_type, source.id,
                        existing.entry_number,
                    )
                    return existing
                entry = self.ledger_service.post_entry(
                    tenant_id, request_builder()
                )
        except DatabaseError as e:
            # A concurrent delivery of the same event committed first
            # and the unique reference index rejected this one.
            if not isinstance(e.__cause__, IntegrityError):
                raise
            existing = self.ledger_service.find_entry_for(tenant_id, source)
            if existing is None:
                raise
            logger.info(
                "Concurrent %s for %s %s already posted as %s",
                subject, source.reference_type, source.id,
                existing.entry_number,
            )
            return existing

        publish_after_commit(
            self.publisher, "bridge.entry_created", tenant_id,
            subject=subject,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
            reference_type=source.reference_type,
            reference_id=source.id,
        )
        return entry

    def _request(
        self,
        source: SourceDocument,
        entry_date: date | None,
        description: str,
        lines: list[JournalLineInput],
    ) -> PostingRequest:
        return PostingRequest(
            source=source,
            entry_date=entry_date or date.today(),
            description=description,
            lines=lines,
            auto_post=True,
            source_system=SOURCE_SYSTEM,
        )

    def _first_resolved(self, tenant_id: str, *keys: str) -> int | None:
        """First role in keys that resolves, or None."""
        for key in keys:
            account_id = self.resolver.resolve(tenant_id, key)
            if account_id is not None:
                return account_id
        return None

    def _require_any(self, tenant_id: str, **choices: tuple[str, ...]) -> dict:
        """
        Resolve each name to the first of its roles that resolves.

        Raises MissingAccountMappingError naming the preferred role
        of every choice that resolved to nothing.
        """
        accounts, missing = {}, []
        for name, keys in choices.items():
            account_id = self._first_resolved(tenant_id, *keys)
            if account_id is None:
                missing.append(keys[0])
            else:
                accounts[name] = account_id
        if missing:
            raise MissingAccountMappingError(missing)
        return accounts

    # --- Handlers ---
    # Each returns (source, builder). Account resolution happens
    # here, before the unit of work opens; the builder only
    # assembles lines from already-resolved ids.

    def _invoice_created(self, tenant_id: str, data: InvoiceCreatedPayload):
        roles = ["accounts_receivable", "sales_revenue"]
        if data.tax_amount > 0:
            roles.append("gst_payable")
        accounts = self.resolver.require(tenant_id, *roles)
        source = ExternalInvoiceDocument(data.invoice_id)

        def build():
            lines = [
                _debit(accounts["accounts_receivable"], data.total_amount,
                       f"Invoice {data.invoice_number}"),
                _credit(accounts["sales_revenue"], data.revenue_amount,
                        f"Sales - Invoice {data.invoice_number}"),
            ]
            if data.tax_amount > 0:
                lines.append(_credit(
                    accounts["gst_payable"], data.tax_amount,
                    f"GST - Invoice {data.invoice_number}",
                ))
            customer = data.customer_name or "customer"
            return self._request(
                source, data.invoice_date,
                f"Invoice {data.invoice_number} to {customer}", lines,
            )

        return source, build

    def _payment_received(self, tenant_id: str, data: PaymentReceivedPayload):
        money_role = payment_role(data.payment_method)
        accounts = self.resolver.require(
            tenant_id, money_role, "accounts_receivable"
        )
        source = ExternalPaymentDocument(data.payment_id)

        def build():
            label = data.invoice_number or data.invoice_id or data.payment_id
            return self._request(
                source, data.payment_date,
                f"Payment received for {label}",
                [
                    _debit(accounts[money_role], data.amount,
                           "Payment received"),
                    _credit(accounts["accounts_receivable"], data.amount,
                            "Clear AR"),
                ],
            )

        return source, build

    def _pos_sale_completed(self, tenant_id: str, data: PosSaleCompletedPayload):
        roles = ["cash", "sales_revenue"]
        if data.cost_amount > 0:
            roles += ["cost_of_goods_sold", "inventory"]
        accounts = self.resolver.require(tenant_id, *roles)
        source = PosSaleDocument(data.transaction_id)

        def build():
            lines = [
                _debit(accounts["cash"], data.total_amount,
                       f"POS Sale {data.transaction_id}"),
                _credit(accounts["sales_revenue"], data.total_amount,
                        f"Sales - POS {data.transaction_id}"),
            ]
            if data.cost_amount > 0:
                lines += [
                    _debit(accounts["cost_of_goods_sold"], data.cost_amount,
                           "Cost of goods sold"),
                    _credit(accounts["inventory"], data.cost_amount,
                            "Reduce inventory"),
                ]
            return self._request(
                source, data.transaction_date,
                f"POS sale {data.transaction_id}", lines,
            )

        return source, build

    def _inventory_purchase(self, tenant_id: str, data: InventoryPurchasePayload):
        accounts = self.resolver.require(
            tenant_id, "inventory", "accounts_payable"
        )
        source = PurchaseDocument(data.purchase_order_id)

        def build():
            vendor = data.vendor_name or "vendor"
            return self._request(
                source, data.purchase_date,
                f"Inventory purchase {data.purchase_order_id} from {vendor}",
                [
                    _debit(accounts["inventory"], data.total_amount,
                           "Inventory received"),
                    _credit(accounts["accounts_payable"], data.total_amount,
                            "Payable to vendor"),
                ],
            )

        return source, build

    def _room_service_charged(self, tenant_id: str, data: RoomServiceChargePayload):
        accounts = self.resolver.require(tenant_id, "guest_ledger", "fnb_revenue")
        source = RoomChargeDocument(data.charge_id)

        def build():
            room = f" room {data.room_number}" if data.room_number else ""
            return self._request(
                source, data.charge_date,
                f"Room service charge{room}",
                [
                    _debit(accounts["guest_ledger"], data.amount,
                           "Charge to guest folio"),
                    _credit(accounts["fnb_revenue"], data.amount,
                            "Room Service Revenue"),
                ],
            )

        return source, build

    def _hospitality_payment(self, tenant_id: str, data: HospitalityPaymentPayload):
        money_role = payment_role(data.payment_method)
        accounts = self._require_any(
            tenant_id,
            money=(money_role,),
            guest=("accounts_receivable", "room_revenue"),
        )
        source = HospitalityPaymentDocument(data.document_id)

        def build():
            return self._request(
                source, data.payment_date,
                f"Guest payment - booking {data.booking_id}",
                [
                    _debit(accounts["money"], data.amount, "Payment received"),
                    _credit(accounts["guest"], data.amount, "Guest payment"),
                ],
            )

        return source, build

    def _guest_checkout(self, tenant_id: str, data: GuestCheckoutPayload):
        accounts = self.resolver.require(
            tenant_id, "accounts_receivable", "room_revenue"
        )
        source = GuestFolioDocument(data.booking_id)

        def build():
            guest = data.guest_name or "guest"
            return self._request(
                source, data.checkout_date,
                f"Guest folio for {guest} - checkout {data.booking_id}",
                [
                    _debit(accounts["accounts_receivable"],
                           data.outstanding_balance, "Guest balance due"),
                    _credit(accounts["room_revenue"],
                            data.outstanding_balance, "Room revenue"),
                ],
            )

        return source, build

    def _restaurant_order_paid(self, tenant_id: str, data: RestaurantOrderPaidPayload):
        money_role = RESTAURANT_PAYMENT_ROLES[data.payment_method]
        accounts = self.resolver.require(tenant_id, money_role, "fnb_revenue")
        source = RestaurantOrderDocument(data.order_id)

        def build():
            table = data.table_number or "N/A"
            return self._request(
                source, data.paid_date,
                f"Restaurant order {data.order_id} - table {table}",
                [
                    _debit(accounts[money_role], data.total,
                           f"F&B sale - {data.payment_method}"),
                    _credit(accounts["fnb_revenue"], data.total, "F&B Revenue"),
                ],
            )

        return source, build

    def _ecommerce_order_created(
        self, tenant_id: str, data: EcommerceOrderCreatedPayload
    ):
        accounts = self._require_any(
            tenant_id,
            receivable=("ecommerce_receivable", "accounts_receivable"),
            revenue=("ecommerce_revenue", "sales_revenue"),
        )
        source = EcommerceOrderDocument(data.order_id)

        def build():
            return self._request(
                source, data.order_date,
                f"E-commerce order {data.order_id}",
                [
                    _debit(accounts["receivable"], data.total,
                           f"Order {data.order_id} receivable"),
                    _credit(accounts["revenue"], data.total,
                            "E-commerce revenue"),
                ],
            )

        return source, build

    def _ecommerce_payment_captured(
        self, tenant_id: str, data: EcommercePaymentCapturedPayload
    ):
        accounts = self._require_any(
            tenant_id,
            bank=("bank",),
            receivable=("ecommerce_receivable", "accounts_receivable"),
        )
        source = EcommercePaymentDocument(data.document_id)

        def build():
            return self._request(
                source, data.captured_date,
                f"E-commerce payment - order {data.order_id or 'N/A'}",
                [
                    _debit(accounts["bank"], data.amount, "Payment captured"),
                    _credit(accounts["receivable"], data.amount,
                            "Clear ecommerce AR"),
                ],
            )

        return source, build

    def _ecommerce_refund(self, tenant_id: str, data: EcommerceRefundPayload):
        accounts = self._require_any(
            tenant_id,
            refunds=("ecommerce_refunds", "sales_revenue"),
            bank=("bank",),
        )
        source = RefundDocument(data.return_id)

        def build():
            return self._request(
                source, data.refund_date,
                f"E-commerce refund for return {data.return_id}",
                [
                    _debit(accounts["refunds"], data.refund_amount,
                           "Refund issued"),
                    _credit(accounts["bank"], data.refund_amount,
                            "Bank disbursement"),
                ],
            )

        return source, build
