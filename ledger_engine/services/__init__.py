"""Business logic services."""

from ledger_engine.services.account_resolver import AccountResolver
from ledger_engine.services.tax_calculator import TaxCalculator
from ledger_engine.services.ledger_service import LedgerService
from ledger_engine.services.invoice_service import InvoiceService
from ledger_engine.services.bill_service import BillService
from ledger_engine.services.posting_service import PostingService
from ledger_engine.services.bridge_service import BridgeService
from ledger_engine.services.bank_service import BankService
from ledger_engine.services.reconciliation_service import ReconciliationService

__all__ = [
    "AccountResolver",
    "TaxCalculator",
    "LedgerService",
    "InvoiceService",
    "BillService",
    "PostingService",
    "BridgeService",
    "BankService",
    "ReconciliationService",
]
