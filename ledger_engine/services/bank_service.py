"""
Bank service: bank accounts, statement lines and matching.

Statement lines arrive one at a time or as an imported batch.
Matching links a statement line to one posted journal line on the
bank's GL account. Proposing matches (auto_match) never writes;
apply_matches() and match_manually() do, and both are safe to
repeat.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from ledger_engine.config import get_settings
from ledger_engine.events import (
    EventPublisher,
    get_event_publisher,
    publish_after_commit,
)
from ledger_engine.exceptions import (
    AlreadyReconciledError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from ledger_engine.models.account import Account
from ledger_engine.models.banking import BankAccount, BankTransaction
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.enums import (
    AccountCategory,
    BankTransactionType,
    JournalStatus,
    MatchType,
)
from ledger_engine.models.journal import JournalEntry, JournalLine
from ledger_engine.schemas.banking import (
    ApplyMatchesRequest,
    BankAccountCreate,
    BankTransactionCreate,
    ImportRequest,
    MatchPair,
)
from ledger_engine.services.reconciliation_matcher import (
    LedgerItem,
    MatchResult,
    StatementItem,
    auto_match,
)
from ledger_engine.services.tax_calculator import round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BankService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()

    # --- Bank accounts ---

    def create_bank_account(
        self, tenant_id: str, request: BankAccountCreate
    ) -> BankAccount:
        """
        Register a bank account.

        The linked GL account must exist in the tenant and be an ASSET.
        """
        with unit_of_work(self.db):
            gl_account = self.db.execute(
                select(Account).where(
                    Account.id == request.account_id,
                    Account.tenant_id == tenant_id,
                )
            ).scalar_one_or_none()
            if not gl_account:
                raise NotFoundError(
                    f"Linked GL account {request.account_id} not found"
                )
            if gl_account.category != AccountCategory.ASSET:
                raise ValidationError(
                    "Bank account must be linked to an ASSET account"
                )

            bank = BankAccount(
                tenant_id=tenant_id,
                name=request.name,
                bank_name=request.bank_name,
                account_number=request.account_number,
                account_id=gl_account.id,
                opening_balance=request.opening_balance,
            )
            self.db.add(bank)
            self.db.flush()
        return bank

    def get_bank_account(self, tenant_id: str, bank_account_id: int) -> BankAccount:
        bank = self.db.execute(
            select(BankAccount).where(
                BankAccount.id == bank_account_id,
                BankAccount.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not bank:
            raise NotFoundError(f"Bank account {bank_account_id} not found")
        return bank

    def list_bank_accounts(self, tenant_id: str) -> list[BankAccount]:
        return list(
            self.db.execute(
                select(BankAccount)
                .where(BankAccount.tenant_id == tenant_id)
                .order_by(BankAccount.bank_name, BankAccount.id)
            ).scalars().all()
        )

    def get_balance(self, tenant_id: str, bank_account_id: int) -> dict:
        """
        Statement balance (opening + credits - debits, as the bank
        sees it) next to the GL account's book balance.
        """
        bank = self.get_bank_account(tenant_id, bank_account_id)
        credits, debits = self.db.execute(
            select(
                func.coalesce(func.sum(case(
                    (BankTransaction.transaction_type == BankTransactionType.CREDIT,
                     BankTransaction.amount),
                    else_=0,
                )), 0),
                func.coalesce(func.sum(case(
                    (BankTransaction.transaction_type == BankTransactionType.DEBIT,
                     BankTransaction.amount),
                    else_=0,
                )), 0),
            ).where(BankTransaction.bank_account_id == bank.id)
        ).one()
        statement_balance = round_money(
            Decimal(bank.opening_balance)
            + Decimal(str(credits)) - Decimal(str(debits))
        )
        book_balance = round_money(bank.gl_account.current_balance)
        return {
            "bank_account_id": bank.id,
            "statement_balance": statement_balance,
            "book_balance": book_balance,
            "difference": statement_balance - book_balance,
        }

    # --- Statement lines ---

    def get_transaction(
        self, tenant_id: str, bank_account_id: int, transaction_id: int
    ) -> BankTransaction:
        txn = self.db.execute(
            select(BankTransaction).where(
                BankTransaction.id == transaction_id,
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not txn:
            raise NotFoundError(f"Bank transaction {transaction_id} not found")
        return txn

    def add_transaction(
        self,
        tenant_id: str,
        bank_account_id: int,
        request: BankTransactionCreate,
    ) -> BankTransaction:
        with unit_of_work(self.db):
            bank = self.get_bank_account(tenant_id, bank_account_id)
            txn = BankTransaction(
                tenant_id=tenant_id,
                bank_account_id=bank.id,
                transaction_date=request.transaction_date,
                description=request.description,
                reference_number=request.reference_number,
                transaction_type=request.transaction_type,
                amount=round_money(request.amount),
                import_source="manual",
            )
            self.db.add(txn)
            self.db.flush()

        publish_after_commit(
            self.publisher, "bank_transaction.created", tenant_id,
            bank_account_id=bank_account_id,
            transaction_id=txn.id,
        )
        return txn

    def _is_duplicate(
        self,
        bank_account_id: int,
        transaction_date: date,
        amount: Decimal,
        reference_number: str | None,
    ) -> bool:
        query = select(BankTransaction.id).where(
            BankTransaction.bank_account_id == bank_account_id,
            BankTransaction.transaction_date == transaction_date,
            BankTransaction.amount == amount,
        )
        if reference_number is None:
            query = query.where(BankTransaction.reference_number.is_(None))
        else:
            query = query.where(
                BankTransaction.reference_number == reference_number
            )
        return self.db.execute(query.limit(1)).first() is not None

    def import_transactions(
        self,
        tenant_id: str,
        bank_account_id: int,
        request: ImportRequest,
    ) -> dict:
        """
        Import statement rows in one transaction.

        Rows with neither a debit nor a credit amount are skipped,
        as are rows matching an existing line on date, amount and
        reference.
        """
        imported = 0
        skipped = 0

        with unit_of_work(self.db):
            bank = self.get_bank_account(tenant_id, bank_account_id)

            for row in request.transactions:
                if row.debit_amount and row.debit_amount > 0:
                    txn_type, amount = BankTransactionType.DEBIT, row.debit_amount
                elif row.credit_amount and row.credit_amount > 0:
                    txn_type, amount = BankTransactionType.CREDIT, row.credit_amount
                else:
                    skipped += 1
                    continue

                amount = round_money(amount)
                if self._is_duplicate(
                    bank.id, row.transaction_date, amount, row.reference_number
                ):
                    skipped += 1
                    continue

                self.db.add(BankTransaction(
                    tenant_id=tenant_id,
                    bank_account_id=bank.id,
                    transaction_date=row.transaction_date,
                    description=row.description,
                    reference_number=row.reference_number,
                    transaction_type=txn_type,
                    amount=amount,
                    import_source=request.format,
                ))
                # Later rows in the same batch must see this one
                self.db.flush()
                imported += 1

        logger.info(
            "Imported %d statement lines (%d skipped) into bank account %s",
            imported, skipped, bank_account_id,
        )
        publish_after_commit(
            self.publisher, "bank_transactions.imported", tenant_id,
            bank_account_id=bank_account_id,
            imported=imported,
            skipped=skipped,
        )
        return {
            "imported": imported,
            "skipped": skipped,
            "total": len(request.transactions),
        }

    def delete_transaction(
        self, tenant_id: str, bank_account_id: int, transaction_id: int
    ) -> None:
        """Delete a statement line. Reconciled lines are kept."""
        with unit_of_work(self.db):
            txn = self.get_transaction(tenant_id, bank_account_id, transaction_id)
            if txn.is_reconciled:
                raise AlreadyReconciledError(
                    "Cannot delete a reconciled transaction"
                )
            self.db.delete(txn)
            self.db.flush()

        publish_after_commit(
            self.publisher, "bank_transaction.deleted", tenant_id,
            bank_account_id=bank_account_id,
            transaction_id=transaction_id,
        )

    def list_transactions(
        self,
        tenant_id: str,
        bank_account_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
        reconciled: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BankTransaction]:
        """Statement lines, newest first."""
        self.get_bank_account(tenant_id, bank_account_id)
        query = select(BankTransaction).where(
            BankTransaction.bank_account_id == bank_account_id,
            BankTransaction.tenant_id == tenant_id,
        )
        if start_date is not None:
            query = query.where(BankTransaction.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(BankTransaction.transaction_date <= end_date)
        if reconciled is not None:
            query = query.where(BankTransaction.is_reconciled.is_(reconciled))
        query = (
            query.order_by(
                BankTransaction.transaction_date.desc(),
                BankTransaction.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(query).scalars().all())

    # --- Matching ---

    def _matched_line_ids(self):
        return (
            select(BankTransaction.matched_ledger_entry_id)
            .where(BankTransaction.matched_ledger_entry_id.is_not(None))
        )

    def unmatched_ledger_lines(
        self, tenant_id: str, bank: BankAccount
    ) -> list[LedgerItem]:
        """Posted lines on the bank's GL account not yet matched."""
        rows = self.db.execute(
            select(
                JournalLine.id,
                JournalEntry.entry_date,
                JournalLine.debit_amount,
                JournalLine.credit_amount,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == bank.account_id,
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalStatus.POSTED,
                JournalLine.id.not_in(self._matched_line_ids()),
            )
            .order_by(JournalEntry.entry_date, JournalLine.id)
        ).all()
        return [
            LedgerItem(
                id=row.id,
                entry_date=row.entry_date,
                debit_amount=Decimal(row.debit_amount),
                credit_amount=Decimal(row.credit_amount),
            )
            for row in rows
        ]

    def unmatched_statement_lines(
        self, tenant_id: str, bank: BankAccount
    ) -> list[StatementItem]:
        """Unreconciled statement lines with no ledger match."""
        txns = self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.bank_account_id == bank.id,
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.is_reconciled.is_(False),
                BankTransaction.matched_ledger_entry_id.is_(None),
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.id)
        ).scalars().all()
        return [
            StatementItem(
                id=t.id,
                transaction_date=t.transaction_date,
                transaction_type=t.transaction_type,
                amount=Decimal(t.amount),
            )
            for t in txns
        ]

    def auto_match(
        self,
        tenant_id: str,
        bank_account_id: int,
        date_tolerance_days: int | None = None,
        amount_tolerance: Decimal | None = None,
    ) -> MatchResult:
        """Propose matches. Reads only; nothing is persisted."""
        settings = get_settings()
        if date_tolerance_days is None:
            date_tolerance_days = settings.RECONCILIATION_DATE_TOLERANCE_DAYS
        if amount_tolerance is None:
            amount_tolerance = settings.RECONCILIATION_AMOUNT_TOLERANCE

        bank = self.get_bank_account(tenant_id, bank_account_id)
        return auto_match(
            self.unmatched_statement_lines(tenant_id, bank),
            self.unmatched_ledger_lines(tenant_id, bank),
            date_tolerance_days,
            amount_tolerance,
        )

    def _ledger_line_on(
        self, tenant_id: str, bank: BankAccount, ledger_entry_id: int
    ) -> JournalLine | None:
        return self.db.execute(
            select(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.id == ledger_entry_id,
                JournalLine.account_id == bank.account_id,
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalStatus.POSTED,
            )
        ).scalar_one_or_none()

    def _line_matched_elsewhere(self, ledger_entry_id: int, txn_id: int) -> bool:
        return self.db.execute(
            select(BankTransaction.id).where(
                BankTransaction.matched_ledger_entry_id == ledger_entry_id,
                BankTransaction.id != txn_id,
            ).limit(1)
        ).first() is not None

    def apply_matches(
        self,
        tenant_id: str,
        bank_account_id: int,
        request: ApplyMatchesRequest,
    ) -> dict:
        """
        Persist reviewed match proposals.

        Idempotent: a pair that is already in place counts as
        unchanged. A pair that conflicts with an existing match,
        a reconciled line or a ledger line already taken is skipped
        and reported, never overwritten.
        """
        applied = 0
        unchanged = 0
        skipped: list[MatchPair] = []

        with unit_of_work(self.db):
            bank = self.get_bank_account(tenant_id, bank_account_id)

            for pair in request.matches:
                txn = self.db.execute(
                    select(BankTransaction).where(
                        BankTransaction.id == pair.bank_transaction_id,
                        BankTransaction.bank_account_id == bank.id,
                        BankTransaction.tenant_id == tenant_id,
                    )
                ).scalar_one_or_none()

                if txn is not None and txn.matched_ledger_entry_id == pair.ledger_entry_id:
                    unchanged += 1
                    continue

                if (
                    txn is None
                    or txn.is_reconciled
                    or txn.matched_ledger_entry_id is not None
                    or self._ledger_line_on(tenant_id, bank, pair.ledger_entry_id) is None
                    or self._line_matched_elsewhere(pair.ledger_entry_id, txn.id)
                ):
                    skipped.append(pair)
                    continue

                txn.matched_ledger_entry_id = pair.ledger_entry_id
                txn.match_type = MatchType.AUTO
                self.db.flush()
                applied += 1

        if skipped:
            logger.warning(
                "Skipped %d conflicting match(es) for bank account %s",
                len(skipped), bank_account_id,
            )
        if applied:
            publish_after_commit(
                self.publisher, "bank_transactions.matched", tenant_id,
                bank_account_id=bank_account_id,
                match_count=applied,
            )
        return {"applied": applied, "unchanged": unchanged, "skipped": skipped}

    def match_manually(
        self,
        tenant_id: str,
        bank_account_id: int,
        transaction_id: int,
        ledger_entry_id: int,
    ) -> BankTransaction:
        """Link one statement line to one ledger line by hand."""
        with unit_of_work(self.db):
            bank = self.get_bank_account(tenant_id, bank_account_id)
            txn = self.get_transaction(tenant_id, bank.id, transaction_id)

            if txn.matched_ledger_entry_id == ledger_entry_id:
                return txn
            if txn.is_reconciled:
                raise AlreadyReconciledError(
                    f"Transaction {transaction_id} is already reconciled"
                )
            if txn.matched_ledger_entry_id is not None:
                raise DuplicateError(
                    f"Transaction {transaction_id} is already matched"
                )
            if self._ledger_line_on(tenant_id, bank, ledger_entry_id) is None:
                raise NotFoundError(
                    f"Posted ledger line {ledger_entry_id} not found "
                    f"on this bank account"
                )
            if self._line_matched_elsewhere(ledger_entry_id, txn.id):
                raise DuplicateError(
                    f"Ledger line {ledger_entry_id} is already matched"
                )

            txn.matched_ledger_entry_id = ledger_entry_id
            txn.match_type = MatchType.MANUAL
            self.db.flush()

        publish_after_commit(
            self.publisher, "bank_transactions.matched", tenant_id,
            bank_account_id=bank_account_id,
            match_count=1,
        )
        return txn

    def clear_match(
        self, tenant_id: str, bank_account_id: int, transaction_id: int
    ) -> BankTransaction:
        """Remove a statement line's ledger match."""
        with unit_of_work(self.db):
            txn = self.get_transaction(tenant_id, bank_account_id, transaction_id)
            if txn.is_reconciled:
                raise AlreadyReconciledError(
                    f"Transaction {transaction_id} is already reconciled"
                )
            txn.matched_ledger_entry_id = None
            txn.match_type = None
            self.db.flush()
        return txn
