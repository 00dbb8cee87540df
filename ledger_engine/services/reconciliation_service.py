"""
Reconciliation service: the statement-by-statement workflow.

A reconciliation is started for one bank account and statement
date, claims statement lines while in progress, and is completed
(claimed lines become reconciled for good) or cancelled (claims
are released).

    opening    = last completed reconciliation's ending balance,
                 else the bank account's opening balance
    calculated = opening + claimed credits - claimed debits
    difference = statement ending balance - calculated
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engine.events import (
    EventPublisher,
    get_event_publisher,
    publish_after_commit,
)
from ledger_engine.exceptions import (
    NotFoundError,
    NotInProgressError,
    ReconciliationImbalanceError,
    ReconciliationInProgressError,
)
from ledger_engine.models.banking import BankAccount, BankTransaction, Reconciliation
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.enums import BankTransactionType, ReconciliationStatus
from ledger_engine.schemas.banking import ReconciliationStart
from ledger_engine.services.bank_service import BankService
from ledger_engine.services.tax_calculator import round_money

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")


def _totals(transactions: list[BankTransaction]) -> tuple[Decimal, Decimal]:
    """(credits, debits) of a list of statement lines."""
    credits = Decimal("0")
    debits = Decimal("0")
    for txn in transactions:
        if txn.transaction_type == BankTransactionType.CREDIT:
            credits += Decimal(txn.amount)
        else:
            debits += Decimal(txn.amount)
    return credits, debits


class ReconciliationService:

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()
        self.bank_service = BankService(db, self.publisher)

    def _opening_balance(self, tenant_id: str, bank: BankAccount) -> Decimal:
        last_ending = self.db.execute(
            select(Reconciliation.statement_ending_balance)
            .where(
                Reconciliation.bank_account_id == bank.id,
                Reconciliation.tenant_id == tenant_id,
                Reconciliation.status == ReconciliationStatus.COMPLETED,
            )
            .order_by(
                Reconciliation.statement_date.desc(),
                Reconciliation.id.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        if last_ending is not None:
            return Decimal(last_ending)
        return Decimal(bank.opening_balance)

    def _in_progress_for(self, bank_account_id: int) -> Reconciliation | None:
        return self.db.execute(
            select(Reconciliation).where(
                Reconciliation.bank_account_id == bank_account_id,
                Reconciliation.status == ReconciliationStatus.IN_PROGRESS,
            )
        ).scalar_one_or_none()

    def start_reconciliation(
        self, tenant_id: str, request: ReconciliationStart
    ) -> Reconciliation:
        """
        Open a reconciliation for one statement.

        Only one reconciliation per bank account may be in progress.
        The check below gives a clear error in the common case; the
        partial unique index rejects a concurrent start that slips
        past it.
        """
        with unit_of_work(self.db):
            bank = self.bank_service.get_bank_account(
                tenant_id, request.bank_account_id
            )
            if self._in_progress_for(bank.id) is not None:
                raise ReconciliationInProgressError(
                    "A reconciliation is already in progress for this account"
                )

            recon = Reconciliation(
                tenant_id=tenant_id,
                bank_account_id=bank.id,
                statement_date=request.statement_date,
                statement_opening_balance=round_money(
                    self._opening_balance(tenant_id, bank)
                ),
                statement_ending_balance=round_money(
                    request.statement_ending_balance
                ),
                status=ReconciliationStatus.IN_PROGRESS,
                notes=request.notes,
            )
            self.db.add(recon)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ReconciliationInProgressError(
                    "A reconciliation is already in progress for this account"
                ) from e

        logger.info(
            "Started reconciliation %s for bank account %s as of %s",
            recon.id, bank.id, recon.statement_date,
        )
        publish_after_commit(
            self.publisher, "reconciliation.started", tenant_id,
            reconciliation_id=recon.id,
            bank_account_id=bank.id,
        )
        return recon

    def _get(self, tenant_id: str, reconciliation_id: int) -> Reconciliation:
        recon = self.db.execute(
            select(Reconciliation).where(
                Reconciliation.id == reconciliation_id,
                Reconciliation.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not recon:
            raise NotFoundError(f"Reconciliation {reconciliation_id} not found")
        return recon

    def _require_in_progress(
        self, tenant_id: str, reconciliation_id: int
    ) -> Reconciliation:
        recon = self._get(tenant_id, reconciliation_id)
        if recon.status != ReconciliationStatus.IN_PROGRESS:
            raise NotInProgressError(
                f"Reconciliation {reconciliation_id} is not in progress"
            )
        return recon

    def _claimed(self, recon: Reconciliation) -> list[BankTransaction]:
        return list(
            self.db.execute(
                select(BankTransaction)
                .where(BankTransaction.reconciliation_id == recon.id)
                .order_by(BankTransaction.transaction_date, BankTransaction.id)
            ).scalars().all()
        )

    def _unclaimed(self, recon: Reconciliation) -> list[BankTransaction]:
        return list(
            self.db.execute(
                select(BankTransaction)
                .where(
                    BankTransaction.bank_account_id == recon.bank_account_id,
                    BankTransaction.tenant_id == recon.tenant_id,
                    BankTransaction.is_reconciled.is_(False),
                    BankTransaction.reconciliation_id.is_(None),
                    BankTransaction.transaction_date <= recon.statement_date,
                )
                .order_by(BankTransaction.transaction_date, BankTransaction.id)
            ).scalars().all()
        )

    def get_reconciliation(self, tenant_id: str, reconciliation_id: int) -> dict:
        """The reconciliation, its claimed and open lines, and a summary."""
        recon = self._get(tenant_id, reconciliation_id)
        matched = self._claimed(recon)
        unmatched = self._unclaimed(recon)

        matched_credits, matched_debits = _totals(matched)
        unmatched_credits, unmatched_debits = _totals(unmatched)
        calculated = (
            Decimal(recon.statement_opening_balance)
            + matched_credits - matched_debits
        )
        difference = Decimal(recon.statement_ending_balance) - calculated

        return {
            "reconciliation": recon,
            "matched_transactions": matched,
            "unmatched_transactions": unmatched,
            "summary": {
                "matched_credits": round_money(matched_credits),
                "matched_debits": round_money(matched_debits),
                "unmatched_credits": round_money(unmatched_credits),
                "unmatched_debits": round_money(unmatched_debits),
                "calculated_balance": round_money(calculated),
                "difference": round_money(difference),
                "is_balanced": abs(difference) < BALANCE_TOLERANCE,
            },
        }

    def list_reconciliations(
        self,
        tenant_id: str,
        bank_account_id: int,
        status: ReconciliationStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Reconciliation]:
        """Reconciliations for one bank account, latest statement first."""
        self.bank_service.get_bank_account(tenant_id, bank_account_id)
        query = select(Reconciliation).where(
            Reconciliation.bank_account_id == bank_account_id,
            Reconciliation.tenant_id == tenant_id,
        )
        if status is not None:
            query = query.where(Reconciliation.status == status)
        query = (
            query.order_by(
                Reconciliation.statement_date.desc(),
                Reconciliation.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(query).scalars().all())

    def match_transactions(
        self, tenant_id: str, reconciliation_id: int, transaction_ids: list[int]
    ) -> dict:
        """
        Claim statement lines for this reconciliation.

        Lines on another bank account, already reconciled, or held
        by another reconciliation are left alone; the result counts
        only lines this reconciliation now holds.
        """
        with unit_of_work(self.db):
            recon = self._require_in_progress(tenant_id, reconciliation_id)
            txns = self.db.execute(
                select(BankTransaction).where(
                    BankTransaction.id.in_(transaction_ids),
                    BankTransaction.tenant_id == tenant_id,
                    BankTransaction.bank_account_id == recon.bank_account_id,
                    BankTransaction.is_reconciled.is_(False),
                )
                .order_by(BankTransaction.transaction_date, BankTransaction.id)
            ).scalars().all()

            claimed = []
            for txn in txns:
                if txn.reconciliation_id not in (None, recon.id):
                    continue
                txn.reconciliation_id = recon.id
                claimed.append(txn)
            self.db.flush()

        if claimed:
            publish_after_commit(
                self.publisher, "bank_transactions.matched", tenant_id,
                reconciliation_id=reconciliation_id,
                match_count=len(claimed),
            )
        return {"count": len(claimed), "transactions": claimed}

    def unmatch_transactions(
        self, tenant_id: str, reconciliation_id: int, transaction_ids: list[int]
    ) -> dict:
        """Release statement lines this reconciliation holds."""
        with unit_of_work(self.db):
            recon = self._require_in_progress(tenant_id, reconciliation_id)
            released = list(
                self.db.execute(
                    select(BankTransaction).where(
                        BankTransaction.id.in_(transaction_ids),
                        BankTransaction.tenant_id == tenant_id,
                        BankTransaction.reconciliation_id == recon.id,
                    )
                ).scalars().all()
            )
            for txn in released:
                txn.reconciliation_id = None
            self.db.flush()

        return {"count": len(released), "transactions": released}

    def complete_reconciliation(
        self, tenant_id: str, reconciliation_id: int, force: bool = False
    ) -> Reconciliation:
        """
        Close the reconciliation and mark its lines reconciled.

        Rejected with NOT_BALANCED when the statement ending balance
        and the calculated balance differ by more than 0.01, unless
        force is set. A forced completion keeps the signed difference
        in difference_amount.
        """
        with unit_of_work(self.db):
            recon = self._require_in_progress(tenant_id, reconciliation_id)
            claimed = self._claimed(recon)

            credits, debits = _totals(claimed)
            calculated = round_money(
                Decimal(recon.statement_opening_balance) + credits - debits
            )
            difference = round_money(
                Decimal(recon.statement_ending_balance) - calculated
            )

            if abs(difference) > BALANCE_TOLERANCE and not force:
                raise ReconciliationImbalanceError(
                    f"Reconciliation is not balanced. Difference: {difference}. "
                    f"Use force=true to complete anyway."
                )

            for txn in claimed:
                txn.is_reconciled = True
            recon.status = ReconciliationStatus.COMPLETED
            recon.reconciled_balance = calculated
            recon.difference_amount = difference
            recon.completed_at = datetime.utcnow()
            self.db.flush()

        if difference != 0:
            logger.warning(
                "Reconciliation %s completed with difference %s (force=%s)",
                recon.id, difference, force,
            )
        else:
            logger.info(
                "Reconciliation %s completed, %d lines reconciled",
                recon.id, len(claimed),
            )
        publish_after_commit(
            self.publisher, "reconciliation.completed", tenant_id,
            reconciliation_id=recon.id,
            bank_account_id=recon.bank_account_id,
            difference_amount=str(difference),
        )
        return recon

    def cancel_reconciliation(
        self, tenant_id: str, reconciliation_id: int
    ) -> Reconciliation:
        """Release every claimed line and mark the reconciliation cancelled."""
        with unit_of_work(self.db):
            recon = self._require_in_progress(tenant_id, reconciliation_id)
            for txn in self._claimed(recon):
                txn.reconciliation_id = None
            recon.status = ReconciliationStatus.CANCELLED
            self.db.flush()

        publish_after_commit(
            self.publisher, "reconciliation.cancelled", tenant_id,
            reconciliation_id=recon.id,
            bank_account_id=recon.bank_account_id,
        )
        return recon

    def get_unreconciled_items(
        self,
        tenant_id: str,
        bank_account_id: int | None = None,
        cutoff_date: date | None = None,
    ) -> dict:
        """Unreconciled statement lines with per-account totals."""
        query = (
            select(BankTransaction, BankAccount)
            .join(BankAccount, BankTransaction.bank_account_id == BankAccount.id)
            .where(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.is_reconciled.is_(False),
            )
        )
        if bank_account_id is not None:
            query = query.where(BankTransaction.bank_account_id == bank_account_id)
        if cutoff_date is not None:
            query = query.where(BankTransaction.transaction_date <= cutoff_date)
        query = query.order_by(
            BankAccount.bank_name,
            BankTransaction.transaction_date,
            BankTransaction.id,
        )

        transactions = []
        summary: dict[int, dict] = {}
        for txn, bank in self.db.execute(query).all():
            transactions.append(txn)
            row = summary.setdefault(bank.id, {
                "bank_account_id": bank.id,
                "bank_name": bank.bank_name,
                "account_number": bank.account_number,
                "count": 0,
                "total_debits": Decimal("0.00"),
                "total_credits": Decimal("0.00"),
            })
            row["count"] += 1
            if txn.transaction_type == BankTransactionType.DEBIT:
                row["total_debits"] += Decimal(txn.amount)
            else:
                row["total_credits"] += Decimal(txn.amount)

        return {"transactions": transactions, "summary": list(summary.values())}

    def get_reconciliation_summary(
        self,
        tenant_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict]:
        """
        Per active bank account: completed and in-progress counts,
        the latest completed statement date and the sum of the
        differences left on completed reconciliations. The date
        range filters on statement date.
        """
        banks = self.db.execute(
            select(BankAccount)
            .where(
                BankAccount.tenant_id == tenant_id,
                BankAccount.is_active.is_(True),
            )
            .order_by(BankAccount.bank_name, BankAccount.id)
        ).scalars().all()
        summary = {
            bank.id: {
                "bank_account_id": bank.id,
                "bank_name": bank.bank_name,
                "account_number": bank.account_number,
                "completed_count": 0,
                "in_progress_count": 0,
                "last_reconciliation_date": None,
                "total_differences": Decimal("0.00"),
            }
            for bank in banks
        }

        query = select(Reconciliation).where(
            Reconciliation.tenant_id == tenant_id,
            Reconciliation.bank_account_id.in_(list(summary)),
        )
        if start_date is not None:
            query = query.where(Reconciliation.statement_date >= start_date)
        if end_date is not None:
            query = query.where(Reconciliation.statement_date <= end_date)

        for recon in self.db.execute(query).scalars():
            row = summary[recon.bank_account_id]
            if recon.status == ReconciliationStatus.COMPLETED:
                row["completed_count"] += 1
                last = row["last_reconciliation_date"]
                if last is None or recon.statement_date > last:
                    row["last_reconciliation_date"] = recon.statement_date
                row["total_differences"] += Decimal(recon.difference_amount or 0)
            elif recon.status == ReconciliationStatus.IN_PROGRESS:
                row["in_progress_count"] += 1

        return list(summary.values())
