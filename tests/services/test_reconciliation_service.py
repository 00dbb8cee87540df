"""
Tests for the reconciliation workflow.

Tests cover:
- One in-progress reconciliation per bank account
- Claiming and releasing statement lines
- Completion: balanced, imbalanced, forced
- Cancellation releases claims
- Opening balance carried from the last completed statement
- Unreconciled items report
- Per-account reconciliation summary
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from ledger_engine.exceptions import (
    NotFoundError,
    NotInProgressError,
    ReconciliationImbalanceError,
    ReconciliationInProgressError,
)
from ledger_engine.models.banking import Reconciliation
from ledger_engine.models.enums import BankTransactionType, ReconciliationStatus
from ledger_engine.schemas.banking import (
    BankAccountCreate,
    BankTransactionCreate,
    ReconciliationStart,
)
from ledger_engine.services.bank_service import BankService
from ledger_engine.services.reconciliation_service import ReconciliationService

CREDIT = BankTransactionType.CREDIT
DEBIT = BankTransactionType.DEBIT


@pytest.fixture
def bank(db_session, tenant_id, accounts):
    return BankService(db_session).create_bank_account(tenant_id, BankAccountCreate(
        name="Operating",
        bank_name="HDFC Bank",
        account_number="50100012345",
        account_id=accounts["bank"],
        opening_balance=Decimal("1000"),
    ))


@pytest.fixture
def add_line(db_session, tenant_id, bank):
    def _add(day, amount, kind=CREDIT, month=8):
        return BankService(db_session).add_transaction(
            tenant_id, bank.id, BankTransactionCreate(
                transaction_date=date(2024, month, day),
                description="Statement line",
                transaction_type=kind,
                amount=Decimal(amount),
            )
        )
    return _add


def start(db_session, tenant_id, bank, ending, statement_date=date(2024, 8, 31)):
    return ReconciliationService(db_session).start_reconciliation(
        tenant_id, ReconciliationStart(
            bank_account_id=bank.id,
            statement_date=statement_date,
            statement_ending_balance=Decimal(ending),
        )
    )


class TestStart:

    def test_opening_balance_from_bank_account(self, db_session, tenant_id, bank):
        recon = start(db_session, tenant_id, bank, "1500")

        assert recon.status == ReconciliationStatus.IN_PROGRESS
        assert recon.statement_opening_balance == Decimal("1000.00")
        assert recon.statement_ending_balance == Decimal("1500.00")

    def test_second_start_rejected(self, db_session, tenant_id, bank):
        start(db_session, tenant_id, bank, "1500")

        with pytest.raises(ReconciliationInProgressError) as exc:
            start(db_session, tenant_id, bank, "1600")
        assert exc.value.code == "IN_PROGRESS"

    def test_index_rejects_second_in_progress_row(self, db_session, tenant_id, bank):
        start(db_session, tenant_id, bank, "1500")

        db_session.add(Reconciliation(
            tenant_id=tenant_id,
            bank_account_id=bank.id,
            statement_date=date(2024, 9, 30),
            statement_opening_balance=Decimal("1000.00"),
            statement_ending_balance=Decimal("1600.00"),
            status=ReconciliationStatus.IN_PROGRESS,
        ))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_concurrent_start_reported_as_in_progress(
        self, db_session, tenant_id, bank, monkeypatch
    ):
        start(db_session, tenant_id, bank, "1500")
        # Both requests passed the lookup before either flushed
        monkeypatch.setattr(
            ReconciliationService, "_in_progress_for", lambda self, bank_id: None
        )

        with pytest.raises(ReconciliationInProgressError):
            start(db_session, tenant_id, bank, "1600")
        listed = ReconciliationService(db_session).list_reconciliations(
            tenant_id, bank.id
        )
        assert len(listed) == 1

    def test_closed_reconciliations_do_not_block(self, db_session, tenant_id, bank):
        service = ReconciliationService(db_session)
        first = start(db_session, tenant_id, bank, "1000")
        service.cancel_reconciliation(tenant_id, first.id)
        second = start(db_session, tenant_id, bank, "1000")
        service.complete_reconciliation(tenant_id, second.id)

        third = start(db_session, tenant_id, bank, "1000",
                      statement_date=date(2024, 9, 30))
        assert third.status == ReconciliationStatus.IN_PROGRESS

    def test_unknown_bank_account(self, db_session, tenant_id, accounts):
        with pytest.raises(NotFoundError):
            ReconciliationService(db_session).start_reconciliation(
                tenant_id, ReconciliationStart(
                    bank_account_id=9999,
                    statement_date=date(2024, 8, 31),
                    statement_ending_balance=Decimal("0"),
                )
            )

    def test_opening_carries_from_last_completed(
        self, db_session, tenant_id, bank, add_line
    ):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        first = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, first.id, [txn.id])
        service.complete_reconciliation(tenant_id, first.id)

        second = start(db_session, tenant_id, bank, "1500",
                       statement_date=date(2024, 9, 30))
        assert second.statement_opening_balance == Decimal("1500.00")


class TestClaims:

    def test_match_and_unmatch(self, db_session, tenant_id, bank, add_line, publisher):
        service = ReconciliationService(db_session, publisher)
        t1 = add_line(3, "200")
        t2 = add_line(4, "50", DEBIT)
        recon = start(db_session, tenant_id, bank, "1150")

        result = service.match_transactions(tenant_id, recon.id, [t1.id, t2.id])
        assert result["count"] == 2
        assert publisher.names() == ["bank_transactions.matched"]

        released = service.unmatch_transactions(tenant_id, recon.id, [t2.id])
        assert released["count"] == 1

        detail = service.get_reconciliation(tenant_id, recon.id)
        assert [t.id for t in detail["matched_transactions"]] == [t1.id]
        assert [t.id for t in detail["unmatched_transactions"]] == [t2.id]

    def test_lines_of_other_bank_accounts_ignored(
        self, db_session, tenant_id, bank, accounts
    ):
        other = BankService(db_session).create_bank_account(
            tenant_id, BankAccountCreate(
                name="Payroll", bank_name="ICICI Bank", account_number="77",
                account_id=accounts["cash"],
            )
        )
        foreign = BankService(db_session).add_transaction(
            tenant_id, other.id, BankTransactionCreate(
                transaction_date=date(2024, 8, 1), description="Salary",
                transaction_type=DEBIT, amount=Decimal("10"),
            )
        )
        recon = start(db_session, tenant_id, bank, "1000")

        result = ReconciliationService(db_session).match_transactions(
            tenant_id, recon.id, [foreign.id]
        )
        assert result["count"] == 0

    def test_lines_after_statement_date_not_listed(
        self, db_session, tenant_id, bank, add_line
    ):
        add_line(5, "100", month=9)
        recon = start(db_session, tenant_id, bank, "1000")

        detail = ReconciliationService(db_session).get_reconciliation(
            tenant_id, recon.id
        )
        assert detail["unmatched_transactions"] == []

    def test_summary(self, db_session, tenant_id, bank, add_line):
        service = ReconciliationService(db_session)
        t1 = add_line(3, "700")
        t2 = add_line(4, "200", DEBIT)
        add_line(5, "999")
        recon = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, recon.id, [t1.id, t2.id])

        summary = service.get_reconciliation(tenant_id, recon.id)["summary"]

        assert summary["matched_credits"] == Decimal("700.00")
        assert summary["matched_debits"] == Decimal("200.00")
        assert summary["unmatched_credits"] == Decimal("999.00")
        assert summary["calculated_balance"] == Decimal("1500.00")
        assert summary["difference"] == Decimal("0.00")
        assert summary["is_balanced"] is True


class TestComplete:

    def test_balanced_completion_reconciles_lines(
        self, db_session, tenant_id, bank, add_line, publisher
    ):
        service = ReconciliationService(db_session, publisher)
        txn = add_line(5, "500")
        recon = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, recon.id, [txn.id])

        done = service.complete_reconciliation(tenant_id, recon.id)

        assert done.status == ReconciliationStatus.COMPLETED
        assert done.reconciled_balance == Decimal("1500.00")
        assert done.difference_amount == Decimal("0.00")
        assert done.completed_at is not None
        assert BankService(db_session).get_transaction(
            tenant_id, bank.id, txn.id
        ).is_reconciled is True
        assert "reconciliation.completed" in publisher.names()

    def test_imbalance_rejected(self, db_session, tenant_id, bank, add_line):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        recon = start(db_session, tenant_id, bank, "1600")
        service.match_transactions(tenant_id, recon.id, [txn.id])

        with pytest.raises(ReconciliationImbalanceError) as exc:
            service.complete_reconciliation(tenant_id, recon.id)

        assert exc.value.code == "NOT_BALANCED"
        detail = service.get_reconciliation(tenant_id, recon.id)
        assert detail["reconciliation"].status == ReconciliationStatus.IN_PROGRESS
        assert detail["matched_transactions"][0].is_reconciled is False

    def test_forced_completion_keeps_signed_difference(
        self, db_session, tenant_id, bank, add_line
    ):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        recon = start(db_session, tenant_id, bank, "1450")
        service.match_transactions(tenant_id, recon.id, [txn.id])

        done = service.complete_reconciliation(tenant_id, recon.id, force=True)

        assert done.status == ReconciliationStatus.COMPLETED
        assert done.difference_amount == Decimal("-50.00")

    def test_one_cent_difference_is_balanced(self, db_session, tenant_id, bank):
        recon = start(db_session, tenant_id, bank, "1000.01")
        done = ReconciliationService(db_session).complete_reconciliation(
            tenant_id, recon.id
        )
        assert done.difference_amount == Decimal("0.01")

    def test_completed_reconciliation_is_closed(self, db_session, tenant_id, bank):
        service = ReconciliationService(db_session)
        recon = start(db_session, tenant_id, bank, "1000")
        service.complete_reconciliation(tenant_id, recon.id)

        with pytest.raises(NotInProgressError):
            service.complete_reconciliation(tenant_id, recon.id)
        with pytest.raises(NotInProgressError):
            service.cancel_reconciliation(tenant_id, recon.id)

    def test_reconciled_lines_cannot_be_claimed_again(
        self, db_session, tenant_id, bank, add_line
    ):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        first = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, first.id, [txn.id])
        service.complete_reconciliation(tenant_id, first.id)

        second = start(db_session, tenant_id, bank, "1500",
                       statement_date=date(2024, 9, 30))
        result = service.match_transactions(tenant_id, second.id, [txn.id])
        assert result["count"] == 0


class TestCancel:

    def test_cancel_releases_claims(self, db_session, tenant_id, bank, add_line):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        recon = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, recon.id, [txn.id])

        cancelled = service.cancel_reconciliation(tenant_id, recon.id)

        assert cancelled.status == ReconciliationStatus.CANCELLED
        txn = BankService(db_session).get_transaction(tenant_id, bank.id, txn.id)
        assert txn.reconciliation_id is None
        assert txn.is_reconciled is False

        again = start(db_session, tenant_id, bank, "1500")
        assert again.statement_opening_balance == Decimal("1000.00")

    def test_list_reconciliations(self, db_session, tenant_id, bank):
        service = ReconciliationService(db_session)
        first = start(db_session, tenant_id, bank, "1000")
        service.cancel_reconciliation(tenant_id, first.id)
        second = start(db_session, tenant_id, bank, "1000",
                       statement_date=date(2024, 9, 30))

        listed = service.list_reconciliations(tenant_id, bank.id)
        assert [r.id for r in listed] == [second.id, first.id]

        cancelled = service.list_reconciliations(
            tenant_id, bank.id, ReconciliationStatus.CANCELLED
        )
        assert [r.id for r in cancelled] == [first.id]


class TestUnreconciledItems:

    def test_per_account_totals(self, db_session, tenant_id, bank, add_line):
        add_line(1, "300")
        add_line(2, "120", DEBIT)
        add_line(3, "80", DEBIT)

        items = ReconciliationService(db_session).get_unreconciled_items(tenant_id)

        assert len(items["transactions"]) == 3
        assert items["summary"] == [{
            "bank_account_id": bank.id,
            "bank_name": "HDFC Bank",
            "account_number": "50100012345",
            "count": 3,
            "total_debits": Decimal("200.00"),
            "total_credits": Decimal("300.00"),
        }]

    def test_cutoff_and_reconciled_lines_excluded(
        self, db_session, tenant_id, bank, add_line
    ):
        service = ReconciliationService(db_session)
        done = add_line(1, "500")
        add_line(20, "40")
        recon = start(db_session, tenant_id, bank, "1500")
        service.match_transactions(tenant_id, recon.id, [done.id])
        service.complete_reconciliation(tenant_id, recon.id)
        add_line(2, "60", month=9)

        items = service.get_unreconciled_items(
            tenant_id, bank.id, cutoff_date=date(2024, 8, 31)
        )
        assert [t.amount for t in items["transactions"]] == [Decimal("40.00")]


class TestReconciliationSummary:

    def test_counts_dates_and_differences(self, db_session, tenant_id, bank, add_line):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        august = start(db_session, tenant_id, bank, "1450")
        service.match_transactions(tenant_id, august.id, [txn.id])
        service.complete_reconciliation(tenant_id, august.id, force=True)
        september = start(db_session, tenant_id, bank, "1450",
                          statement_date=date(2024, 9, 30))
        service.complete_reconciliation(tenant_id, september.id)
        start(db_session, tenant_id, bank, "1450", statement_date=date(2024, 10, 31))

        [row] = service.get_reconciliation_summary(tenant_id)

        assert row["bank_account_id"] == bank.id
        assert row["bank_name"] == "HDFC Bank"
        assert row["completed_count"] == 2
        assert row["in_progress_count"] == 1
        assert row["last_reconciliation_date"] == date(2024, 9, 30)
        assert row["total_differences"] == Decimal("-50.00")

    def test_statement_date_range(self, db_session, tenant_id, bank, add_line):
        service = ReconciliationService(db_session)
        txn = add_line(5, "500")
        august = start(db_session, tenant_id, bank, "1450")
        service.match_transactions(tenant_id, august.id, [txn.id])
        service.complete_reconciliation(tenant_id, august.id, force=True)
        start(db_session, tenant_id, bank, "1450", statement_date=date(2024, 9, 30))

        [row] = service.get_reconciliation_summary(
            tenant_id, start_date=date(2024, 9, 1)
        )
        assert row["completed_count"] == 0
        assert row["in_progress_count"] == 1
        assert row["last_reconciliation_date"] is None
        assert row["total_differences"] == Decimal("0.00")

    def test_every_active_account_listed(
        self, db_session, tenant_id, bank, accounts
    ):
        bank_service = BankService(db_session)
        idle = bank_service.create_bank_account(tenant_id, BankAccountCreate(
            name="Payroll",
            bank_name="Axis Bank",
            account_number="91702000",
            account_id=accounts["cash"],
        ))
        closed = bank_service.create_bank_account(tenant_id, BankAccountCreate(
            name="Old",
            bank_name="Canara Bank",
            account_number="0000111",
            account_id=accounts["cash"],
        ))
        closed.is_active = False
        db_session.commit()

        rows = ReconciliationService(db_session).get_reconciliation_summary(tenant_id)

        assert [row["bank_account_id"] for row in rows] == [idle.id, bank.id]
        assert rows[0]["completed_count"] == 0
        assert ReconciliationService(db_session).get_reconciliation_summary(
            "tenant-b"
        ) == []
