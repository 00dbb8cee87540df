"""
Tests for bank accounts, statement lines and matching.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engine.exceptions import (
    AlreadyReconciledError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from ledger_engine.models.enums import BankTransactionType, MatchConfidence, MatchType
from ledger_engine.schemas.banking import (
    ApplyMatchesRequest,
    BankAccountCreate,
    BankTransactionCreate,
    ImportRequest,
    MatchPair,
    StatementRow,
)
from ledger_engine.schemas.ledger import JournalEntryCreate, JournalLineInput
from ledger_engine.services.bank_service import BankService
from ledger_engine.services.ledger_service import LedgerService


def july(day):
    return date(2024, 7, day)


def open_bank(db_session, tenant_id, accounts, opening="0"):
    return BankService(db_session).create_bank_account(tenant_id, BankAccountCreate(
        name="Operating",
        bank_name="HDFC Bank",
        account_number="50100012345",
        account_id=accounts["bank"],
        opening_balance=Decimal(opening),
    ))


def book(db_session, tenant_id, accounts, day, money_in=None, money_out=None,
         auto_post=True):
    """Post a ledger entry touching the bank GL account; return that line's id."""
    if money_in is not None:
        lines = [
            JournalLineInput(account_id=accounts["bank"],
                             debit_amount=Decimal(money_in)),
            JournalLineInput(account_id=accounts["sales_revenue"],
                             credit_amount=Decimal(money_in)),
        ]
        bank_index = 0
    else:
        lines = [
            JournalLineInput(account_id=accounts["purchase_expense"],
                             debit_amount=Decimal(money_out)),
            JournalLineInput(account_id=accounts["bank"],
                             credit_amount=Decimal(money_out)),
        ]
        bank_index = 1
    entry = LedgerService(db_session).create_journal_entry(
        tenant_id, JournalEntryCreate(
            entry_date=july(day), description="Bank movement",
            lines=lines, auto_post=auto_post,
        )
    )
    return entry.lines[bank_index].id


def statement_line(db_session, tenant_id, bank, day, amount,
                   kind=BankTransactionType.DEBIT, reference=None):
    return BankService(db_session).add_transaction(
        tenant_id, bank.id, BankTransactionCreate(
            transaction_date=july(day),
            description="Statement line",
            reference_number=reference,
            transaction_type=kind,
            amount=Decimal(amount),
        )
    )


class TestBankAccounts:

    def test_create_linked_to_asset(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts, "1000")
        assert bank.account_id == accounts["bank"]
        assert bank.opening_balance == Decimal("1000.00")
        assert bank.is_active is True

    def test_non_asset_gl_account_rejected(self, db_session, tenant_id, accounts):
        with pytest.raises(ValidationError, match="ASSET"):
            BankService(db_session).create_bank_account(tenant_id, BankAccountCreate(
                name="Wrong", bank_name="HDFC Bank", account_number="1",
                account_id=accounts["sales_revenue"],
            ))

    def test_missing_gl_account_rejected(self, db_session, tenant_id):
        with pytest.raises(NotFoundError):
            BankService(db_session).create_bank_account(tenant_id, BankAccountCreate(
                name="Ghost", bank_name="HDFC Bank", account_number="1",
                account_id=9999,
            ))

    def test_balance_compares_statement_with_books(
        self, db_session, tenant_id, accounts
    ):
        bank = open_bank(db_session, tenant_id, accounts, "1000")
        statement_line(db_session, tenant_id, bank, 3, "500",
                       BankTransactionType.CREDIT)
        statement_line(db_session, tenant_id, bank, 4, "200")
        book(db_session, tenant_id, accounts, 3, money_in="500")

        balance = BankService(db_session).get_balance(tenant_id, bank.id)

        assert balance["statement_balance"] == Decimal("1300.00")
        assert balance["book_balance"] == Decimal("500.00")
        assert balance["difference"] == Decimal("800.00")


class TestStatementLines:

    def test_add_transaction(self, db_session, tenant_id, accounts, publisher):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = BankService(db_session, publisher).add_transaction(
            tenant_id, bank.id, BankTransactionCreate(
                transaction_date=july(1), description="NEFT-ACME",
                transaction_type=BankTransactionType.CREDIT,
                amount=Decimal("250"),
            )
        )

        assert txn.import_source == "manual"
        assert txn.is_reconciled is False
        assert publisher.names() == ["bank_transaction.created"]

    def test_import_skips_empty_and_duplicate_rows(
        self, db_session, tenant_id, accounts
    ):
        bank = open_bank(db_session, tenant_id, accounts)
        rows = [
            StatementRow(transaction_date=july(1), description="Rent",
                         reference_number="CHQ-1", debit_amount=Decimal("900")),
            StatementRow(transaction_date=july(2), description="Deposit",
                         credit_amount=Decimal("1500")),
            StatementRow(transaction_date=july(3), description="Memo only"),
            StatementRow(transaction_date=july(1), description="Rent again",
                         reference_number="CHQ-1", debit_amount=Decimal("900")),
        ]
        service = BankService(db_session)

        result = service.import_transactions(
            tenant_id, bank.id, ImportRequest(transactions=rows)
        )
        assert result == {"imported": 2, "skipped": 2, "total": 4}

        txns = service.list_transactions(tenant_id, bank.id)
        assert [(t.transaction_type, t.amount) for t in txns] == [
            (BankTransactionType.CREDIT, Decimal("1500.00")),
            (BankTransactionType.DEBIT, Decimal("900.00")),
        ]
        assert {t.import_source for t in txns} == {"csv"}

    def test_reimport_is_all_skipped(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        request = ImportRequest(format="ofx", transactions=[
            StatementRow(transaction_date=july(5), description="Card settlement",
                         credit_amount=Decimal("320.40")),
        ])
        service = BankService(db_session)
        service.import_transactions(tenant_id, bank.id, request)

        again = service.import_transactions(tenant_id, bank.id, request)
        assert again == {"imported": 0, "skipped": 1, "total": 1}

    def test_list_filters(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        for day in (1, 10, 20):
            statement_line(db_session, tenant_id, bank, day, "10")
        service = BankService(db_session)

        window = service.list_transactions(
            tenant_id, bank.id, start_date=july(5), end_date=july(25)
        )
        assert [t.transaction_date for t in window] == [july(20), july(10)]
        assert service.list_transactions(tenant_id, bank.id, reconciled=True) == []

    def test_delete_transaction(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 1, "10")
        service = BankService(db_session)

        service.delete_transaction(tenant_id, bank.id, txn.id)

        with pytest.raises(NotFoundError):
            service.get_transaction(tenant_id, bank.id, txn.id)

    def test_reconciled_transaction_cannot_be_deleted(
        self, db_session, tenant_id, accounts
    ):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 1, "10")
        txn.is_reconciled = True
        db_session.commit()

        with pytest.raises(AlreadyReconciledError):
            BankService(db_session).delete_transaction(tenant_id, bank.id, txn.id)


class TestAutoMatch:

    def test_proposes_without_writing(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        line_id = book(db_session, tenant_id, accounts, 9, money_out="500")

        result = BankService(db_session).auto_match(
            tenant_id, bank.id, date_tolerance_days=3
        )

        assert [(m.bank_transaction_id, m.ledger_entry_id) for m in result.matches] \
            == [(txn.id, line_id)]
        assert result.matches[0].confidence == MatchConfidence.MEDIUM
        db_session.refresh(txn)
        assert txn.matched_ledger_entry_id is None

    def test_draft_entries_are_not_candidates(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        book(db_session, tenant_id, accounts, 10, money_out="500", auto_post=False)

        result = BankService(db_session).auto_match(tenant_id, bank.id)

        assert result.matches == []
        assert result.unmatched_bank == [txn.id]

    def test_other_gl_accounts_are_ignored(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        statement_line(db_session, tenant_id, bank, 10, "75",
                       BankTransactionType.CREDIT)
        LedgerService(db_session).create_journal_entry(tenant_id, JournalEntryCreate(
            entry_date=july(10), description="Cash sale",
            lines=[
                JournalLineInput(account_id=accounts["cash"],
                                 debit_amount=Decimal("75")),
                JournalLineInput(account_id=accounts["sales_revenue"],
                                 credit_amount=Decimal("75")),
            ],
            auto_post=True,
        ))

        assert BankService(db_session).auto_match(tenant_id, bank.id).matches == []


class TestApplyMatches:

    def test_apply_is_idempotent(self, db_session, tenant_id, accounts, publisher):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        service = BankService(db_session, publisher)
        request = ApplyMatchesRequest(matches=[
            MatchPair(bank_transaction_id=txn.id, ledger_entry_id=line_id),
        ])

        first = service.apply_matches(tenant_id, bank.id, request)
        second = service.apply_matches(tenant_id, bank.id, request)

        assert (first["applied"], first["unchanged"]) == (1, 0)
        assert (second["applied"], second["unchanged"]) == (0, 1)
        txn = service.get_transaction(tenant_id, bank.id, txn.id)
        assert txn.matched_ledger_entry_id == line_id
        assert txn.match_type == MatchType.AUTO
        assert publisher.names().count("bank_transactions.matched") == 1

    def test_conflicts_are_skipped(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        first_txn = statement_line(db_session, tenant_id, bank, 10, "500")
        second_txn = statement_line(db_session, tenant_id, bank, 11, "500")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        service = BankService(db_session)

        result = service.apply_matches(tenant_id, bank.id, ApplyMatchesRequest(
            matches=[
                MatchPair(bank_transaction_id=first_txn.id, ledger_entry_id=line_id),
                MatchPair(bank_transaction_id=second_txn.id, ledger_entry_id=line_id),
                MatchPair(bank_transaction_id=9999, ledger_entry_id=line_id),
            ],
        ))

        assert result["applied"] == 1
        assert [p.bank_transaction_id for p in result["skipped"]] == [
            second_txn.id, 9999,
        ]
        assert service.get_transaction(
            tenant_id, bank.id, second_txn.id
        ).matched_ledger_entry_id is None

    def test_matched_lines_leave_the_candidate_pool(
        self, db_session, tenant_id, accounts
    ):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        service = BankService(db_session)
        service.apply_matches(tenant_id, bank.id, ApplyMatchesRequest(matches=[
            MatchPair(bank_transaction_id=txn.id, ledger_entry_id=line_id),
        ]))

        result = service.auto_match(tenant_id, bank.id)
        assert result.matches == []
        assert result.unmatched_bank == []
        assert result.unmatched_ledger == []


class TestManualMatch:

    def test_manual_match(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "499")
        line_id = book(db_session, tenant_id, accounts, 2, money_out="500")
        service = BankService(db_session)

        matched = service.match_manually(tenant_id, bank.id, txn.id, line_id)

        assert matched.matched_ledger_entry_id == line_id
        assert matched.match_type == MatchType.MANUAL
        again = service.match_manually(tenant_id, bank.id, txn.id, line_id)
        assert again.matched_ledger_entry_id == line_id

    def test_line_already_taken(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        first = statement_line(db_session, tenant_id, bank, 10, "500")
        second = statement_line(db_session, tenant_id, bank, 10, "500",
                                reference="dup")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        service = BankService(db_session)
        service.match_manually(tenant_id, bank.id, first.id, line_id)

        with pytest.raises(DuplicateError):
            service.match_manually(tenant_id, bank.id, second.id, line_id)

    def test_line_on_another_account_not_found(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        entry = LedgerService(db_session).create_journal_entry(
            tenant_id, JournalEntryCreate(
                entry_date=july(10), description="Cash purchase",
                lines=[
                    JournalLineInput(account_id=accounts["purchase_expense"],
                                     debit_amount=Decimal("500")),
                    JournalLineInput(account_id=accounts["cash"],
                                     credit_amount=Decimal("500")),
                ],
                auto_post=True,
            )
        )

        with pytest.raises(NotFoundError):
            BankService(db_session).match_manually(
                tenant_id, bank.id, txn.id, entry.lines[1].id
            )

    def test_reconciled_line_cannot_be_rematched(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        txn.is_reconciled = True
        db_session.commit()

        with pytest.raises(AlreadyReconciledError):
            BankService(db_session).match_manually(tenant_id, bank.id, txn.id, line_id)

    def test_clear_match(self, db_session, tenant_id, accounts):
        bank = open_bank(db_session, tenant_id, accounts)
        txn = statement_line(db_session, tenant_id, bank, 10, "500")
        line_id = book(db_session, tenant_id, accounts, 10, money_out="500")
        service = BankService(db_session)
        service.match_manually(tenant_id, bank.id, txn.id, line_id)

        cleared = service.clear_match(tenant_id, bank.id, txn.id)

        assert cleared.matched_ledger_entry_id is None
        assert cleared.match_type is None
