"""
Tests for the posting engine.

Tests cover:
- Account creation and duplicate codes
- Balanced entries post and move balances
- Unbalanced entries are refused
- Draft then post, and no re-posting
- Per-tenant sequential entry numbers
- Account rules: active, same tenant, frozen category
- Posted lines cannot be changed or extended
- Draft editing and deletion, reversal of posted entries
- Trial balance over posted lines
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engine.documents import InvoiceDocument
from ledger_engine.exceptions import (
    AccountInUseError,
    AlreadyPostedError,
    AlreadyReversedError,
    DuplicateError,
    ImmutableEntryError,
    NotBalancedError,
    NotFoundError,
    NotPostedError,
    ValidationError,
)
from ledger_engine.models.enums import (
    AccountCategory,
    JournalEntryType,
    JournalStatus,
)
from ledger_engine.models.journal import JournalLine
from ledger_engine.schemas.ledger import (
    AccountCreate,
    AccountUpdate,
    JournalEntryCreate,
    JournalEntryUpdate,
    JournalLineInput,
    JournalReversalRequest,
    PostingRequest,
)
from ledger_engine.services.ledger_service import LedgerService

OTHER_TENANT = "tenant-b"


def create_pair(service, tenant_id):
    """Helper: a cash (asset) and a sales (revenue) account."""
    cash = service.create_account(tenant_id, AccountCreate(
        code="CASH", name="Cash", category=AccountCategory.ASSET,
    ))
    sales = service.create_account(tenant_id, AccountCreate(
        code="SALES", name="Sales", category=AccountCategory.REVENUE,
    ))
    return cash, sales


def cash_sale(cash, sales, amount="100.00", auto_post=True):
    return JournalEntryCreate(
        entry_date=date(2024, 4, 1),
        description="Cash sale",
        lines=[
            JournalLineInput(account_id=cash.id, debit_amount=Decimal(amount)),
            JournalLineInput(account_id=sales.id, credit_amount=Decimal(amount)),
        ],
        auto_post=auto_post,
    )


class TestAccounts:

    def test_create_account(self, db_session, tenant_id):
        account = LedgerService(db_session).create_account(tenant_id, AccountCreate(
            code="CASH", name="Cash", category=AccountCategory.ASSET,
        ))

        assert account.id is not None
        assert account.tenant_id == tenant_id
        assert account.current_balance == Decimal("0")
        assert account.is_active is True

    def test_duplicate_code_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        create_pair(service, tenant_id)

        with pytest.raises(DuplicateError):
            service.create_account(tenant_id, AccountCreate(
                code="CASH", name="Cash again", category=AccountCategory.ASSET,
            ))

    def test_same_code_allowed_in_another_tenant(self, db_session, tenant_id):
        service = LedgerService(db_session)
        create_pair(service, tenant_id)
        cash, _ = create_pair(service, OTHER_TENANT)
        assert cash.tenant_id == OTHER_TENANT

    def test_account_in_other_tenant_not_found(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, _ = create_pair(service, OTHER_TENANT)

        with pytest.raises(NotFoundError):
            service.get_account(tenant_id, cash.id)

    def test_category_frozen_once_used(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        with pytest.raises(AccountInUseError):
            service.update_account(tenant_id, cash.id, AccountUpdate(
                category=AccountCategory.EXPENSE,
            ))

    def test_unused_account_can_change_category(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, _ = create_pair(service, tenant_id)

        updated = service.update_account(tenant_id, cash.id, AccountUpdate(
            category=AccountCategory.EXPENSE, name="Petty expenses",
        ))
        assert updated.category == AccountCategory.EXPENSE
        assert updated.name == "Petty expenses"

    def test_list_filters_by_category(self, db_session, tenant_id):
        service = LedgerService(db_session)
        create_pair(service, tenant_id)

        revenue = service.list_accounts(tenant_id, AccountCategory.REVENUE)
        assert [a.code for a in revenue] == ["SALES"]


class TestPosting:

    def test_balanced_entry_posts(self, db_session, tenant_id, publisher):
        service = LedgerService(db_session, publisher)
        cash, sales = create_pair(service, tenant_id)

        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        assert entry.status == JournalStatus.POSTED
        assert entry.entry_type == JournalEntryType.STD
        assert entry.is_balanced is True
        assert entry.total_debit == Decimal("100.00")
        assert entry.total_credit == Decimal("100.00")
        assert entry.posted_at is not None
        assert [line.line_number for line in entry.lines] == [1, 2]
        assert publisher.names() == [
            "journal_entry.created", "journal_entry.posted",
        ]

    def test_posting_moves_balances(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.create_journal_entry(tenant_id, cash_sale(cash, sales, "250.00"))

        assert service.get_account_balance(tenant_id, cash.id) == Decimal("250.00")
        assert service.get_account_balance(tenant_id, sales.id) == Decimal("-250.00")

    def test_running_balance_matches_lines(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.create_journal_entry(tenant_id, cash_sale(cash, sales, "100.00"))
        service.create_journal_entry(tenant_id, cash_sale(cash, sales, "40.50"))
        service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, "999.00", auto_post=False)
        )

        assert service.compute_balance_from_lines(tenant_id, cash.id) == \
            Decimal("140.50")
        assert service.get_account_balance(tenant_id, cash.id) == \
            Decimal("140.50")

    def test_unbalanced_entry_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)

        with pytest.raises(NotBalancedError) as exc:
            service.create_journal_entry(tenant_id, JournalEntryCreate(
                entry_date=date(2024, 4, 1),
                description="Off by ten",
                lines=[
                    JournalLineInput(account_id=cash.id,
                                     debit_amount=Decimal("100.00")),
                    JournalLineInput(account_id=sales.id,
                                     credit_amount=Decimal("90.00")),
                ],
                auto_post=True,
            ))

        assert exc.value.code == "NOT_BALANCED"
        assert service.list_journal_entries(tenant_id) == []
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("0.00")

    def test_inactive_account_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.update_account(tenant_id, sales.id, AccountUpdate(is_active=False))

        with pytest.raises(ValidationError, match="not active"):
            service.create_journal_entry(tenant_id, cash_sale(cash, sales))

    def test_other_tenants_account_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, _ = create_pair(service, tenant_id)
        _, foreign_sales = create_pair(service, OTHER_TENANT)

        with pytest.raises(NotFoundError):
            service.create_journal_entry(
                tenant_id, cash_sale(cash, foreign_sales)
            )

    def test_sub_cent_amounts_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)

        with pytest.raises(ValidationError, match="2 decimal places"):
            service.create_journal_entry(
                tenant_id, cash_sale(cash, sales, "10.005")
            )

    def test_post_entry_records_source_document(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)

        entry = service.post_entry(tenant_id, PostingRequest(
            source=InvoiceDocument(42),
            entry_date=date(2024, 4, 1),
            description="Invoice 42",
            lines=cash_sale(cash, sales).lines,
        ))
        db_session.commit()

        assert entry.entry_type == JournalEntryType.AR
        assert entry.reference_type == "invoice"
        assert entry.reference_id == "42"
        assert service.find_entry_for(tenant_id, InvoiceDocument(42)).id == entry.id


class TestDraftEntries:

    def test_draft_does_not_move_balances(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)

        entry = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        assert entry.status == JournalStatus.DRAFT
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("0.00")

    def test_post_draft(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        posted = service.post_journal_entry(tenant_id, entry.id)

        assert posted.status == JournalStatus.POSTED
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("100.00")

    def test_posted_entry_cannot_be_reposted(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        with pytest.raises(AlreadyPostedError):
            service.post_journal_entry(tenant_id, entry.id)
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("100.00")


class TestEntryNumbers:

    def test_numbers_are_sequential(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)

        numbers = [
            service.create_journal_entry(tenant_id, cash_sale(cash, sales)).entry_number
            for _ in range(3)
        ]
        assert numbers == ["JE-000001", "JE-000002", "JE-000003"]

    def test_each_tenant_has_its_own_sequence(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash_a, sales_a = create_pair(service, tenant_id)
        cash_b, sales_b = create_pair(service, OTHER_TENANT)

        service.create_journal_entry(tenant_id, cash_sale(cash_a, sales_a))
        entry_b = service.create_journal_entry(
            OTHER_TENANT, cash_sale(cash_b, sales_b)
        )
        assert entry_b.entry_number == "JE-000001"

    def test_rejected_entry_does_not_consume_a_number(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.update_account(tenant_id, sales.id, AccountUpdate(is_active=False))
        with pytest.raises(ValidationError):
            service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        service.update_account(tenant_id, sales.id, AccountUpdate(is_active=True))
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))
        assert entry.entry_number == "JE-000001"


class TestImmutability:

    def test_changing_posted_line_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        entry.lines[0].debit_amount = Decimal("1.00")
        with pytest.raises(ImmutableEntryError):
            db_session.flush()
        db_session.rollback()

        reloaded = service.get_journal_entry(tenant_id, entry.id)
        assert reloaded.lines[0].debit_amount == Decimal("100.00")
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("100.00")

    def test_appending_line_to_posted_entry_rejected(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        entry.lines.append(JournalLine(
            line_number=3,
            account_id=cash.id,
            debit_amount=Decimal("5.00"),
            credit_amount=Decimal("0.00"),
        ))
        with pytest.raises(ImmutableEntryError):
            db_session.flush()
        db_session.rollback()

        assert len(service.get_journal_entry(tenant_id, entry.id).lines) == 2

    def test_draft_lines_can_change(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        entry.lines[0].description = "Till 2"
        db_session.flush()
        assert entry.lines[0].description == "Till 2"


class TestDraftEditing:

    def test_lines_replaced(self, db_session, tenant_id, publisher):
        service = LedgerService(db_session, publisher)
        cash, sales = create_pair(service, tenant_id)
        draft = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        updated = service.update_draft_entry(tenant_id, draft.id, JournalEntryUpdate(
            description="Corrected sale",
            lines=[
                JournalLineInput(account_id=cash.id, debit_amount=Decimal("80")),
                JournalLineInput(account_id=cash.id, debit_amount=Decimal("40")),
                JournalLineInput(account_id=sales.id, credit_amount=Decimal("120")),
            ],
        ))

        assert updated.status == JournalStatus.DRAFT
        assert updated.description == "Corrected sale"
        assert [line.line_number for line in updated.lines] == [1, 2, 3]
        assert updated.total_debit == Decimal("120.00")
        assert updated.is_balanced
        assert updated.entry_number == draft.entry_number
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("0.00")
        assert "journal_entry.updated" in publisher.names()

    def test_date_only_keeps_lines(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        draft = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        updated = service.update_draft_entry(
            tenant_id, draft.id, JournalEntryUpdate(entry_date=date(2024, 4, 2))
        )
        assert updated.entry_date == date(2024, 4, 2)
        assert len(updated.lines) == 2

    def test_unbalanced_update_leaves_draft_unchanged(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        draft = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        with pytest.raises(NotBalancedError):
            service.update_draft_entry(tenant_id, draft.id, JournalEntryUpdate(
                lines=[
                    JournalLineInput(account_id=cash.id, debit_amount=Decimal("100")),
                    JournalLineInput(account_id=sales.id, credit_amount=Decimal("90")),
                ],
            ))

        reloaded = service.get_journal_entry(tenant_id, draft.id)
        assert [line.credit_amount for line in reloaded.lines] == [
            Decimal("0.00"), Decimal("100.00"),
        ]

    def test_posted_entry_cannot_be_edited(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        with pytest.raises(ImmutableEntryError):
            service.update_draft_entry(
                tenant_id, entry.id, JournalEntryUpdate(description="Changed")
            )
        assert service.get_journal_entry(tenant_id, entry.id).description == "Cash sale"

    def test_delete_draft(self, db_session, tenant_id, publisher):
        service = LedgerService(db_session, publisher)
        cash, sales = create_pair(service, tenant_id)
        draft = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        service.delete_draft_entry(tenant_id, draft.id)

        with pytest.raises(NotFoundError):
            service.get_journal_entry(tenant_id, draft.id)
        assert service.get_entries_by_account(tenant_id, cash.id) == []
        assert "journal_entry.deleted" in publisher.names()

    def test_posted_entry_cannot_be_deleted(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        entry = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        with pytest.raises(ImmutableEntryError):
            service.delete_draft_entry(tenant_id, entry.id)
        assert service.get_journal_entry(tenant_id, entry.id).is_posted


class TestReversal:

    def test_reversal_mirrors_lines_and_restores_balances(
        self, db_session, tenant_id, publisher
    ):
        service = LedgerService(db_session, publisher)
        cash, sales = create_pair(service, tenant_id)
        original = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        reversal = service.reverse_journal_entry(tenant_id, original.id)

        assert reversal.status == JournalStatus.POSTED
        assert reversal.entry_type == JournalEntryType.REV
        assert reversal.reference_type == "reversal"
        assert reversal.reference_id == str(original.id)
        assert reversal.description == f"Reversal of {original.entry_number}"
        assert [
            (line.account_id, line.debit_amount, line.credit_amount)
            for line in reversal.lines
        ] == [
            (cash.id, Decimal("0.00"), Decimal("100.00")),
            (sales.id, Decimal("100.00"), Decimal("0.00")),
        ]
        assert service.get_account_balance(tenant_id, cash.id) == Decimal("0.00")
        assert service.get_account_balance(tenant_id, sales.id) == Decimal("0.00")
        assert service.compute_balance_from_lines(tenant_id, cash.id) == Decimal("0.00")
        assert "journal_entry.reversed" in publisher.names()

    def test_original_stays_posted_and_unchanged(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        original = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        service.reverse_journal_entry(tenant_id, original.id)

        reloaded = service.get_journal_entry(tenant_id, original.id)
        assert reloaded.is_posted
        assert reloaded.lines[0].debit_amount == Decimal("100.00")

    def test_date_and_description_can_be_given(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        original = service.create_journal_entry(tenant_id, cash_sale(cash, sales))

        reversal = service.reverse_journal_entry(
            tenant_id, original.id, JournalReversalRequest(
                reversal_date=date(2024, 4, 30), description="Wrong till",
            )
        )
        assert reversal.entry_date == date(2024, 4, 30)
        assert reversal.description == "Wrong till"

    def test_entry_reversed_once(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        original = service.create_journal_entry(tenant_id, cash_sale(cash, sales))
        service.reverse_journal_entry(tenant_id, original.id)

        with pytest.raises(AlreadyReversedError):
            service.reverse_journal_entry(tenant_id, original.id)
        assert len(service.list_journal_entries(tenant_id)) == 2

    def test_draft_cannot_be_reversed(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        draft = service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, auto_post=False)
        )

        with pytest.raises(NotPostedError):
            service.reverse_journal_entry(tenant_id, draft.id)

    def test_other_tenants_entry_not_found(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, OTHER_TENANT)
        entry = service.create_journal_entry(OTHER_TENANT, cash_sale(cash, sales))

        with pytest.raises(NotFoundError):
            service.reverse_journal_entry(tenant_id, entry.id)


class TestTrialBalance:

    def test_posted_totals_per_account(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.create_journal_entry(tenant_id, cash_sale(cash, sales, "100.00"))
        service.create_journal_entry(tenant_id, cash_sale(cash, sales, "50.25"))
        service.create_journal_entry(
            tenant_id, cash_sale(cash, sales, "999.00", auto_post=False)
        )

        trial = service.get_trial_balance(tenant_id)

        assert [row["code"] for row in trial["rows"]] == ["CASH", "SALES"]
        cash_row, sales_row = trial["rows"]
        assert cash_row["total_debit"] == Decimal("150.25")
        assert cash_row["total_credit"] == Decimal("0.00")
        assert cash_row["balance"] == Decimal("150.25")
        assert sales_row["balance"] == Decimal("-150.25")
        assert trial["total_debit"] == trial["total_credit"] == Decimal("150.25")
        assert trial["is_balanced"] is True

    def test_as_of_date_excludes_later_entries(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, tenant_id)
        service.create_journal_entry(tenant_id, cash_sale(cash, sales))
        later = cash_sale(cash, sales, "40.00").model_copy(
            update={"entry_date": date(2024, 5, 1)}
        )
        service.create_journal_entry(tenant_id, later)

        trial = service.get_trial_balance(tenant_id, as_of_date=date(2024, 4, 30))
        assert trial["total_debit"] == Decimal("100.00")

    def test_other_tenants_excluded(self, db_session, tenant_id):
        service = LedgerService(db_session)
        cash, sales = create_pair(service, OTHER_TENANT)
        service.create_journal_entry(OTHER_TENANT, cash_sale(cash, sales))

        trial = service.get_trial_balance(tenant_id)
        assert trial["rows"] == []
        assert trial["is_balanced"] is True
