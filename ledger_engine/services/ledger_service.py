"""
Ledger service: the posting engine at the core of the system.

This service enforces the fundamental rules:
1. Every posted entry balances (debits = credits)
2. Posted entries are immutable
3. Accounts must exist in the tenant and be active
4. Entry numbers are unique and sequential per tenant

No other service writes journal entries directly. Invoices,
bills, receipts and integration events are all reduced to a
PostingRequest and go through post_entry().
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ledger_engine.documents import (
    ManualDocument,
    ReversalDocument,
    SourceDocument,
)
from ledger_engine.events import (
    EventPublisher,
    get_event_publisher,
    publish_after_commit,
)
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
from ledger_engine.models.account import Account
from ledger_engine.models.base import unit_of_work
from ledger_engine.models.enums import (
    AccountCategory,
    JournalEntryType,
    JournalStatus,
)
from ledger_engine.models.journal import EntrySequence, JournalEntry, JournalLine
from ledger_engine.schemas.ledger import (
    AccountCreate,
    AccountUpdate,
    JournalEntryCreate,
    JournalEntryUpdate,
    JournalLineInput,
    JournalReversalRequest,
    PostingRequest,
)
from ledger_engine.services.tax_calculator import round_money

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def format_entry_number(value: int) -> str:
    return f"JE-{value:06d}"


class LedgerService:
    """
    All ledger operations pass through this service.

    Public methods that change data run inside their own
    unit_of_work. post_entry() is the exception: it only flushes,
    so other services can post an entry and update their own
    documents in one transaction.
    """

    def __init__(self, db: Session, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or get_event_publisher()

    # --- Accounts ---

    def create_account(self, tenant_id: str, request: AccountCreate) -> Account:
        """
        Create a new account in the tenant's chart.

        Raises DuplicateError if the code is already used.
        """
        with unit_of_work(self.db):
            existing = self.db.execute(
                select(Account).where(
                    Account.tenant_id == tenant_id,
                    Account.code == request.code,
                )
            ).scalar_one_or_none()

            if existing:
                raise DuplicateError(
                    f"Account with code '{request.code}' already exists"
                )

            account = Account(
                tenant_id=tenant_id,
                code=request.code,
                name=request.name,
                category=request.category,
            )
            self.db.add(account)
            self.db.flush()
        return account

    def get_account(self, tenant_id: str, account_id: int) -> Account:
        account = self.db.execute(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def update_account(
        self, tenant_id: str, account_id: int, request: AccountUpdate
    ) -> Account:
        """
        Rename, recategorise or deactivate an account.

        The category is frozen once any journal line references
        the account.
        """
        with unit_of_work(self.db):
            account = self.get_account(tenant_id, account_id)

            if (
                request.category is not None
                and request.category != account.category
                and self._has_lines(account.id)
            ):
                raise AccountInUseError(
                    f"Account {account.code} has journal lines; "
                    f"its category cannot change"
                )

            if request.name is not None:
                account.name = request.name
            if request.category is not None:
                account.category = request.category
            if request.is_active is not None:
                account.is_active = request.is_active
            self.db.flush()
        return account

    def list_accounts(
        self,
        tenant_id: str,
        category: AccountCategory | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        query = select(Account).where(Account.tenant_id == tenant_id)
        if category is not None:
            query = query.where(Account.category == category)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        return list(
            self.db.execute(query.order_by(Account.code)).scalars().all()
        )

    def get_account_balance(self, tenant_id: str, account_id: int) -> Decimal:
        """
        The account's running debit-minus-credit balance.

        Maintained incrementally when entries are posted. Use
        compute_balance_from_lines() to derive it from scratch.
        """
        account = self.get_account(tenant_id, account_id)
        return round_money(account.current_balance)

    def compute_balance_from_lines(
        self, tenant_id: str, account_id: int
    ) -> Decimal:
        """Sum debits minus credits over posted lines only."""
        self.get_account(tenant_id, account_id)
        total_debits, total_credits = self.db.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), 0),
                func.coalesce(func.sum(JournalLine.credit_amount), 0),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalStatus.POSTED,
            )
        ).one()
        return round_money(
            Decimal(str(total_debits)) - Decimal(str(total_credits))
        )

    def _has_lines(self, account_id: int) -> bool:
        return self.db.execute(
            select(JournalLine.id)
            .where(JournalLine.account_id == account_id)
            .limit(1)
        ).first() is not None

    # --- Posting engine ---

    def _next_entry_number(self, tenant_id: str) -> str:
        """
        Allocate the tenant's next entry number.

        The UPDATE takes a row lock held until the surrounding
        transaction ends, so concurrent postings for one tenant
        queue here instead of reading the same value.
        """
        dialect = self.db.get_bind().dialect.name
        upsert = _UPSERT_INSERTS.get(dialect)

        if upsert is not None:
            self.db.execute(
                upsert(EntrySequence)
                .values(tenant_id=tenant_id, last_value=0)
                .on_conflict_do_nothing(index_elements=["tenant_id"])
            )
        elif self.db.get(EntrySequence, tenant_id) is None:
            self.db.add(EntrySequence(tenant_id=tenant_id, last_value=0))
            self.db.flush()

        value = self.db.execute(
            update(EntrySequence)
            .where(EntrySequence.tenant_id == tenant_id)
            .values(last_value=EntrySequence.last_value + 1)
            .returning(EntrySequence.last_value)
        ).scalar_one()
        return format_entry_number(value)

    def _validate_lines(
        self, tenant_id: str, lines: list[JournalLineInput]
    ) -> dict[int, Account]:
        """
        Check every line and the accounts they touch.

        Raises before anything is written.
        """
        for i, line in enumerate(lines, start=1):
            if line.debit_amount < 0 or line.credit_amount < 0:
                raise ValidationError(f"Line {i}: amounts must not be negative")
            if (line.debit_amount > 0) == (line.credit_amount > 0):
                raise ValidationError(
                    f"Line {i}: exactly one of debit and credit "
                    f"must be non-zero"
                )
            for amount in (line.debit_amount, line.credit_amount):
                if amount != round_money(amount):
                    raise ValidationError(
                        f"Line {i}: amounts are limited to 2 decimal places"
                    )

        account_ids = {line.account_id for line in lines}
        accounts = self.db.execute(
            select(Account).where(
                Account.id.in_(account_ids),
                Account.tenant_id == tenant_id,
            )
        ).scalars().all()
        accounts_by_id = {a.id: a for a in accounts}

        missing = account_ids - set(accounts_by_id)
        if missing:
            raise NotFoundError(f"Accounts not found: {sorted(missing)}")

        for account in accounts_by_id.values():
            if not account.is_active:
                raise ValidationError(f"Account {account.code} is not active")

        return accounts_by_id

    @staticmethod
    def _update_totals(entry: JournalEntry) -> None:
        entry.total_debit = sum(
            (Decimal(line.debit_amount) for line in entry.lines), Decimal("0")
        )
        entry.total_credit = sum(
            (Decimal(line.credit_amount) for line in entry.lines), Decimal("0")
        )
        entry.is_balanced = (
            abs(entry.total_debit - entry.total_credit) < BALANCE_TOLERANCE
        )

    def _apply_posting(self, entry: JournalEntry) -> None:
        """
        Flip a draft entry to posted and move account balances.

        Each account is updated with a single atomic
        UPDATE ... SET current_balance = current_balance + net,
        so concurrent postings never lose an update.
        """
        entry.status = JournalStatus.POSTED
        entry.posted_at = datetime.utcnow()

        nets: dict[int, Decimal] = defaultdict(Decimal)
        for line in entry.lines:
            nets[line.account_id] += line.net_amount

        for account_id, net in nets.items():
            if net == 0:
                continue
            self.db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(current_balance=Account.current_balance + net)
            )
        self.db.flush()

    def post_entry(self, tenant_id: str, request: PostingRequest) -> JournalEntry:
        """
        Write one journal entry, and post it if auto_post is set.

        This is the most critical method in the system. It:
        - validates lines and accounts
        - allocates the entry number
        - inserts the draft header and its numbered lines
        - recomputes totals and refuses unbalanced entries
        - on auto_post, flips to posted and applies balances

        Runs inside the caller's transaction and only flushes.
        If it raises, the caller's unit_of_work rolls back
        everything, the sequence increment included.
        """
        self._validate_lines(tenant_id, request.lines)

        source = request.source
        entry = JournalEntry(
            tenant_id=tenant_id,
            entry_number=self._next_entry_number(tenant_id),
            entry_date=request.entry_date,
            entry_type=request.resolved_entry_type,
            description=request.description,
            status=JournalStatus.DRAFT,
            reference_type=source.reference_type,
            reference_id=source.id,
            source_system=request.source_system,
        )
        self.db.add(entry)

        for line_number, line in enumerate(request.lines, start=1):
            entry.lines.append(JournalLine(
                line_number=line_number,
                account_id=line.account_id,
                description=line.description,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                cost_center_id=line.cost_center_id,
            ))

        self._update_totals(entry)
        self.db.flush()

        if not entry.is_balanced:
            logger.error(
                "Unbalanced journal entry %s for %s %s: debit=%s credit=%s",
                entry.entry_number, source.reference_type, source.id,
                entry.total_debit, entry.total_credit,
            )
            raise NotBalancedError(
                f"Entry does not balance: debits={entry.total_debit}, "
                f"credits={entry.total_credit}"
            )

        if request.auto_post:
            self._apply_posting(entry)

        logger.info(
            "Created journal entry %s (%s, %s) tenant=%s total=%s",
            entry.entry_number, entry.entry_type.value, entry.status.value,
            tenant_id, entry.total_debit,
        )
        return entry

    def find_entry_for(
        self, tenant_id: str, source: SourceDocument
    ) -> JournalEntry | None:
        """Return the entry already written for a source document."""
        return self.db.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.reference_type == source.reference_type,
                JournalEntry.reference_id == source.id,
            )
            .order_by(JournalEntry.id)
            .limit(1)
        ).scalar_one_or_none()

    # --- Manual journal entries ---

    def create_journal_entry(
        self, tenant_id: str, request: JournalEntryCreate
    ) -> JournalEntry:
        """Create a hand-keyed (STD) entry, as draft or posted."""
        with unit_of_work(self.db):
            entry = self.post_entry(tenant_id, PostingRequest(
                source=ManualDocument(request.reference),
                entry_date=request.entry_date,
                description=request.description,
                lines=request.lines,
                auto_post=request.auto_post,
                entry_type=JournalEntryType.STD,
            ))

        publish_after_commit(
            self.publisher, "journal_entry.created", tenant_id,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
            status=entry.status.value,
        )
        if entry.is_posted:
            self._publish_posted(tenant_id, entry)
        return entry

    def post_journal_entry(self, tenant_id: str, entry_id: int) -> JournalEntry:
        """
        Post a draft entry.

        Raises AlreadyPostedError if it is already posted; a
        posted entry is never re-posted or modified.
        """
        with unit_of_work(self.db):
            entry = self.get_journal_entry(tenant_id, entry_id)
            if entry.is_posted:
                raise AlreadyPostedError(
                    f"Journal entry {entry.entry_number} is already posted"
                )

            self._update_totals(entry)
            if not entry.is_balanced:
                logger.error(
                    "Refusing to post unbalanced entry %s: debit=%s credit=%s",
                    entry.entry_number, entry.total_debit, entry.total_credit,
                )
                raise NotBalancedError(
                    f"Entry does not balance: debits={entry.total_debit}, "
                    f"credits={entry.total_credit}"
                )
            self._apply_posting(entry)

        self._publish_posted(tenant_id, entry)
        return entry

    def _publish_posted(self, tenant_id: str, entry: JournalEntry) -> None:
        publish_after_commit(
            self.publisher, "journal_entry.posted", tenant_id,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
            total=str(entry.total_debit),
        )

    def update_draft_entry(
        self, tenant_id: str, entry_id: int, request: JournalEntryUpdate
    ) -> JournalEntry:
        """
        Edit a draft entry in place.

        New lines replace the old ones and must balance. Raises
        ImmutableEntryError once the entry is posted.
        """
        with unit_of_work(self.db):
            entry = self.get_journal_entry(tenant_id, entry_id)
            if entry.is_posted:
                raise ImmutableEntryError(
                    f"Journal entry {entry.entry_number} is posted; "
                    f"reverse it instead"
                )

            if request.entry_date is not None:
                entry.entry_date = request.entry_date
            if request.description is not None:
                entry.description = request.description

            if request.lines is not None:
                self._validate_lines(tenant_id, request.lines)
                # Old lines go first so line numbers can be reused
                entry.lines.clear()
                self.db.flush()
                for line_number, line in enumerate(request.lines, start=1):
                    entry.lines.append(JournalLine(
                        line_number=line_number,
                        account_id=line.account_id,
                        description=line.description,
                        debit_amount=line.debit_amount,
                        credit_amount=line.credit_amount,
                        cost_center_id=line.cost_center_id,
                    ))
                self._update_totals(entry)
                if not entry.is_balanced:
                    raise NotBalancedError(
                        f"Entry does not balance: debits={entry.total_debit}, "
                        f"credits={entry.total_credit}"
                    )
            self.db.flush()

        publish_after_commit(
            self.publisher, "journal_entry.updated", tenant_id,
            journal_entry_id=entry.id,
            entry_number=entry.entry_number,
        )
        return entry

    def delete_draft_entry(self, tenant_id: str, entry_id: int) -> None:
        """Discard a draft entry. Posted entries are never deleted."""
        with unit_of_work(self.db):
            entry = self.get_journal_entry(tenant_id, entry_id)
            if entry.is_posted:
                raise ImmutableEntryError(
                    f"Journal entry {entry.entry_number} is posted; "
                    f"reverse it instead"
                )
            entry_number = entry.entry_number
            self.db.delete(entry)
            self.db.flush()

        logger.info("Deleted draft journal entry %s tenant=%s",
                    entry_number, tenant_id)
        publish_after_commit(
            self.publisher, "journal_entry.deleted", tenant_id,
            journal_entry_id=entry_id,
            entry_number=entry_number,
        )

    def reverse_journal_entry(
        self,
        tenant_id: str,
        entry_id: int,
        request: JournalReversalRequest | None = None,
    ) -> JournalEntry:
        """
        Cancel a posted entry with a posted mirror image.

        The reversal swaps every line's debit and credit and points
        back at the original through its reference pair. An entry
        can be reversed once.
        """
        request = request or JournalReversalRequest()
        with unit_of_work(self.db):
            original = self.get_journal_entry(tenant_id, entry_id)
            if not original.is_posted:
                raise NotPostedError(
                    f"Journal entry {original.entry_number} is a draft; "
                    f"delete it instead"
                )
            source = ReversalDocument(original.id)
            existing = self.find_entry_for(tenant_id, source)
            if existing is not None:
                raise AlreadyReversedError(
                    f"Journal entry {original.entry_number} was already "
                    f"reversed by {existing.entry_number}"
                )

            reversal = self.post_entry(tenant_id, PostingRequest(
                source=source,
                entry_date=request.reversal_date or date.today(),
                description=(
                    request.description
                    or f"Reversal of {original.entry_number}"
                ),
                lines=[
                    JournalLineInput(
                        account_id=line.account_id,
                        debit_amount=line.credit_amount,
                        credit_amount=line.debit_amount,
                        description=(
                            f"Reversal: {line.description or ''}".rstrip()[:255]
                        ),
                        cost_center_id=line.cost_center_id,
                    )
                    for line in original.lines
                ],
                auto_post=True,
            ))

        publish_after_commit(
            self.publisher, "journal_entry.reversed", tenant_id,
            journal_entry_id=original.id,
            entry_number=original.entry_number,
            reversal_entry_id=reversal.id,
            reversal_entry_number=reversal.entry_number,
        )
        self._publish_posted(tenant_id, reversal)
        return reversal

    def get_journal_entry(self, tenant_id: str, entry_id: int) -> JournalEntry:
        entry = self.db.execute(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if not entry:
            raise NotFoundError(f"Journal entry {entry_id} not found")
        return entry

    def list_journal_entries(
        self,
        tenant_id: str,
        status: JournalStatus | None = None,
        entry_type: JournalEntryType | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[JournalEntry]:
        """Entries newest first."""
        query = select(JournalEntry).where(JournalEntry.tenant_id == tenant_id)
        if status is not None:
            query = query.where(JournalEntry.status == status)
        if entry_type is not None:
            query = query.where(JournalEntry.entry_type == entry_type)
        query = (
            query.order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(query).scalars().all())

    def get_entries_by_account(
        self, tenant_id: str, account_id: int
    ) -> list[JournalLine]:
        """Return all journal lines for an account, newest first."""
        self.get_account(tenant_id, account_id)
        lines = self.db.execute(
            select(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalLine.account_id == account_id)
            .order_by(JournalEntry.entry_date.desc(), JournalLine.id.desc())
        ).scalars().all()
        return list(lines)

    # --- Reports ---

    def get_trial_balance(
        self, tenant_id: str, as_of_date: date | None = None
    ) -> dict:
        """
        Debit and credit totals per account over posted lines.

        Accounts without posted activity are left out. Because every
        posted entry balances, the grand totals are always equal.
        """
        query = (
            select(
                Account,
                func.coalesce(func.sum(JournalLine.debit_amount), 0),
                func.coalesce(func.sum(JournalLine.credit_amount), 0),
            )
            .join(JournalLine, JournalLine.account_id == Account.id)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                Account.tenant_id == tenant_id,
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.status == JournalStatus.POSTED,
            )
        )
        if as_of_date is not None:
            query = query.where(JournalEntry.entry_date <= as_of_date)
        query = query.group_by(Account.id).order_by(Account.code)

        rows = []
        total_debit = total_credit = Decimal("0.00")
        for account, debits, credits in self.db.execute(query).all():
            debits = round_money(Decimal(str(debits)))
            credits = round_money(Decimal(str(credits)))
            rows.append({
                "account_id": account.id,
                "code": account.code,
                "name": account.name,
                "category": account.category,
                "total_debit": debits,
                "total_credit": credits,
                "balance": debits - credits,
            })
            total_debit += debits
            total_credit += credits

        return {
            "as_of_date": as_of_date,
            "rows": rows,
            "total_debit": total_debit,
            "total_credit": total_credit,
            "is_balanced": total_debit == total_credit,
        }
