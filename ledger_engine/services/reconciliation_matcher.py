"""
Bank reconciliation matcher.

Pairs bank statement lines with ledger lines on the bank's GL
account. Pure functions over plain values: nothing here reads or
writes the database, so a proposal can be reviewed before it is
applied.

Directionality: the statement is written from the bank's side.
Money leaving the account is a bank "debit" and shows in our
books as a credit to the bank GL account; money arriving is a
bank "credit" and shows as a debit.

The algorithm is greedy first-fit. Statement lines are taken in
ascending date order and each claims the first unused ledger line
(also in ascending date order) within both tolerances. This is
not a globally optimal assignment: an early statement line can
take a ledger line that a later one matched more closely. Matches
are proposals and are expected to be reviewed.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ledger_engine.models.enums import BankTransactionType, MatchConfidence


@dataclass(frozen=True)
class StatementItem:
    id: int
    transaction_date: date
    transaction_type: BankTransactionType
    amount: Decimal


@dataclass(frozen=True)
class LedgerItem:
    id: int
    entry_date: date
    debit_amount: Decimal
    credit_amount: Decimal


@dataclass(frozen=True)
class MatchProposal:
    bank_transaction_id: int
    ledger_entry_id: int
    amount_difference: Decimal
    date_difference_days: int
    confidence: MatchConfidence


@dataclass
class MatchResult:
    matches: list[MatchProposal] = field(default_factory=list)
    unmatched_bank: list[int] = field(default_factory=list)
    unmatched_ledger: list[int] = field(default_factory=list)


def confidence_for(amount_difference: Decimal, date_difference_days: int) -> MatchConfidence:
    if amount_difference == 0 and date_difference_days == 0:
        return MatchConfidence.HIGH
    if date_difference_days <= 1:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


def opposite_side_amount(bank: StatementItem, ledger: LedgerItem) -> Decimal:
    """The ledger amount on the side a statement line must match."""
    if bank.transaction_type == BankTransactionType.DEBIT:
        return Decimal(ledger.credit_amount)
    return Decimal(ledger.debit_amount)


def auto_match(
    bank_transactions: list[StatementItem],
    ledger_entries: list[LedgerItem],
    date_tolerance_days: int = 3,
    amount_tolerance: Decimal = Decimal("0"),
) -> MatchResult:
    """Propose statement-to-ledger matches, greedy first-fit."""
    if date_tolerance_days < 0 or amount_tolerance < 0:
        raise ValueError("Tolerances must not be negative")

    bank_sorted = sorted(bank_transactions, key=lambda b: (b.transaction_date, b.id))
    ledger_sorted = sorted(ledger_entries, key=lambda l: (l.entry_date, l.id))

    result = MatchResult()
    used: set[int] = set()

    for bank in bank_sorted:
        bank_amount = Decimal(bank.amount)
        for ledger in ledger_sorted:
            if ledger.id in used:
                continue

            ledger_amount = opposite_side_amount(bank, ledger)
            if ledger_amount <= 0:
                continue
            amount_difference = abs(bank_amount - ledger_amount)
            if amount_difference > amount_tolerance:
                continue

            date_difference = abs((bank.transaction_date - ledger.entry_date).days)
            if date_difference > date_tolerance_days:
                continue

            result.matches.append(MatchProposal(
                bank_transaction_id=bank.id,
                ledger_entry_id=ledger.id,
                amount_difference=amount_difference,
                date_difference_days=date_difference,
                confidence=confidence_for(amount_difference, date_difference),
            ))
            used.add(ledger.id)
            break
        else:
            result.unmatched_bank.append(bank.id)

    result.unmatched_ledger = [l.id for l in ledger_sorted if l.id not in used]
    return result
