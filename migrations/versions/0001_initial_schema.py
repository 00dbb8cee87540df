"""Initial ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


ENUM_TYPES = {
    "account_category_enum": (
        "ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE",
    ),
    "journal_entry_type_enum": (
        "STD", "AR", "RCT", "PMT", "POS", "PUR", "INV", "CHG", "REF", "REV",
    ),
    "journal_status_enum": ("draft", "posted"),
    "document_status_enum": ("draft", "posted", "partial", "paid"),
    "payment_method_enum": ("cash", "bank", "cheque", "card", "upi"),
    "bank_transaction_type_enum": ("debit", "credit"),
    "match_type_enum": ("auto", "manual"),
    "reconciliation_status_enum": ("in_progress", "completed", "cancelled"),
}


def _enum(name: str) -> sa.Enum:
    # Types are created once in upgrade(); tables must not recreate them
    values = ENUM_TYPES[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category", _enum("account_category_enum"), nullable=False),
        sa.Column("current_balance", sa.Numeric(19, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "code", name="uq_accounts_tenant_code"),
    )

    op.create_table(
        "account_mappings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("mapping_key", sa.String(50), nullable=False),
        sa.Column(
            "account_id", sa.Integer(),
            sa.ForeignKey("accounts.id"), nullable=False,
        ),
        sa.UniqueConstraint(
            "tenant_id", "mapping_key", name="uq_account_mappings_tenant_key"
        ),
    )

    op.create_table(
        "entry_sequences",
        sa.Column("tenant_id", sa.String(64), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False),
    )

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("entry_number", sa.String(30), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("entry_type", _enum("journal_entry_type_enum"), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("status", _enum("journal_status_enum"), nullable=False),
        sa.Column("total_debit", sa.Numeric(19, 2), nullable=False),
        sa.Column("total_credit", sa.Numeric(19, 2), nullable=False),
        sa.Column("is_balanced", sa.Boolean(), nullable=False),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True, index=True),
        sa.Column("source_system", sa.String(50), nullable=False),
        sa.Column("posted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "tenant_id", "entry_number", name="uq_journal_entries_number"
        ),
    )
    op.create_index(
        "uq_journal_entries_bridge_reference",
        "journal_entries",
        ["tenant_id", "reference_type", "reference_id"],
        unique=True,
        postgresql_where=sa.text("source_system = 'integration_bridge'"),
        sqlite_where=sa.text("source_system = 'integration_bridge'"),
    )

    op.create_table(
        "journal_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "journal_entry_id", sa.Integer(),
            sa.ForeignKey("journal_entries.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column(
            "account_id", sa.Integer(),
            sa.ForeignKey("accounts.id"), nullable=False, index=True,
        ),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("debit_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("credit_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("cost_center_id", sa.String(64), nullable=True),
        sa.UniqueConstraint(
            "journal_entry_id", "line_number", name="uq_journal_lines_number"
        ),
    )

    op.create_table(
        "tax_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("cess_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "code", name="uq_tax_codes_tenant_code"),
    )

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("bank_name", sa.String(100), nullable=False),
        sa.Column("account_number", sa.String(50), nullable=False),
        sa.Column(
            "account_id", sa.Integer(),
            sa.ForeignKey("accounts.id"), nullable=False,
        ),
        sa.Column("opening_balance", sa.Numeric(19, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "reconciliations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column(
            "bank_account_id", sa.Integer(),
            sa.ForeignKey("bank_accounts.id"), nullable=False,
        ),
        sa.Column("statement_date", sa.Date(), nullable=False),
        sa.Column("statement_opening_balance", sa.Numeric(19, 2), nullable=False),
        sa.Column("statement_ending_balance", sa.Numeric(19, 2), nullable=False),
        sa.Column("status", _enum("reconciliation_status_enum"), nullable=False),
        sa.Column("reconciled_balance", sa.Numeric(19, 2), nullable=True),
        sa.Column("difference_amount", sa.Numeric(19, 2), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "uq_reconciliations_one_in_progress",
        "reconciliations",
        ["bank_account_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "bank_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column(
            "bank_account_id", sa.Integer(),
            sa.ForeignKey("bank_accounts.id"), nullable=False, index=True,
        ),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column(
            "transaction_type", _enum("bank_transaction_type_enum"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("is_reconciled", sa.Boolean(), nullable=False),
        sa.Column(
            "matched_ledger_entry_id", sa.Integer(),
            sa.ForeignKey("journal_lines.id"), nullable=True,
        ),
        sa.Column("match_type", _enum("match_type_enum"), nullable=True),
        sa.Column(
            "reconciliation_id", sa.Integer(),
            sa.ForeignKey("reconciliations.id"), nullable=True, index=True,
        ),
        sa.Column("import_source", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    _create_document_tables()


def _document_tax_columns() -> list[sa.Column]:
    return [
        sa.Column("cgst_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("sgst_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("igst_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("cess_amount", sa.Numeric(19, 2), nullable=False),
    ]


def _line_columns(parent_fk: str, parent_table: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            parent_fk, sa.Integer(),
            sa.ForeignKey(f"{parent_table}.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column(
            "account_id", sa.Integer(),
            sa.ForeignKey("accounts.id"), nullable=True,
        ),
        sa.Column("quantity", sa.Numeric(19, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(19, 4), nullable=False),
        sa.Column("discount_percent", sa.Numeric(7, 4), nullable=False),
        sa.Column("net_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column(
            "tax_code_id", sa.Integer(),
            sa.ForeignKey("tax_codes.id"), nullable=True,
        ),
        sa.Column("tax_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("cess_rate", sa.Numeric(7, 4), nullable=False),
        *_document_tax_columns(),
        sa.Column("total_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("cost_center_id", sa.String(64), nullable=True),
    ]


def _create_document_tables() -> None:
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_interstate", sa.Boolean(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("subtotal", sa.Numeric(19, 2), nullable=False),
        *_document_tax_columns(),
        sa.Column("total_tax", sa.Numeric(19, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("amount_received", sa.Numeric(19, 2), nullable=False),
        sa.Column("balance_due", sa.Numeric(19, 2), nullable=False),
        sa.Column("status", _enum("document_status_enum"), nullable=False),
        sa.Column(
            "journal_entry_id", sa.Integer(),
            sa.ForeignKey("journal_entries.id"), nullable=True,
        ),
        sa.Column("posted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "tenant_id", "invoice_number", name="uq_invoices_tenant_number"
        ),
    )

    op.create_table(
        "invoice_lines",
        *_line_columns("invoice_id", "invoices"),
        sa.Column("hsn_sac_code", sa.String(20), nullable=True),
    )

    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column(
            "invoice_id", sa.Integer(),
            sa.ForeignKey("invoices.id"), nullable=False, index=True,
        ),
        sa.Column("receipt_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("tds_deducted", sa.Numeric(19, 2), nullable=False),
        sa.Column("payment_method", _enum("payment_method_enum"), nullable=False),
        sa.Column(
            "bank_account_id", sa.Integer(),
            sa.ForeignKey("bank_accounts.id"), nullable=True,
        ),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column(
            "journal_entry_id", sa.Integer(),
            sa.ForeignKey("journal_entries.id"), nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column("vendor_id", sa.String(64), nullable=False),
        sa.Column("vendor_name", sa.String(255), nullable=False),
        sa.Column("bill_number", sa.String(50), nullable=False),
        sa.Column("bill_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_interstate", sa.Boolean(), nullable=False),
        sa.Column("subtotal", sa.Numeric(19, 2), nullable=False),
        *_document_tax_columns(),
        sa.Column("total_tax", sa.Numeric(19, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(19, 2), nullable=False),
        sa.Column("balance_due", sa.Numeric(19, 2), nullable=False),
        sa.Column("status", _enum("document_status_enum"), nullable=False),
        sa.Column(
            "journal_entry_id", sa.Integer(),
            sa.ForeignKey("journal_entries.id"), nullable=True,
        ),
        sa.Column("posted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "tenant_id", "vendor_id", "bill_number",
            name="uq_bills_tenant_vendor_number",
        ),
    )

    op.create_table("bill_lines", *_line_columns("bill_id", "bills"))

    op.create_table(
        "bill_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False, index=True),
        sa.Column(
            "bill_id", sa.Integer(),
            sa.ForeignKey("bills.id"), nullable=False, index=True,
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("tds_amount", sa.Numeric(19, 2), nullable=False),
        sa.Column("tds_section", sa.String(10), nullable=True),
        sa.Column("payment_method", _enum("payment_method_enum"), nullable=False),
        sa.Column(
            "bank_account_id", sa.Integer(),
            sa.ForeignKey("bank_accounts.id"), nullable=True,
        ),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column(
            "journal_entry_id", sa.Integer(),
            sa.ForeignKey("journal_entries.id"), nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "bill_payments", "bill_lines", "bills",
        "receipts", "invoice_lines", "invoices",
        "bank_transactions",
    ):
        op.drop_table(table)
    op.drop_index("uq_reconciliations_one_in_progress", table_name="reconciliations")
    op.drop_index(
        "uq_journal_entries_bridge_reference", table_name="journal_entries"
    )
    for table in (
        "reconciliations", "bank_accounts", "tax_codes",
        "journal_lines", "journal_entries", "entry_sequences",
        "account_mappings", "accounts",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
