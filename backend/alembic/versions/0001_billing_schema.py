"""Billing schema: reference tables, invoices, line items, sequences,
expenses and activity logs.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("updated_by", sa.String(36)),
    ]


INVOICE_STATUSES = ("BROUILLON", "EMISE", "PAYEE", "ANNULEE", "EN_RETARD")
EXPENSE_STATUSES = ("BROUILLON", "EN_ATTENTE", "VALIDEE", "PAYEE", "REJETEE", "ANNULEE")
CURRENCIES = ("XOF", "EUR", "USD")


def upgrade() -> None:
    # ── Reference data ───────────────────────────────────────
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), unique=True),
        sa.Column("country", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index("ix_companies_name", "companies", ["name"])

    op.create_table(
        "ships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("imo_number", sa.String(20), unique=True),
        sa.Column("flag", sa.String(50)),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index("ix_ships_name", "ships", ["name"])

    op.create_table(
        "operations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2)),
        sa.Column("unit_price_secondary", sa.Numeric(15, 2)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )

    # ── Invoices ─────────────────────────────────────────────
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("number", sa.String(20), unique=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("ship_id", sa.Integer(), sa.ForeignKey("ships.id"), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_secondary", sa.Numeric(15, 2)),
        sa.Column(
            "status",
            sa.Enum(*INVOICE_STATUSES, name="invoicestatus", native_enum=False, length=20),
            nullable=False,
            server_default="BROUILLON",
        ),
        sa.Column("notes", sa.String(1000)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
        sa.CheckConstraint("due_date >= issue_date", name="ck_invoices_due_after_issue"),
        sa.CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_invoices_tax_rate_range"),
        sa.CheckConstraint(
            "subtotal >= 0 AND tax_amount >= 0 AND total >= 0",
            name="ck_invoices_amounts_positive",
        ),
    )
    op.create_index("ix_invoices_number", "invoices", ["number"])
    op.create_index("ix_invoices_company_id", "invoices", ["company_id"])
    op.create_index("ix_invoices_ship_id", "invoices", ["ship_id"])
    op.create_index("ix_invoices_issue_date", "invoices", ["issue_date"])
    op.create_index("ix_invoices_status", "invoices", ["status"])
    op.create_index("ix_invoices_active", "invoices", ["active"])
    # Overdue sweep predicate
    op.create_index("ix_invoices_status_due_date", "invoices", ["status", "due_date"])

    op.create_table(
        "invoice_line_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "invoice_id", sa.Integer(),
            sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("operation_id", sa.Integer(), sa.ForeignKey("operations.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("unit_price_secondary", sa.Numeric(15, 2)),
        sa.Column("total", sa.Numeric(19, 4), nullable=False),
        sa.Column("total_secondary", sa.Numeric(19, 4)),
        *_audit_columns(),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
        sa.CheckConstraint("unit_price >= 0", name="ck_invoice_lines_price_positive"),
    )
    op.create_index("ix_invoice_line_items_invoice_id", "invoice_line_items", ["invoice_id"])
    op.create_index("ix_invoice_line_items_operation_id", "invoice_line_items", ["operation_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("year", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )

    # ── Expenses ─────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("number", sa.String(20), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000)),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer()),
        sa.Column("payment_method_id", sa.Integer(), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(21, 2), nullable=False),
        sa.Column("amount_secondary", sa.Numeric(21, 2)),
        sa.Column("exchange_rate", sa.Numeric(21, 6)),
        sa.Column(
            "currency",
            sa.Enum(*CURRENCIES, name="currency", native_enum=False, length=10),
            nullable=False,
            server_default="XOF",
        ),
        sa.Column(
            "status",
            sa.Enum(*EXPENSE_STATUSES, name="expensestatus", native_enum=False, length=20),
            nullable=False,
            server_default="EN_ATTENTE",
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    for column in ("number", "title", "category_id", "supplier_id",
                   "payment_method_id", "expense_date", "status", "active"):
        op.create_index(f"ix_expenses_{column}", "expenses", [column])

    # ── Audit trail ──────────────────────────────────────────
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("expenses")
    op.drop_table("invoice_sequences")
    op.drop_table("invoice_line_items")
    op.drop_table("invoices")
    op.drop_table("operations")
    op.drop_table("ships")
    op.drop_table("companies")
