"""Back-office models.

Importing this package registers every table on Base.metadata (needed by
Alembic and by the test fixtures that call `create_all`).
"""

# ── Reference data ───────────────────────────────────────────
from backoffice.models.company import Company
from backoffice.models.ship import Ship
from backoffice.models.operation import Operation

# ── Billing ──────────────────────────────────────────────────
from backoffice.models.invoice import Invoice, InvoiceLineItem
from backoffice.models.invoice_sequence import InvoiceSequence

# ── Expenses ─────────────────────────────────────────────────
from backoffice.models.expense import Currency, Expense, ExpenseStatus

# ── Audit ────────────────────────────────────────────────────
from backoffice.models.activity_log import ActivityLog

__all__ = [
    # Reference data
    "Company", "Ship", "Operation",
    # Billing
    "Invoice", "InvoiceLineItem", "InvoiceSequence",
    # Expenses
    "Expense", "ExpenseStatus", "Currency",
    # Audit
    "ActivityLog",
]
