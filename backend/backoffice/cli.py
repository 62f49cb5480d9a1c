"""Management CLI.

Usage:
    python -m backoffice.cli sweep-overdue [YYYY-MM-DD]   # Flag past-due EMISE invoices
    python -m backoffice.cli next-number [YEAR]           # Show the next number (dry run)
"""

import asyncio
import sys
from datetime import date

from sqlalchemy import create_engine, select

from backoffice.config import settings
from backoffice.models.invoice_sequence import InvoiceSequence
from backoffice.services.scheduler import run_overdue_sweep
from backoffice.utils.numbering import format_invoice_number


def sweep_overdue(run_date: date | None = None):
    """Run the overdue sweep once, outside of the web process."""
    count = asyncio.run(run_overdue_sweep(run_date))
    print(f"  {count} invoice(s) marked EN_RETARD")


def next_number(year: int | None = None):
    """Print the number the next emission would get, without reserving it."""
    year = year or date.today().year
    engine = create_engine(settings.database_url_sync)
    with engine.connect() as conn:
        last_value = conn.execute(
            select(InvoiceSequence.last_value).where(InvoiceSequence.year == year)
        ).scalar() or 0
    print(f"  {format_invoice_number(year, last_value + 1)}")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    arg = sys.argv[2] if len(sys.argv) > 2 else None
    if cmd == "sweep-overdue":
        sweep_overdue(date.fromisoformat(arg) if arg else None)
    elif cmd == "next-number":
        next_number(int(arg) if arg else None)
    else:
        print("Usage: python -m backoffice.cli [sweep-overdue [DATE]|next-number [YEAR]]")
