"""Invoice number generation.

Format:
  {prefix}-{year}-{seq:6}   e.g. FAC-2024-000001

The sequence resets every calendar year (year of the emission date) and
its last used value is persisted in `invoice_sequences`, so numbering
survives restarts.  Each call bumps the counter with one UPDATE; the row
lock taken by that UPDATE serializes concurrent emissions until the
enclosing transaction commits.

A candidate that is already held by an invoice (e.g. a number entered by
a data import) is skipped.  After MAX_ATTEMPTS skipped candidates the
generator gives up with UniquenessError.
"""

import logging
import re
from datetime import date

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.middleware.exceptions import UniquenessError
from backoffice.models.invoice import Invoice
from backoffice.models.invoice_sequence import InvoiceSequence

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
SEQUENCE_WIDTH = 6

NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<year>\d{4})-(?P<seq>\d+)$")


def format_invoice_number(year: int, seq: int, prefix: str | None = None) -> str:
    """Render e.g. (2024, 1) → "FAC-2024-000001"."""
    prefix = prefix or settings.invoice_number_prefix
    return f"{prefix}-{year:04d}-{seq:0{SEQUENCE_WIDTH}d}"


def parse_invoice_number(number: str) -> tuple[str, int, int]:
    """Split an invoice number into (prefix, year, sequence).

    Raises ValueError when the string is not a well-formed number.
    """
    match = NUMBER_PATTERN.match(number or "")
    if not match:
        raise ValueError(f"Malformed invoice number: {number!r}")
    return match["prefix"], int(match["year"]), int(match["seq"])


async def _next_sequence_value(db: AsyncSession, year: int) -> int:
    """Atomically increment the counter for `year` and return the new value."""
    while True:
        result = await db.execute(
            update(InvoiceSequence)
            .where(InvoiceSequence.year == year)
            .values(last_value=InvoiceSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            value = await db.scalar(
                select(InvoiceSequence.last_value).where(InvoiceSequence.year == year)
            )
            return int(value)

        # First number of the year: create the counter row.  A concurrent
        # creator wins the primary key and we go back to the UPDATE.
        try:
            async with db.begin_nested():
                db.add(InvoiceSequence(year=year, last_value=1))
            return 1
        except IntegrityError:
            logger.debug("Sequence row for %d created concurrently, retrying", year)


async def _number_taken(db: AsyncSession, number: str) -> bool:
    return bool(await db.scalar(select(exists().where(Invoice.number == number))))


async def next_invoice_number(db: AsyncSession, on_date: date | None = None) -> str:
    """Reserve the next free invoice number for the year of `on_date`.

    The counter increment is part of the caller's transaction: if the
    emission rolls back, so does the reservation.
    """
    year = (on_date or date.today()).year
    for _ in range(MAX_ATTEMPTS):
        seq = await _next_sequence_value(db, year)
        candidate = format_invoice_number(year, seq)
        if not await _number_taken(db, candidate):
            logger.debug("Reserved invoice number %s", candidate)
            return candidate
        logger.warning("Invoice number %s already in use, skipping", candidate)

    raise UniquenessError(
        f"Could not allocate a unique invoice number for {year} "
        f"after {MAX_ATTEMPTS} attempts"
    )
