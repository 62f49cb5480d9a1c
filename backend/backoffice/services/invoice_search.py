"""Invoice search: the invoice FilterSpec and the paged query around it.

Text search matches number, notes and the names of the billed company and
ship; the two reference tables are outer-joined only when a search term
is given.
"""

import logging

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.models.company import Company
from backoffice.models.invoice import Invoice, InvoiceLineItem
from backoffice.models.ship import Ship
from backoffice.schemas.invoice import InvoiceSearchFilter
from backoffice.utils.filters import (
    Criterion, FilterSpec, Page, at_least, at_most, equals, month_of,
    paginate, text_search, year_of,
)

logger = logging.getLogger(__name__)

INVOICE_FILTERS = FilterSpec(
    active_column=Invoice.active,
    criteria=[
        Criterion(
            "search",
            text_search(Invoice.number, Invoice.notes, Company.name, Ship.name),
            joins=(
                (Company, Invoice.company_id == Company.id),
                (Ship, Invoice.ship_id == Ship.id),
            ),
        ),
        Criterion("company_id", equals(Invoice.company_id)),
        Criterion("ship_id", equals(Invoice.ship_id)),
        Criterion("status", equals(Invoice.status)),
        Criterion("start_date", at_least(Invoice.issue_date)),
        Criterion("end_date", at_most(Invoice.issue_date)),
        Criterion("min_amount", at_least(Invoice.total)),
        Criterion("max_amount", at_most(Invoice.total)),
        Criterion("month", month_of(Invoice.issue_date)),
        Criterion("year", year_of(Invoice.issue_date)),
    ],
    sort_columns={
        "id": Invoice.id,
        "number": Invoice.number,
        "issue_date": Invoice.issue_date,
        "due_date": Invoice.due_date,
        "total": Invoice.total,
        "status": Invoice.status,
        "created_at": Invoice.created_at,
    },
    default_sort="issue_date",
    tiebreaker=Invoice.id,
)


def invoice_query() -> Select:
    """SELECT Invoice with every relation the response shape needs."""
    return select(Invoice).options(
        selectinload(Invoice.company),
        selectinload(Invoice.ship),
        selectinload(Invoice.line_items).selectinload(InvoiceLineItem.operation),
    )


async def search_invoices(db: AsyncSession, flt: InvoiceSearchFilter) -> Page[Invoice]:
    logger.debug("Invoice search: %s", flt.model_dump(exclude_defaults=True))
    stmt = INVOICE_FILTERS.apply(invoice_query(), flt)
    return await paginate(db, stmt, flt.page, flt.size)
