"""Read-only statistics over active invoices.

Every projection ignores soft-deleted invoices.  Results are cached in
Redis under the "invoice-stats" prefix; invoice mutations drop the whole
prefix (services.invoices.STATS_CACHE_PATTERN).  Call the cached
functions with keyword arguments: only those take part in the cache key.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.company import Company
from backoffice.models.invoice import Invoice
from backoffice.schemas.invoice import (
    CompanyStats, InvoiceStatistics, MonthlyStats, RevenueResponse, StatusCount,
)
from backoffice.services import invoice_status as state
from backoffice.services.amounts import ZERO, to_money
from backoffice.services.invoice_status import InvoiceStatus
from backoffice.utils.cache import cached

logger = logging.getLogger(__name__)

CACHE_PREFIX = "invoice-stats"

_active = Invoice.active == True  # noqa: E712


def _sum(column):
    return func.coalesce(func.sum(column), 0)


def _money(value) -> Decimal:
    return to_money(value if value is not None else ZERO)


def _overdue_clause(today: date):
    return (Invoice.status == InvoiceStatus.EN_RETARD) | (
        Invoice.status.in_(list(state.OVERDUE_CANDIDATE_STATUSES)) & (Invoice.due_date < today)
    )


def _months_back(today: date, months: int) -> date:
    """First day of the month `months - 1` months before `today`'s month."""
    index = today.year * 12 + (today.month - 1) - (months - 1)
    return date(index // 12, index % 12 + 1, 1)


async def _status_counts(db: AsyncSession, *clauses) -> list[StatusCount]:
    result = await db.execute(
        select(Invoice.status, func.count(Invoice.id), _sum(Invoice.total))
        .where(_active, *clauses)
        .group_by(Invoice.status)
        .order_by(func.count(Invoice.id).desc())
    )
    return [
        StatusCount(status=status, count=count, total=_money(total))
        for status, count, total in result.all()
    ]


async def _totals(db: AsyncSession, *clauses) -> tuple[int, Decimal, Decimal]:
    result = await db.execute(
        select(func.count(Invoice.id), _sum(Invoice.total), _sum(Invoice.total_secondary))
        .where(_active, *clauses)
    )
    count, total, total_secondary = result.one()
    return count, _money(total), _money(total_secondary)


async def _count(db: AsyncSession, *clauses) -> int:
    return (await db.execute(select(func.count(Invoice.id)).where(_active, *clauses))).scalar() or 0


@cached(prefix=CACHE_PREFIX)
async def get_statistics(db: AsyncSession, *, today: date | None = None) -> InvoiceStatistics:
    """Overall totals, status breakdown, last 12 months and top 10 companies."""
    today = today or date.today()
    count, total, total_secondary = await _totals(db)
    by_status = await _status_counts(db)
    counts = {s.status: s.count for s in by_status}

    this_month = await _count(
        db,
        extract("year", Invoice.issue_date) == today.year,
        extract("month", Invoice.issue_date) == today.month,
    )

    return InvoiceStatistics(
        total_invoices=count,
        total_amount=total,
        total_amount_secondary=total_secondary,
        draft_count=counts.get(InvoiceStatus.BROUILLON, 0),
        paid_count=counts.get(InvoiceStatus.PAYEE, 0),
        overdue_count=await _count(db, _overdue_clause(today)),
        this_month_count=this_month,
        by_status=by_status,
        monthly=await monthly_evolution(db, months=12, today=today),
        top_companies=await top_companies(db, limit=10),
    )


@cached(prefix=CACHE_PREFIX)
async def get_period_statistics(
    db: AsyncSession, *, start_date: date, end_date: date, today: date | None = None
) -> InvoiceStatistics:
    """Same counters restricted to invoices issued within [start_date, end_date]."""
    today = today or date.today()
    in_period = (Invoice.issue_date >= start_date, Invoice.issue_date <= end_date)
    count, total, total_secondary = await _totals(db, *in_period)
    by_status = await _status_counts(db, *in_period)
    counts = {s.status: s.count for s in by_status}

    return InvoiceStatistics(
        total_invoices=count,
        total_amount=total,
        total_amount_secondary=total_secondary,
        draft_count=counts.get(InvoiceStatus.BROUILLON, 0),
        paid_count=counts.get(InvoiceStatus.PAYEE, 0),
        overdue_count=await _count(db, _overdue_clause(today), *in_period),
        by_status=by_status,
    )


@cached(prefix=CACHE_PREFIX)
async def monthly_evolution(
    db: AsyncSession, *, months: int = 12, today: date | None = None
) -> list[MonthlyStats]:
    """Count and amounts per issue month, oldest first, for the last `months` months."""
    today = today or date.today()
    year_col = extract("year", Invoice.issue_date)
    month_col = extract("month", Invoice.issue_date)
    result = await db.execute(
        select(
            year_col, month_col,
            func.count(Invoice.id), _sum(Invoice.total), _sum(Invoice.total_secondary),
        )
        .where(_active, Invoice.issue_date >= _months_back(today, months))
        .group_by(year_col, month_col)
        .order_by(year_col, month_col)
    )
    return [
        MonthlyStats(
            year=int(year), month=int(month), count=count,
            total=_money(total), total_secondary=_money(total_secondary),
        )
        for year, month, count, total, total_secondary in result.all()
    ]


@cached(prefix=CACHE_PREFIX)
async def top_companies(
    db: AsyncSession,
    *,
    limit: int = 10,
    start_date: date | None = None,
    paid_only: bool = False,
) -> list[CompanyStats]:
    """Companies ranked by invoiced amount (or by cashed revenue with `paid_only`)."""
    clauses = [_active]
    if start_date is not None:
        clauses.append(Invoice.issue_date >= start_date)
    if paid_only:
        clauses.append(Invoice.status == InvoiceStatus.PAYEE)

    result = await db.execute(
        select(
            Company.id, Company.name,
            func.count(Invoice.id), _sum(Invoice.total), _sum(Invoice.total_secondary),
        )
        .join(Company, Invoice.company_id == Company.id)
        .where(*clauses)
        .group_by(Company.id, Company.name)
        .order_by(_sum(Invoice.total).desc(), Company.id)
        .limit(limit)
    )
    return [
        CompanyStats(
            company_id=company_id, company_name=name, count=count,
            total=_money(total), total_secondary=_money(total_secondary),
        )
        for company_id, name, count, total, total_secondary in result.all()
    ]


@cached(prefix=CACHE_PREFIX)
async def companies_with_unpaid_invoices(db: AsyncSession) -> list[CompanyStats]:
    """Companies holding EMISE or EN_RETARD invoices, with the outstanding amount."""
    result = await db.execute(
        select(
            Company.id, Company.name,
            func.count(Invoice.id), _sum(Invoice.total), _sum(Invoice.total_secondary),
        )
        .join(Company, Invoice.company_id == Company.id)
        .where(_active, Invoice.status.in_(list(state.UNPAID_STATUSES)))
        .group_by(Company.id, Company.name)
        .order_by(Company.name)
    )
    return [
        CompanyStats(
            company_id=company_id, company_name=name, count=count,
            total=_money(total), total_secondary=_money(total_secondary),
        )
        for company_id, name, count, total, total_secondary in result.all()
    ]


@cached(prefix=CACHE_PREFIX)
async def revenue_for_period(db: AsyncSession, *, start_date: date, end_date: date) -> RevenueResponse:
    """Sum of PAYEE invoices issued within [start_date, end_date]."""
    result = await db.execute(
        select(_sum(Invoice.total)).where(
            _active,
            Invoice.status == InvoiceStatus.PAYEE,
            Invoice.issue_date >= start_date,
            Invoice.issue_date <= end_date,
        )
    )
    revenue = _money(result.scalar())
    logger.debug("Revenue %s..%s: %s", start_date, end_date, revenue)
    return RevenueResponse(start_date=start_date, end_date=end_date, revenue=revenue)


def default_top_companies_start(today: date | None = None) -> date:
    """One year back, the default window for the revenue ranking."""
    return (today or date.today()) - timedelta(days=365)
