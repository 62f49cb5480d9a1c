"""Expense search, built on the same FilterSpec as invoice search."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.middleware.exceptions import NotFoundError
from backoffice.models.expense import Expense
from backoffice.schemas.expense import ExpenseSearchFilter
from backoffice.utils.filters import (
    Criterion, FilterSpec, Page, at_least, at_most, equals, month_of,
    paginate, text_search, year_of,
)

logger = logging.getLogger(__name__)

EXPENSE_FILTERS = FilterSpec(
    active_column=Expense.active,
    criteria=[
        Criterion("search", text_search(Expense.number, Expense.title, Expense.description)),
        Criterion("category_id", equals(Expense.category_id)),
        Criterion("supplier_id", equals(Expense.supplier_id)),
        Criterion("payment_method_id", equals(Expense.payment_method_id)),
        Criterion("status", equals(Expense.status)),
        Criterion("currency", equals(Expense.currency)),
        Criterion("start_date", at_least(Expense.expense_date)),
        Criterion("end_date", at_most(Expense.expense_date)),
        Criterion("min_amount", at_least(Expense.amount)),
        Criterion("max_amount", at_most(Expense.amount)),
        Criterion("month", month_of(Expense.expense_date)),
        Criterion("year", year_of(Expense.expense_date)),
    ],
    sort_columns={
        "id": Expense.id,
        "number": Expense.number,
        "title": Expense.title,
        "expense_date": Expense.expense_date,
        "amount": Expense.amount,
        "status": Expense.status,
        "created_at": Expense.created_at,
    },
    default_sort="expense_date",
    tiebreaker=Expense.id,
)


async def search_expenses(db: AsyncSession, flt: ExpenseSearchFilter) -> Page[Expense]:
    logger.debug("Expense search: %s", flt.model_dump(exclude_defaults=True))
    stmt = EXPENSE_FILTERS.apply(select(Expense), flt)
    return await paginate(db, stmt, flt.page, flt.size)


async def get_expense(db: AsyncSession, expense_id: int) -> Expense:
    result = await db.execute(
        select(Expense).where(Expense.id == expense_id, Expense.active == True)  # noqa: E712
    )
    expense = result.scalar_one_or_none()
    if expense is None:
        raise NotFoundError("Expense", expense_id)
    return expense
