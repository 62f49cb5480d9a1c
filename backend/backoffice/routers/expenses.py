"""Expense search endpoints.

Endpoints:
    GET  /api/expenses          Search (query params)
    POST /api/expenses/search   Search (JSON filter)
    GET  /api/expenses/{id}     Detail
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database import get_db
from backoffice.schemas.common import PageResponse
from backoffice.schemas.expense import ExpenseOut, ExpenseSearchFilter
from backoffice.services.expenses import get_expense, search_expenses

router = APIRouter()


@router.get("/", response_model=PageResponse[ExpenseOut])
async def list_expenses(
    flt: Annotated[ExpenseSearchFilter, Query()],
    db: AsyncSession = Depends(get_db),
):
    page = await search_expenses(db, flt)
    return PageResponse.of(page, [ExpenseOut.model_validate(e) for e in page.items])


@router.post("/search", response_model=PageResponse[ExpenseOut])
async def search(flt: ExpenseSearchFilter, db: AsyncSession = Depends(get_db)):
    page = await search_expenses(db, flt)
    return PageResponse.of(page, [ExpenseOut.model_validate(e) for e in page.items])


@router.get("/{expense_id}", response_model=ExpenseOut)
async def get_one(expense_id: int, db: AsyncSession = Depends(get_db)):
    return ExpenseOut.model_validate(await get_expense(db, expense_id))
