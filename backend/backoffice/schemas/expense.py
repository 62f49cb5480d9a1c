"""Pydantic schemas for expense search."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from backoffice.models.expense import Currency, ExpenseStatus


class ExpenseOut(BaseModel):
    id: int
    number: str
    title: str
    description: str | None = None
    category_id: int
    supplier_id: int | None = None
    payment_method_id: int
    expense_date: date
    amount: Decimal
    amount_secondary: Decimal | None = None
    exchange_rate: Decimal | None = None
    currency: Currency
    status: ExpenseStatus
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ExpenseSearchFilter(BaseModel):
    search: str | None = None
    category_id: int | None = None
    supplier_id: int | None = None
    payment_method_id: int | None = None
    status: ExpenseStatus | None = None
    currency: Currency | None = None
    start_date: date | None = None
    end_date: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    month: int | None = Field(None, ge=1, le=12)
    year: int | None = Field(None, ge=2000, le=2100)
    active: bool | None = None
    page: int = Field(0, ge=0)
    size: int = Field(20, ge=1, le=200)
    sort_by: Literal["id", "number", "title", "expense_date", "amount", "status", "created_at"] = "expense_date"
    sort_direction: Literal["asc", "desc"] = "desc"
