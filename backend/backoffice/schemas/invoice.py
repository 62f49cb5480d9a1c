"""Pydantic schemas for invoices, their line items, search and statistics.

Request schemas only describe shapes and types; business rules (positive
quantities, tax rate bounds, date ordering, ...) are checked by
services.validation so that they produce the same field-level errors
whether the call comes from HTTP, the CLI or another service.

Monetary values are Decimals and serialize as strings in JSON.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from backoffice.models.invoice import Invoice, InvoiceLineItem
from backoffice.services.amounts import to_money
from backoffice.services.invoice_status import InvoiceStatus


# ── Line items ───────────────────────────────────────────────

class LineItemIn(BaseModel):
    operation_id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit_price_secondary: Decimal | None = None


class LineItemOut(BaseModel):
    id: int
    position: int
    operation_id: int
    operation_name: str | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit_price_secondary: Decimal | None = None
    total: Decimal
    total_secondary: Decimal | None = None


# ── Create / update ──────────────────────────────────────────

class InvoiceCreate(BaseModel):
    company_id: int
    ship_id: int
    issue_date: date
    due_date: date
    tax_rate: Decimal = Decimal("18.00")
    notes: str | None = None
    line_items: list[LineItemIn]


class InvoiceUpdate(BaseModel):
    """Partial update: only the fields present in the request are applied.

    `line_items`, when present, replaces the whole set.
    """
    company_id: int | None = None
    ship_id: int | None = None
    issue_date: date | None = None
    due_date: date | None = None
    tax_rate: Decimal | None = None
    notes: str | None = None
    line_items: list[LineItemIn] | None = None


class StatusChangeRequest(BaseModel):
    status: InvoiceStatus
    comment: str | None = None


class CommentRequest(BaseModel):
    comment: str | None = None


class ActiveToggle(BaseModel):
    active: bool


# ── Batch ────────────────────────────────────────────────────

class BatchStatusRequest(BaseModel):
    ids: list[int] = Field(min_length=1)
    status: InvoiceStatus
    comment: str | None = None


class BatchIdsRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


# ── Amount preview ───────────────────────────────────────────

class AmountsPreviewRequest(BaseModel):
    tax_rate: Decimal = Decimal("18.00")
    line_items: list[LineItemIn] = []


class AmountsPreview(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    total_secondary: Decimal | None = None


# ── Response ─────────────────────────────────────────────────

class InvoiceOut(BaseModel):
    id: int
    number: str | None = None
    company_id: int
    company_name: str | None = None
    ship_id: int
    ship_name: str | None = None
    issue_date: date
    due_date: date
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    total_secondary: Decimal | None = None
    status: InvoiceStatus
    status_label: str
    notes: str | None = None
    active: bool
    is_overdue: bool
    is_editable: bool
    is_deletable: bool
    line_items: list[LineItemOut] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None


def _money(value: Decimal | None) -> Decimal | None:
    return to_money(value) if value is not None else None


def line_item_out(item: InvoiceLineItem) -> LineItemOut:
    return LineItemOut(
        id=item.id,
        position=item.position,
        operation_id=item.operation_id,
        operation_name=item.operation.name if item.operation else None,
        description=item.description,
        quantity=item.quantity,
        unit_price=_money(item.unit_price),
        unit_price_secondary=_money(item.unit_price_secondary),
        total=_money(item.total),
        total_secondary=_money(item.total_secondary),
    )


def invoice_out(invoice: Invoice, today: date | None = None) -> InvoiceOut:
    """Build the API shape of an invoice whose relations are loaded."""
    status = InvoiceStatus(invoice.status)
    return InvoiceOut(
        id=invoice.id,
        number=invoice.number,
        company_id=invoice.company_id,
        company_name=invoice.company.name if invoice.company else None,
        ship_id=invoice.ship_id,
        ship_name=invoice.ship.name if invoice.ship else None,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        subtotal=_money(invoice.subtotal),
        tax_rate=_money(invoice.tax_rate),
        tax_amount=_money(invoice.tax_amount),
        total=_money(invoice.total),
        total_secondary=_money(invoice.total_secondary),
        status=status,
        status_label=status.label,
        notes=invoice.notes,
        active=invoice.active,
        is_overdue=invoice.is_overdue_on(today or date.today()),
        is_editable=invoice.is_editable,
        is_deletable=invoice.is_deletable,
        line_items=[line_item_out(item) for item in invoice.line_items],
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        created_by=invoice.created_by,
        updated_by=invoice.updated_by,
    )


# ── Search ───────────────────────────────────────────────────

InvoiceSortField = Literal[
    "id", "number", "issue_date", "due_date", "total", "status", "created_at",
]


class InvoiceSearchFilter(BaseModel):
    """All fields optional; an unset field adds no constraint."""
    search: str | None = None
    company_id: int | None = None
    ship_id: int | None = None
    status: InvoiceStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    month: int | None = Field(None, ge=1, le=12)
    year: int | None = Field(None, ge=2000, le=2100)
    active: bool | None = None
    page: int = Field(0, ge=0)
    size: int = Field(20, ge=1, le=200)
    sort_by: InvoiceSortField = "issue_date"
    sort_direction: Literal["asc", "desc"] = "desc"


# ── Statistics ───────────────────────────────────────────────

class StatusCount(BaseModel):
    status: InvoiceStatus
    count: int
    total: Decimal


class MonthlyStats(BaseModel):
    year: int
    month: int
    count: int
    total: Decimal
    total_secondary: Decimal


class CompanyStats(BaseModel):
    company_id: int
    company_name: str
    count: int
    total: Decimal
    total_secondary: Decimal


class InvoiceStatistics(BaseModel):
    total_invoices: int
    total_amount: Decimal
    total_amount_secondary: Decimal
    draft_count: int
    paid_count: int
    overdue_count: int
    this_month_count: int = 0
    by_status: list[StatusCount] = []
    monthly: list[MonthlyStats] = []
    top_companies: list[CompanyStats] = []


class RevenueResponse(BaseModel):
    start_date: date
    end_date: date
    revenue: Decimal


class SweepResult(BaseModel):
    run_date: date
    updated: int


# ── Print ────────────────────────────────────────────────────

class IssuerInfo(BaseModel):
    name: str
    address: str
    phone: str
    email: str
    ninea: str
    rccm: str


class PrintData(BaseModel):
    invoice: InvoiceOut
    issuer: IssuerInfo
