"""Invoice endpoints.

Endpoints:
    GET    /api/invoices                              Search (query params)
    POST   /api/invoices/search                       Search (JSON filter)
    GET    /api/invoices/pending                      Drafts awaiting emission
    GET    /api/invoices/overdue                      Past-due invoices
    GET    /api/invoices/recent                       Latest created invoices
    GET    /api/invoices/statistics                   Overall statistics
    GET    /api/invoices/statistics/period            Statistics for a date range
    GET    /api/invoices/statistics/monthly           Monthly evolution
    GET    /api/invoices/statistics/top-companies     Companies by paid revenue
    GET    /api/invoices/statistics/unpaid-companies  Companies with unpaid invoices
    GET    /api/invoices/statistics/revenue           Paid revenue for a date range
    GET    /api/invoices/number-available             Invoice number uniqueness check
    POST   /api/invoices/calculate                    Amount preview (nothing saved)
    POST   /api/invoices/overdue/sweep                Run the overdue sweep now
    POST   /api/invoices/batch/status                 Batch status change
    POST   /api/invoices/batch/delete                 Batch soft delete
    POST   /api/invoices                              Create a draft
    GET    /api/invoices/{id}                         Detail
    GET    /api/invoices/{id}/print                   Detail + issuer block
    PATCH  /api/invoices/{id}                         Partial update (drafts only)
    DELETE /api/invoices/{id}                         Soft delete
    PATCH  /api/invoices/{id}/active                  Restore / deactivate
    POST   /api/invoices/{id}/status                  Status transition
    POST   /api/invoices/{id}/emit|pay|cancel|draft   Transition shortcuts
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database import get_db
from backoffice.deps import get_actor_id
from backoffice.schemas.common import BatchResult, PageResponse
from backoffice.schemas.invoice import (
    ActiveToggle, AmountsPreview, AmountsPreviewRequest, BatchIdsRequest,
    BatchStatusRequest, CommentRequest, CompanyStats, InvoiceCreate, InvoiceOut,
    InvoiceSearchFilter, InvoiceStatistics, InvoiceUpdate, MonthlyStats,
    PrintData, RevenueResponse, StatusChangeRequest, SweepResult, invoice_out,
)
from backoffice.services import invoice_stats, invoices as service
from backoffice.services.invoice_search import search_invoices

router = APIRouter()


# ── Search ───────────────────────────────────────────────────

@router.get("/", response_model=PageResponse[InvoiceOut])
async def list_invoices(
    flt: Annotated[InvoiceSearchFilter, Query()],
    db: AsyncSession = Depends(get_db),
):
    """Paged search; every filter is optional.  Soft-deleted invoices only with active=false."""
    page = await search_invoices(db, flt)
    return PageResponse.of(page, [invoice_out(i) for i in page.items])


@router.post("/search", response_model=PageResponse[InvoiceOut])
async def search(
    flt: InvoiceSearchFilter,
    db: AsyncSession = Depends(get_db),
):
    page = await search_invoices(db, flt)
    return PageResponse.of(page, [invoice_out(i) for i in page.items])


@router.get("/pending", response_model=list[InvoiceOut])
async def pending_invoices(db: AsyncSession = Depends(get_db)):
    return [invoice_out(i) for i in await service.find_pending(db)]


@router.get("/overdue", response_model=list[InvoiceOut])
async def overdue_invoices(db: AsyncSession = Depends(get_db)):
    return [invoice_out(i) for i in await service.find_overdue(db)]


@router.get("/recent", response_model=list[InvoiceOut])
async def recent_invoices(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return [invoice_out(i) for i in await service.recent_invoices(db, limit)]


# ── Statistics ───────────────────────────────────────────────

@router.get("/statistics", response_model=InvoiceStatistics)
async def statistics(db: AsyncSession = Depends(get_db)):
    return await invoice_stats.get_statistics(db, today=date.today())


@router.get("/statistics/period", response_model=InvoiceStatistics)
async def period_statistics(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    return await invoice_stats.get_period_statistics(
        db, start_date=start_date, end_date=end_date, today=date.today()
    )


@router.get("/statistics/monthly", response_model=list[MonthlyStats])
async def monthly_statistics(
    months: int = Query(12, ge=1, le=60),
    db: AsyncSession = Depends(get_db),
):
    return await invoice_stats.monthly_evolution(db, months=months, today=date.today())


@router.get("/statistics/top-companies", response_model=list[CompanyStats])
async def top_companies(
    limit: int = Query(10, ge=1, le=100),
    start_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Companies ranked by paid revenue since `start_date` (default: one year ago)."""
    return await invoice_stats.top_companies(
        db,
        limit=limit,
        start_date=start_date or invoice_stats.default_top_companies_start(),
        paid_only=True,
    )


@router.get("/statistics/unpaid-companies", response_model=list[CompanyStats])
async def unpaid_companies(db: AsyncSession = Depends(get_db)):
    return await invoice_stats.companies_with_unpaid_invoices(db)


@router.get("/statistics/revenue", response_model=RevenueResponse)
async def revenue(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    return await invoice_stats.revenue_for_period(db, start_date=start_date, end_date=end_date)


# ── Utilities ────────────────────────────────────────────────

@router.get("/number-available")
async def number_available(
    number: str = Query(..., min_length=1, max_length=20),
    exclude_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return {"number": number, "available": await service.is_number_unique(db, number, exclude_id)}


@router.post("/calculate", response_model=AmountsPreview)
async def calculate(body: AmountsPreviewRequest):
    """Compute amounts for unsaved lines (live preview in the invoice form)."""
    amounts = service.preview_amounts(body.line_items, body.tax_rate)
    return AmountsPreview(
        subtotal=amounts.subtotal,
        tax_amount=amounts.tax,
        total=amounts.total,
        total_secondary=amounts.total_secondary,
    )


@router.post("/overdue/sweep", response_model=SweepResult)
async def sweep_overdue(
    run_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Run the overdue sweep immediately (normally run by the daily scheduler)."""
    run_date = run_date or date.today()
    updated = await service.update_overdue_invoices(db, run_date)
    return SweepResult(run_date=run_date, updated=updated)


# ── Batch ────────────────────────────────────────────────────

@router.post("/batch/status", response_model=BatchResult)
async def batch_status(
    body: BatchStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return await service.change_status_batch(db, body.ids, body.status, body.comment, actor_id)


@router.post("/batch/delete", response_model=BatchResult)
async def batch_delete(
    body: BatchIdsRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return await service.delete_batch(db, body.ids, actor_id)


# ── CRUD ─────────────────────────────────────────────────────

@router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """Create a draft (BROUILLON) invoice; the number is assigned on emission."""
    return invoice_out(await service.create_invoice(db, body, actor_id))


@router.get("/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(invoice_id: int, db: AsyncSession = Depends(get_db)):
    return invoice_out(await service.get_invoice(db, invoice_id))


@router.get("/{invoice_id}/print", response_model=PrintData)
async def print_data(invoice_id: int, db: AsyncSession = Depends(get_db)):
    return await service.get_print_data(db, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceOut)
async def update_invoice(
    invoice_id: int,
    body: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return invoice_out(await service.update_invoice(db, invoice_id, body, actor_id))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    await service.delete_invoice(db, invoice_id, actor_id)


@router.patch("/{invoice_id}/active", response_model=InvoiceOut)
async def toggle_active(
    invoice_id: int,
    body: ActiveToggle,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return invoice_out(await service.toggle_active(db, invoice_id, body.active, actor_id))


# ── Status ───────────────────────────────────────────────────

@router.post("/{invoice_id}/status", response_model=InvoiceOut)
async def change_status(
    invoice_id: int,
    body: StatusChangeRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return invoice_out(
        await service.change_status(db, invoice_id, body.status, body.comment, actor_id)
    )


@router.post("/{invoice_id}/emit", response_model=InvoiceOut)
async def emit(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return invoice_out(await service.emit(db, invoice_id, actor_id))


@router.post("/{invoice_id}/pay", response_model=InvoiceOut)
async def mark_as_paid(
    invoice_id: int,
    body: CommentRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    comment = body.comment if body else None
    return invoice_out(await service.mark_as_paid(db, invoice_id, actor_id, comment))


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
async def cancel(
    invoice_id: int,
    body: CommentRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """Cancel with a mandatory reason (`comment`)."""
    return invoice_out(await service.cancel(db, invoice_id, body.comment, actor_id))


@router.post("/{invoice_id}/draft", response_model=InvoiceOut)
async def mark_as_draft(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    """Reopen a cancelled invoice as a draft (keeps its number)."""
    return invoice_out(await service.mark_as_draft(db, invoice_id, actor_id))
