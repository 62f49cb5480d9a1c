"""Invoice service — every mutation of an invoice goes through here.

Each operation:
  1. loads the invoice with its relations (NotFoundError if missing or
     soft-deleted),
  2. runs the explicit validation pass and the reference checks,
  3. binds the acting user so the audit listener can stamp the rows,
  4. mutates the aggregate through its own methods (recalculate,
     transition_to), never by assigning amounts or status directly,
  5. records an activity log entry and drops the cached statistics.

Nothing here commits: the request-scoped session (database.get_db) or
the caller (scheduler, CLI) owns the transaction.
"""

import logging
from datetime import date

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.middleware.exceptions import (
    BackofficeException, FieldError, NotFoundError, ReferenceNotFoundError,
    StateError, UniquenessError, ValidationError,
)
from backoffice.models.company import Company
from backoffice.models.invoice import Invoice, InvoiceLineItem
from backoffice.models.operation import Operation
from backoffice.models.ship import Ship
from backoffice.schemas.common import BatchResult
from backoffice.schemas.invoice import (
    InvoiceCreate, InvoiceSearchFilter, InvoiceUpdate, IssuerInfo, LineItemIn,
    PrintData, invoice_out,
)
from backoffice.services import invoice_status as state
from backoffice.services.amounts import InvoiceAmounts, calculate_amounts, to_money
from backoffice.services.invoice_search import invoice_query, search_invoices
from backoffice.services.invoice_status import InvoiceStatus
from backoffice.services.validation import (
    ensure_valid, validate_invoice, validate_line_item, validate_tax_rate,
)
from backoffice.utils.activity import log_activity
from backoffice.utils.audit import SYSTEM_ACTOR, bind_actor
from backoffice.utils.cache import invalidate_cache
from backoffice.utils.filters import Page
from backoffice.utils.numbering import next_invoice_number

logger = logging.getLogger(__name__)

STATS_CACHE_PATTERN = "invoice-stats:*"


# ── Loading ──────────────────────────────────────────────────

async def _load(db: AsyncSession, invoice_id: int, *, include_inactive: bool = False) -> Invoice:
    stmt = (
        invoice_query()
        .where(Invoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    if not include_inactive:
        stmt = stmt.where(Invoice.active == True)  # noqa: E712
    invoice = (await db.execute(stmt)).scalar_one_or_none()
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


async def get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    return await _load(db, invoice_id)


# ── Reference checks ─────────────────────────────────────────

async def _missing_ids(db: AsyncSession, model, ids: set[int]) -> list[int]:
    if not ids:
        return []
    result = await db.execute(
        select(model.id).where(model.id.in_(ids), model.active == True)  # noqa: E712
    )
    found = set(result.scalars().all())
    return sorted(ids - found)


async def validate_references(
    db: AsyncSession,
    company_id: int | None = None,
    ship_id: int | None = None,
    operation_ids: list[int] | None = None,
) -> None:
    """Check that every referenced id resolves to an active record.

    All missing ids are reported together in one ReferenceNotFoundError.
    """
    missing = {
        "company": await _missing_ids(db, Company, {company_id} if company_id is not None else set()),
        "ship": await _missing_ids(db, Ship, {ship_id} if ship_id is not None else set()),
        "operation": await _missing_ids(db, Operation, set(operation_ids or [])),
    }
    if any(missing.values()):
        raise ReferenceNotFoundError(missing)


# ── Helpers ──────────────────────────────────────────────────

def _build_line_items(items: list[dict]) -> list[InvoiceLineItem]:
    return [
        InvoiceLineItem(
            operation_id=item["operation_id"],
            description=item["description"].strip(),
            quantity=to_money(item["quantity"]),
            unit_price=to_money(item["unit_price"]),
            unit_price_secondary=(
                to_money(item["unit_price_secondary"])
                if item.get("unit_price_secondary") is not None else None
            ),
        )
        for item in items
    ]


def _operation_ids(data: dict) -> list[int]:
    return [item["operation_id"] for item in data.get("line_items") or []]


async def _after_mutation(
    db: AsyncSession,
    invoice: Invoice,
    actor_id: str | None,
    action: str,
    summary: str,
    details: dict | None = None,
) -> None:
    await log_activity(
        db, actor_id,
        action=action,
        entity_type="invoice",
        entity_id=invoice.id,
        entity_code=invoice.number,
        summary=summary,
        details=details,
    )
    await invalidate_cache(STATS_CACHE_PATTERN)


# ── Create / update / delete ─────────────────────────────────

async def create_invoice(db: AsyncSession, body: InvoiceCreate, actor_id: str | None = None) -> Invoice:
    """Create a BROUILLON invoice with no number and computed amounts."""
    data = body.model_dump()
    ensure_valid(validate_invoice(data))
    await validate_references(db, data["company_id"], data["ship_id"], _operation_ids(data))

    bind_actor(db, actor_id)
    invoice = Invoice(
        company_id=data["company_id"],
        ship_id=data["ship_id"],
        issue_date=data["issue_date"],
        due_date=data["due_date"],
        tax_rate=to_money(data["tax_rate"]),
        notes=data.get("notes"),
        status=InvoiceStatus.BROUILLON,
        active=True,
    )
    invoice.replace_line_items(_build_line_items(data["line_items"]))
    db.add(invoice)
    await db.flush()

    await _after_mutation(
        db, invoice, actor_id, "created",
        f"Created draft invoice for company {invoice.company_id} ({invoice.total})",
        {"total": str(invoice.total), "line_count": len(invoice.line_items)},
    )
    logger.info("Invoice %s created by %s (total=%s)", invoice.id, actor_id or SYSTEM_ACTOR, invoice.total)
    return await _load(db, invoice.id)


async def update_invoice(
    db: AsyncSession,
    invoice_id: int,
    body: InvoiceUpdate,
    actor_id: str | None = None,
) -> Invoice:
    """Apply a partial update to a BROUILLON invoice.

    Fields absent from the request are left unchanged.  `line_items`
    replaces the whole set; a new set or a new tax rate recomputes every
    amount.
    """
    invoice = await _load(db, invoice_id)
    if not invoice.is_editable:
        raise StateError(
            f"Invoice {invoice_id} cannot be modified in status {invoice.status.value}",
            current_status=invoice.status.value,
        )

    data = body.model_dump(exclude_unset=True)
    ensure_valid(validate_invoice(data, current=invoice))
    await validate_references(db, data.get("company_id"), data.get("ship_id"), _operation_ids(data))

    bind_actor(db, actor_id)
    for field in ("company_id", "ship_id", "issue_date", "due_date", "notes"):
        if field in data:
            setattr(invoice, field, data[field])
    if "tax_rate" in data:
        invoice.tax_rate = to_money(data["tax_rate"])

    if "line_items" in data:
        invoice.replace_line_items(_build_line_items(data["line_items"]))
    elif "tax_rate" in data:
        invoice.recalculate()

    await db.flush()
    await _after_mutation(
        db, invoice, actor_id, "updated",
        f"Updated invoice {invoice.id}",
        {"fields": sorted(data)},
    )
    logger.info("Invoice %s updated by %s: %s", invoice.id, actor_id or SYSTEM_ACTOR, sorted(data))
    return await _load(db, invoice.id)


async def delete_invoice(db: AsyncSession, invoice_id: int, actor_id: str | None = None) -> None:
    """Soft delete (active=false); only BROUILLON and ANNULEE invoices."""
    invoice = await _load(db, invoice_id)
    if not invoice.is_deletable:
        raise StateError(
            f"Invoice {invoice_id} cannot be deleted in status {invoice.status.value}",
            current_status=invoice.status.value,
        )
    bind_actor(db, actor_id)
    invoice.active = False
    await db.flush()
    await _after_mutation(db, invoice, actor_id, "deleted", f"Deleted invoice {invoice.number or invoice.id}")
    logger.info("Invoice %s soft-deleted by %s", invoice_id, actor_id or SYSTEM_ACTOR)


async def toggle_active(
    db: AsyncSession,
    invoice_id: int,
    active: bool,
    actor_id: str | None = None,
) -> Invoice:
    """Restore a soft-deleted invoice, or deactivate one (same rule as delete)."""
    invoice = await _load(db, invoice_id, include_inactive=True)
    if invoice.active == active:
        return invoice
    if not active and not invoice.is_deletable:
        raise StateError(
            f"Invoice {invoice_id} cannot be deactivated in status {invoice.status.value}",
            current_status=invoice.status.value,
        )
    bind_actor(db, actor_id)
    invoice.active = active
    await db.flush()
    await _after_mutation(
        db, invoice, actor_id, "restored" if active else "deleted",
        f"{'Restored' if active else 'Deactivated'} invoice {invoice.number or invoice.id}",
    )
    logger.info("Invoice %s active=%s by %s", invoice_id, active, actor_id or SYSTEM_ACTOR)
    return await _load(db, invoice_id, include_inactive=True)


# ── Status ───────────────────────────────────────────────────

async def change_status(
    db: AsyncSession,
    invoice_id: int,
    new_status: InvoiceStatus,
    comment: str | None = None,
    actor_id: str | None = None,
    today: date | None = None,
) -> Invoice:
    """Move an invoice through the transition table.

    The first step out of BROUILLON assigns the invoice number (year of
    `today`).  A self-transition is a no-op.  The comment is kept in the
    activity log.
    """
    invoice = await _load(db, invoice_id)
    current = InvoiceStatus(invoice.status)
    target = InvoiceStatus(new_status)
    state.assert_transition(current, target)
    if current == target:
        return invoice

    bind_actor(db, actor_id)
    if state.leaves_draft(current, target) and invoice.number is None:
        invoice.number = await next_invoice_number(db, today or date.today())
    invoice.transition_to(target)

    try:
        await db.flush()
    except IntegrityError as exc:
        raise UniquenessError(
            f"Invoice number {invoice.number} was taken concurrently"
        ) from exc

    await _after_mutation(
        db, invoice, actor_id, "status_changed",
        f"{current.value} -> {target.value}",
        {"from": current.value, "to": target.value, "comment": comment},
    )
    logger.info(
        "Invoice %s (%s) %s -> %s by %s",
        invoice.id, invoice.number, current.value, target.value, actor_id or SYSTEM_ACTOR,
    )
    return await _load(db, invoice.id)


async def emit(db: AsyncSession, invoice_id: int, actor_id: str | None = None, comment: str | None = None) -> Invoice:
    return await change_status(db, invoice_id, InvoiceStatus.EMISE, comment, actor_id)


async def mark_as_paid(db: AsyncSession, invoice_id: int, actor_id: str | None = None, comment: str | None = None) -> Invoice:
    return await change_status(db, invoice_id, InvoiceStatus.PAYEE, comment, actor_id)


async def cancel(db: AsyncSession, invoice_id: int, comment: str | None, actor_id: str | None = None) -> Invoice:
    """Cancel an invoice; a reason is mandatory."""
    if not comment or not comment.strip():
        raise ValidationError([FieldError("comment", "A reason is required to cancel an invoice", "missing")])
    return await change_status(db, invoice_id, InvoiceStatus.ANNULEE, comment, actor_id)


async def mark_as_draft(db: AsyncSession, invoice_id: int, actor_id: str | None = None, comment: str | None = None) -> Invoice:
    return await change_status(db, invoice_id, InvoiceStatus.BROUILLON, comment, actor_id)


# ── Batch ────────────────────────────────────────────────────

async def _run_batch(db: AsyncSession, ids: list[int], operation, label: str) -> BatchResult:
    """Apply `operation` to each id in its own savepoint; keep going on failure."""
    unique_ids = list(dict.fromkeys(ids))
    affected = 0
    failed: list[int] = []
    for invoice_id in unique_ids:
        try:
            async with db.begin_nested():
                await operation(invoice_id)
            affected += 1
        except BackofficeException as exc:
            logger.warning("Batch %s skipped invoice %s: %s", label, invoice_id, exc.message)
            failed.append(invoice_id)
        except SQLAlchemyError as exc:
            logger.error("Batch %s: database error on invoice %s: %s", label, invoice_id, exc)
            failed.append(invoice_id)
    logger.info("Batch %s: %d/%d invoices affected", label, affected, len(unique_ids))
    return BatchResult(requested=len(unique_ids), affected=affected, failed_ids=failed)


async def change_status_batch(
    db: AsyncSession,
    ids: list[int],
    new_status: InvoiceStatus,
    comment: str | None = None,
    actor_id: str | None = None,
) -> BatchResult:
    async def operation(invoice_id: int) -> None:
        if new_status == InvoiceStatus.ANNULEE:
            await cancel(db, invoice_id, comment, actor_id)
        else:
            await change_status(db, invoice_id, new_status, comment, actor_id)

    return await _run_batch(db, ids, operation, f"status={InvoiceStatus(new_status).value}")


async def emit_batch(db: AsyncSession, ids: list[int], actor_id: str | None = None) -> BatchResult:
    return await change_status_batch(db, ids, InvoiceStatus.EMISE, actor_id=actor_id)


async def mark_as_paid_batch(db: AsyncSession, ids: list[int], actor_id: str | None = None) -> BatchResult:
    return await change_status_batch(db, ids, InvoiceStatus.PAYEE, actor_id=actor_id)


async def delete_batch(db: AsyncSession, ids: list[int], actor_id: str | None = None) -> BatchResult:
    async def operation(invoice_id: int) -> None:
        await delete_invoice(db, invoice_id, actor_id)

    return await _run_batch(db, ids, operation, "delete")


# ── Overdue sweep ────────────────────────────────────────────

async def update_overdue_invoices(db: AsyncSession, today: date | None = None) -> int:
    """Flag every active EMISE invoice past its due date as EN_RETARD.

    One UPDATE whose WHERE clause re-checks the status, so an invoice paid
    or cancelled concurrently no longer matches and is left alone.
    Running it again the same day updates nothing.
    """
    today = today or date.today()
    result = await db.execute(
        update(Invoice)
        .where(
            Invoice.status == InvoiceStatus.EMISE,
            Invoice.due_date < today,
            Invoice.active == True,  # noqa: E712
        )
        .values(status=InvoiceStatus.EN_RETARD, updated_by=SYSTEM_ACTOR)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    if count:
        await log_activity(
            db, SYSTEM_ACTOR,
            action="overdue_sweep",
            entity_type="invoice",
            summary=f"{count} invoice(s) marked {InvoiceStatus.EN_RETARD.value}",
            details={"run_date": today.isoformat(), "updated": count},
        )
        await invalidate_cache(STATS_CACHE_PATTERN)
    logger.info("Overdue sweep for %s: %d invoice(s) updated", today, count)
    return count


# ── Reads ────────────────────────────────────────────────────

async def list_invoices(db: AsyncSession, page: int = 0, size: int | None = None) -> Page[Invoice]:
    """Active invoices, most recent issue date first."""
    return await search_invoices(
        db, InvoiceSearchFilter(page=page, size=size or settings.default_page_size)
    )


async def find_pending(db: AsyncSession) -> list[Invoice]:
    """Drafts waiting to be emitted."""
    result = await db.execute(
        invoice_query()
        .where(Invoice.active == True, Invoice.status == InvoiceStatus.BROUILLON)  # noqa: E712
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
    )
    return list(result.scalars().all())


async def find_overdue(db: AsyncSession, today: date | None = None) -> list[Invoice]:
    """Invoices flagged EN_RETARD plus those past due but not swept yet."""
    today = today or date.today()
    result = await db.execute(
        invoice_query()
        .where(
            Invoice.active == True,  # noqa: E712
            (Invoice.status == InvoiceStatus.EN_RETARD)
            | (
                Invoice.status.in_(list(state.OVERDUE_CANDIDATE_STATUSES))
                & (Invoice.due_date < today)
            ),
        )
        .order_by(Invoice.due_date.asc(), Invoice.id.asc())
    )
    return list(result.scalars().all())


async def recent_invoices(db: AsyncSession, limit: int = 10) -> list[Invoice]:
    result = await db.execute(
        invoice_query()
        .where(Invoice.active == True)  # noqa: E712
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ── Utilities ────────────────────────────────────────────────

async def is_number_unique(db: AsyncSession, number: str, exclude_id: int | None = None) -> bool:
    clause = Invoice.number == number
    if exclude_id is not None:
        clause = clause & (Invoice.id != exclude_id)
    return not await db.scalar(select(exists().where(clause)))


def preview_amounts(lines: list[LineItemIn], tax_rate) -> InvoiceAmounts:
    """Validated amount computation for a set of lines that is not saved."""
    errors = validate_tax_rate(tax_rate)
    for index, line in enumerate(lines):
        errors.extend(validate_line_item(line.model_dump(), prefix=f"line_items[{index}]"))
    ensure_valid(errors)
    return calculate_amounts(lines, tax_rate)


async def get_print_data(db: AsyncSession, invoice_id: int) -> PrintData:
    invoice = await _load(db, invoice_id)
    return PrintData(
        invoice=invoice_out(invoice),
        issuer=IssuerInfo(
            name=settings.company_name,
            address=settings.company_address,
            phone=settings.company_phone,
            email=settings.company_email,
            ninea=settings.company_ninea,
            rccm=settings.company_rccm,
        ),
    )
