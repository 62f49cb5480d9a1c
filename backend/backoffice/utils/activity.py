"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, actor_id, action="status_changed", entity_type="invoice",
        entity_id=invoice.id, entity_code=invoice.number,
        summary="EMISE -> PAYEE",
        details={"comment": "Virement reçu"},
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.activity_log import ActivityLog
from backoffice.utils.audit import SYSTEM_ACTOR


async def log_activity(
    db: AsyncSession,
    actor_id: str | None,
    *,
    action: str,
    entity_type: str,
    entity_id: int | str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        user_id=actor_id or SYSTEM_ACTOR,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_code=entity_code,
        summary=summary,
        details=details,
    )
    db.add(entry)
