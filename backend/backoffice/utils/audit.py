"""Audit stamping for created/updated metadata.

Business code never writes audit columns.  The service layer binds the
acting user to the session once per operation:

    bind_actor(db, actor_id)

and a `before_flush` listener stamps `created_by` / `updated_by` on every
AuditMixin row that is inserted or modified in that flush.  Timestamps
come from the column defaults.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, Session, mapped_column

ACTOR_KEY = "audit_actor_id"
SYSTEM_ACTOR = "system"


class AuditMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    created_by: Mapped[str | None] = mapped_column(String(36))
    updated_by: Mapped[str | None] = mapped_column(String(36))


def bind_actor(db: AsyncSession, actor_id: str | None) -> None:
    """Record who is acting for every flush of this session."""
    db.sync_session.info[ACTOR_KEY] = actor_id or SYSTEM_ACTOR


def current_actor(db: AsyncSession) -> str:
    return db.sync_session.info.get(ACTOR_KEY, SYSTEM_ACTOR)


@event.listens_for(Session, "before_flush")
def _stamp_audit_columns(session: Session, flush_context, instances) -> None:
    actor = session.info.get(ACTOR_KEY, SYSTEM_ACTOR)
    for obj in session.new:
        if isinstance(obj, AuditMixin):
            obj.created_by = obj.created_by or actor
            obj.updated_by = actor
    for obj in session.dirty:
        if isinstance(obj, AuditMixin) and session.is_modified(obj, include_collections=False):
            obj.updated_by = actor
