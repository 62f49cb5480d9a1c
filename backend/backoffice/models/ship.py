"""Ship — the vessel an invoice's services were rendered to."""

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base
from backoffice.utils.audit import AuditMixin


class Ship(AuditMixin, Base):
    __tablename__ = "ships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    imo_number: Mapped[str | None] = mapped_column(String(20), unique=True)
    flag: Mapped[str | None] = mapped_column(String(50))
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
