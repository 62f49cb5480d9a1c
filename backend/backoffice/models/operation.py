"""Operation — a billable maritime service (pilotage, towage, berthing, ...)."""

from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base
from backoffice.utils.audit import AuditMixin


class Operation(AuditMixin, Base):
    __tablename__ = "operations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Catalogue prices; invoices copy them onto line items at billing time
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    unit_price_secondary: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
