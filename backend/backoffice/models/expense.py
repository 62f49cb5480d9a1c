"""Expense — money spent by the agency (fuel, port fees, supplies, ...).

Only the search side of expenses lives in this service; it uses the same
filter combinator as invoices (see services.expenses).
"""

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Enum as SAEnum, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database import Base
from backoffice.utils.audit import AuditMixin


class ExpenseStatus(str, enum.Enum):
    BROUILLON = "BROUILLON"
    EN_ATTENTE = "EN_ATTENTE"
    VALIDEE = "VALIDEE"
    PAYEE = "PAYEE"
    REJETEE = "REJETEE"
    ANNULEE = "ANNULEE"


class Currency(str, enum.Enum):
    XOF = "XOF"
    EUR = "EUR"
    USD = "USD"


class Expense(AuditMixin, Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(1000))

    # ── Reference data (ids only) ────────────────────────────
    category_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    supplier_id: Mapped[int | None] = mapped_column(Integer, index=True)
    payment_method_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # ── Amounts ──────────────────────────────────────────────
    amount: Mapped[Decimal] = mapped_column(Numeric(21, 2), nullable=False)
    amount_secondary: Mapped[Decimal | None] = mapped_column(Numeric(21, 2))
    exchange_rate: Mapped[Decimal | None] = mapped_column(Numeric(21, 6))
    currency: Mapped[Currency] = mapped_column(
        SAEnum(Currency, native_enum=False, length=10), default=Currency.XOF, nullable=False
    )

    status: Mapped[ExpenseStatus] = mapped_column(
        SAEnum(ExpenseStatus, native_enum=False, length=20),
        default=ExpenseStatus.EN_ATTENTE,
        nullable=False,
        index=True,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
