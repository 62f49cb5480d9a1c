"""Invoice — bill issued to a shipping company for services to one of its ships.

The invoice owns its line items (cascade delete-orphan) and every monetary
field; callers never set amounts, they go through `recalculate()`.

Lifecycle:  BROUILLON → EMISE → PAYEE | ANNULEE | EN_RETARD
            (see services.invoice_status for the full table)

Numbering:  `number` stays NULL while the draft has never been emitted and
            is assigned once (FAC-YYYY-NNNNNN) on the first transition out
            of BROUILLON.  It never changes afterwards.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, Date, Enum as SAEnum, ForeignKey,
    Integer, Numeric, String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from backoffice.database import Base
from backoffice.middleware.exceptions import StateError
from backoffice.services import invoice_status as state
from backoffice.services.amounts import calculate_amounts, line_totals
from backoffice.services.invoice_status import InvoiceStatus
from backoffice.utils.audit import AuditMixin


class Invoice(AuditMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("due_date >= issue_date", name="ck_invoices_due_after_issue"),
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_invoices_tax_rate_range"),
        CheckConstraint("subtotal >= 0 AND tax_amount >= 0 AND total >= 0", name="ck_invoices_amounts_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[str | None] = mapped_column(String(20), unique=True, index=True)

    # ── Billing party / billed asset ─────────────────────────
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    ship_id: Mapped[int] = mapped_column(
        ForeignKey("ships.id"), nullable=False, index=True
    )

    # ── Dates ────────────────────────────────────────────────
    issue_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # ── Amounts (primary currency XOF, secondary EUR) ────────
    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_secondary: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    # ── Status ───────────────────────────────────────────────
    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(InvoiceStatus, native_enum=False, length=20),
        default=InvoiceStatus.BROUILLON,
        nullable=False,
        index=True,
    )

    notes: Mapped[str | None] = mapped_column(String(1000))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # ── Relationships ────────────────────────────────────────
    company = relationship("Company", lazy="selectin")
    ship = relationship("Ship", lazy="selectin")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
        lazy="selectin",
    )

    # ── Guards ───────────────────────────────────────────────

    @validates("status")
    def _validate_status(self, key, value):
        target = InvoiceStatus(value)
        if self.status is not None:
            state.assert_transition(InvoiceStatus(self.status), target)
        return target

    @validates("number")
    def _validate_number(self, key, value):
        if self.number is not None and value != self.number:
            raise StateError(
                f"Invoice number {self.number} is already assigned and cannot change"
            )
        return value

    # ── Derived predicates ───────────────────────────────────

    @property
    def is_editable(self) -> bool:
        return state.is_editable(self.status)

    @property
    def is_deletable(self) -> bool:
        return state.is_deletable(self.status)

    @property
    def is_overdue(self) -> bool:
        return self.is_overdue_on(date.today())

    def is_overdue_on(self, today: date) -> bool:
        return state.is_overdue(self.status, self.due_date, today)

    # ── Mutations ────────────────────────────────────────────

    def replace_line_items(self, items: list["InvoiceLineItem"]) -> None:
        """Swap in a new set of lines; removed lines are deleted as orphans."""
        for position, item in enumerate(items, start=1):
            item.position = position
            item.compute_totals()
        self.line_items = items
        self.recalculate()

    def recalculate(self) -> None:
        """Recompute every monetary field from the current lines and tax rate."""
        amounts = calculate_amounts(self.line_items or [], self.tax_rate)
        self.subtotal = amounts.subtotal
        self.tax_amount = amounts.tax
        self.total = amounts.total
        self.total_secondary = amounts.total_secondary

    def transition_to(self, target: InvoiceStatus) -> InvoiceStatus:
        """Apply a status change through the transition table; return the old status."""
        previous = InvoiceStatus(self.status)
        self.status = target
        return previous

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.number} status={self.status}>"


class InvoiceLineItem(AuditMixin, Base):
    __tablename__ = "invoice_line_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_lines_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    operation_id: Mapped[int] = mapped_column(
        ForeignKey("operations.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    unit_price_secondary: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    # Unrounded products (4 dp); the invoice rounds once over their sum
    total: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    total_secondary: Mapped[Decimal | None] = mapped_column(Numeric(19, 4))

    invoice = relationship("Invoice", back_populates="line_items")
    operation = relationship("Operation", lazy="selectin")

    def compute_totals(self) -> None:
        self.total, self.total_secondary = line_totals(self)
