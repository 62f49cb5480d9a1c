"""Field-driven query filters.

A FilterSpec is an ordered list of Criteria, each mapping one optional
attribute of a filter object to a SQL clause factory.  Building a query
ANDs together the clause of every attribute that is set; unset attributes
(None, or a blank string) add no constraint.  The soft-delete column is
always constrained: `active = true` unless the filter explicitly asks for
`active = false`.

    INVOICE_FILTERS = FilterSpec(
        active_column=Invoice.active,
        criteria=[
            Criterion("company_id", equals(Invoice.company_id)),
            Criterion("start_date", at_least(Invoice.issue_date)),
            Criterion("search", text_search(Invoice.number, Company.name),
                      joins=((Company, Invoice.company_id == Company.id),)),
        ],
        sort_columns={"issue_date": Invoice.issue_date},
        default_sort="issue_date",
    )

    stmt = INVOICE_FILTERS.apply(select(Invoice), flt)
    page = await paginate(db, stmt, flt.page, flt.size)

Ranges are built from two criteria on the same column (`at_least` and
`at_most`), which makes them inclusive when both bounds are present and
half-open when only one is.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Sequence, TypeVar

from sqlalchemy import Select, and_, extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.middleware.exceptions import FieldError, ValidationError

T = TypeVar("T")

ClauseFactory = Callable[[Any], Any]


# ── Clause factories ─────────────────────────────────────────

def equals(column) -> ClauseFactory:
    return lambda value: column == value


def at_least(column) -> ClauseFactory:
    return lambda value: column >= value


def at_most(column) -> ClauseFactory:
    return lambda value: column <= value


def month_of(column) -> ClauseFactory:
    return lambda value: extract("month", column) == value


def year_of(column) -> ClauseFactory:
    return lambda value: extract("year", column) == value


def text_search(*columns) -> ClauseFactory:
    """Case-insensitive substring match on any of `columns`."""
    def factory(term: str):
        term = term.strip()
        return or_(*(col.icontains(term, autoescape=True) for col in columns))
    return factory


# ── Filter set ───────────────────────────────────────────────

@dataclass(frozen=True)
class Criterion:
    field: str
    clause: ClauseFactory
    # (target, onclause) pairs outer-joined only when this criterion is used
    joins: tuple = ()


def _is_set(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


@dataclass
class FilterSpec:
    active_column: Any
    criteria: list[Criterion]
    sort_columns: dict[str, Any] = field(default_factory=dict)
    default_sort: str | None = None
    tiebreaker: Any = None

    def clauses(self, flt) -> list:
        """Every clause contributed by `flt`, the active flag first."""
        active = getattr(flt, "active", None)
        result = [self.active_column == (True if active is None else bool(active))]
        for criterion in self.criteria:
            value = getattr(flt, criterion.field, None)
            if _is_set(value):
                result.append(criterion.clause(value))
        return result

    def joins(self, flt) -> list[tuple]:
        seen: list[tuple] = []
        for criterion in self.criteria:
            if _is_set(getattr(flt, criterion.field, None)):
                for join in criterion.joins:
                    if all(join[0] is not s[0] for s in seen):
                        seen.append(join)
        return seen

    def build(self, flt):
        """The AND of all clauses for `flt`, usable in any WHERE."""
        return and_(*self.clauses(flt))

    def order_by(self, flt) -> list:
        sort_by = getattr(flt, "sort_by", None) or self.default_sort
        if sort_by is None:
            return []
        if sort_by not in self.sort_columns:
            raise ValidationError([
                FieldError(
                    "sort_by",
                    f"Cannot sort by '{sort_by}'; expected one of "
                    f"{', '.join(sorted(self.sort_columns))}",
                )
            ])
        column = self.sort_columns[sort_by]
        direction = (getattr(flt, "sort_direction", None) or "desc").lower()
        ordering = [column.asc() if direction == "asc" else column.desc()]
        if self.tiebreaker is not None:
            ordering.append(self.tiebreaker.asc() if direction == "asc" else self.tiebreaker.desc())
        return ordering

    def apply(self, stmt: Select, flt, *, sort: bool = True) -> Select:
        for target, onclause in self.joins(flt):
            stmt = stmt.outerjoin(target, onclause)
        stmt = stmt.where(self.build(flt))
        if sort:
            stmt = stmt.order_by(*self.order_by(flt))
        return stmt


# ── Pagination ───────────────────────────────────────────────

@dataclass
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.size) if self.size else 0

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


def bounded_page(page: int | None, size: int | None) -> tuple[int, int]:
    """Clamp a 0-based page and a page size to the configured limits."""
    page = max(page or 0, 0)
    size = size or settings.default_page_size
    size = min(max(size, 1), settings.max_page_size)
    return page, size


async def paginate(db: AsyncSession, stmt: Select, page: int | None, size: int | None) -> Page:
    page, size = bounded_page(page, size)
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar() or 0
    result = await db.execute(stmt.offset(page * size).limit(size))
    return Page(items=list(result.scalars().unique().all()), total=total, page=page, size=size)
