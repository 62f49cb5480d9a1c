"""Tests for the field-driven filter combinator."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backoffice.middleware.exceptions import ValidationError
from backoffice.schemas.invoice import InvoiceSearchFilter
from backoffice.services.invoice_search import INVOICE_FILTERS
from backoffice.utils.filters import Page, bounded_page


def sql(clause) -> str:
    return str(clause.compile(compile_kwargs={"literal_binds": True}))


@pytest.mark.unit
class TestFilterSpec:

    def test_empty_filter_only_constrains_active_flag(self):
        clauses = INVOICE_FILTERS.clauses(InvoiceSearchFilter())
        assert len(clauses) == 1
        assert "invoices.active" in sql(clauses[0])
        assert "true" in sql(clauses[0]).lower() or "1" in sql(clauses[0])

    def test_inactive_rows_on_request(self):
        default = sql(INVOICE_FILTERS.clauses(InvoiceSearchFilter())[0])
        inactive = sql(INVOICE_FILTERS.clauses(InvoiceSearchFilter(active=False))[0])
        assert "invoices.active" in inactive
        assert inactive != default

    def test_unset_and_blank_fields_add_nothing(self):
        flt = InvoiceSearchFilter(search="   ", status=None, min_amount=None)
        assert len(INVOICE_FILTERS.clauses(flt)) == 1
        assert INVOICE_FILTERS.joins(flt) == []

    def test_each_set_field_adds_one_clause(self):
        flt = InvoiceSearchFilter(
            company_id=1,
            ship_id=2,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            min_amount=Decimal("100000"),
            max_amount=Decimal("500000"),
            month=3,
            year=2024,
        )
        assert len(INVOICE_FILTERS.clauses(flt)) == 9

    def test_amount_range_is_inclusive(self):
        flt = InvoiceSearchFilter(min_amount=Decimal("100000"), max_amount=Decimal("500000"))
        rendered = [sql(c) for c in INVOICE_FILTERS.clauses(flt)[1:]]
        assert rendered == ["invoices.total >= 100000", "invoices.total <= 500000"]

    def test_single_bound_is_half_open(self):
        clauses = INVOICE_FILTERS.clauses(InvoiceSearchFilter(min_amount=Decimal("100")))
        assert len(clauses) == 2
        assert ">=" in sql(clauses[1])

    def test_text_search_joins_company_and_ship(self):
        flt = InvoiceSearchFilter(search="dakar")
        joined = [target.__tablename__ for target, _ in INVOICE_FILTERS.joins(flt)]
        assert joined == ["companies", "ships"]
        rendered = sql(INVOICE_FILTERS.clauses(flt)[1]).lower()
        for column in ("invoices.number", "invoices.notes", "companies.name", "ships.name"):
            assert column in rendered

    def test_no_join_without_search_term(self):
        assert INVOICE_FILTERS.joins(InvoiceSearchFilter(company_id=1)) == []

    def test_unknown_sort_field_is_rejected(self):
        flt = SimpleNamespace(sort_by="password", sort_direction="asc", active=None)
        with pytest.raises(ValidationError) as exc_info:
            INVOICE_FILTERS.order_by(flt)
        assert exc_info.value.fields == ["sort_by"]

    def test_sort_direction_with_tiebreaker(self):
        asc = INVOICE_FILTERS.order_by(InvoiceSearchFilter(sort_by="total", sort_direction="asc"))
        assert [sql(c) for c in asc] == ["invoices.total ASC", "invoices.id ASC"]

        desc = INVOICE_FILTERS.order_by(InvoiceSearchFilter())
        assert [sql(c) for c in desc] == ["invoices.issue_date DESC", "invoices.id DESC"]


@pytest.mark.unit
class TestPagination:

    def test_bounds(self):
        assert bounded_page(None, None) == (0, 20)
        assert bounded_page(-3, 0) == (0, 20)
        assert bounded_page(2, 10_000) == (2, 200)

    def test_page_flags(self):
        page = Page(items=[], total=45, page=1, size=20)
        assert page.total_pages == 3
        assert not page.first and not page.last
        assert page.has_next and page.has_previous

        last = Page(items=[], total=45, page=2, size=20)
        assert last.last and not last.has_next

    def test_empty_result(self):
        page = Page(items=[], total=0, page=0, size=20)
        assert page.total_pages == 0
        assert page.first and page.last
        assert not page.has_next and not page.has_previous
