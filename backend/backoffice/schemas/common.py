"""Common schemas used across the application."""

from typing import Generic, TypeVar

from pydantic import BaseModel

from backoffice.utils.filters import Page

T = TypeVar("T")


class PageResponse(BaseModel, Generic[T]):
    """Generic 0-based page wrapper.

    Usage:
        response_model=PageResponse[InvoiceOut]

    Returns:
        {
            "items": [...],
            "total": 150,
            "page": 0,
            "size": 20,
            "total_pages": 8,
            "first": true,
            "last": false,
            "has_next": true,
            "has_previous": false
        }
    """
    items: list[T]
    total: int
    page: int
    size: int
    total_pages: int
    first: bool
    last: bool
    has_next: bool
    has_previous: bool

    @classmethod
    def of(cls, page: Page, items: list) -> "PageResponse":
        return cls(
            items=items,
            total=page.total,
            page=page.page,
            size=page.size,
            total_pages=page.total_pages,
            first=page.first,
            last=page.last,
            has_next=page.has_next,
            has_previous=page.has_previous,
        )


class BatchResult(BaseModel):
    """Outcome of a best-effort batch operation.

    `affected` is the number of invoices actually changed; ids that were
    skipped (not found, wrong status, ...) are listed in `failed_ids`.
    """
    requested: int
    affected: int
    failed_ids: list[int] = []
