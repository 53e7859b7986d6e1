"""Page -- a slice of an ordered result set plus its navigation metadata."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from billing_kernel.exceptions import ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


def paginate(
    rows: Sequence[T],
    page: int = 1,
    limit: int | None = None,
    *,
    default_limit: int = 10,
    max_limit: int = 100,
) -> Page[T]:
    """
    Cut ``rows`` into the requested 1-based page.

    ``limit`` above ``max_limit`` is clamped; a page past the end returns
    no items.
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError(f"page must be a positive integer, got {page!r}", field="page")
    size = default_limit if limit is None else limit
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise ValidationError(f"limit must be a positive integer, got {limit!r}", field="limit")
    size = min(size, max_limit)

    total = len(rows)
    total_pages = math.ceil(total / size) if total else 0
    start = (page - 1) * size
    return Page(
        items=tuple(rows[start:start + size]),
        total=total,
        page=page,
        limit=size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
