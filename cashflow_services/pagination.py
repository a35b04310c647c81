"""Page/limit pagination shared by the list endpoints."""

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

from cashflow_kernel.exceptions import ValidationError

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[T]):
    data: list[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def check_page(page: int, limit: int) -> tuple[int, int]:
    """Validate page/limit and return (offset, limit)."""
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")
    return (page - 1) * limit, limit
