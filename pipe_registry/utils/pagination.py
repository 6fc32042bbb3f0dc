"""Page arithmetic for 1-indexed list endpoints."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


def page_offset(page: int, limit: int) -> int:
    """Row offset of the first item on ``page``."""
    return (page - 1) * limit


def total_pages(total_count: int, limit: int) -> int:
    return math.ceil(total_count / limit) if limit > 0 else 0


@dataclass
class Page(Generic[T]):
    """One page of results plus the counters list endpoints report."""

    items: list[T]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return total_pages(self.total_count, self.limit)
