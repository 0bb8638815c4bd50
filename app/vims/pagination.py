from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class PageRequest:
    page: int = 1  # 1-based
    size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= self.size <= MAX_PAGE_SIZE:
            raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


@dataclass
class Page(Generic[T]):
    items: list[T]
    page: int
    size: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page * self.size < self.total

    def to_dict(self, serialize: Callable[[T], Any]) -> dict[str, Any]:
        return {
            "items": [serialize(i) for i in self.items],
            "page": self.page,
            "size": self.size,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
        }


def paginate(s: Session, stmt: Select, page: PageRequest) -> Page:
    total = s.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    items = list(s.execute(stmt.offset(page.offset).limit(page.size)).unique().scalars().all())
    return Page(items=items, page=page.page, size=page.size, total=int(total))


def fetch(s: Session, stmt: Select, page: PageRequest | None = None) -> list | Page:
    """Full result list when `page` is None, else one Page."""
    if page is None:
        return list(s.execute(stmt).unique().scalars().all())
    return paginate(s, stmt, page)
