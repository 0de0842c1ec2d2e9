"""
Shared repository plumbing for usufruit.

A repository wraps one caller-owned session and speaks in pydantic models:
ORM rows never leave this package. Reads go through ``safe_query`` and writes
through ``safe_commit``, so driver failures surface as ``DependencyError`` or
``ConflictError``.

Writes are domain specific (ids, secret keys, deletion dispositions) and live
in the concrete repositories; this module only carries id generation, paging
and lookup by id.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from ..errors import InvalidInputError
from .schema import Base
from .session import safe_query

RowT = TypeVar("RowT", bound=Base)
ItemT = TypeVar("ItemT", bound=BaseModel)

MAX_PAGE_SIZE = 100


def generate_id(prefix: str) -> str:
    """A prefixed opaque id such as ``book_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class PaginationParams(BaseModel):
    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        """
        Raises:
            InvalidInputError: If the page is below 1 or the size is out of range
        """
        if self.page < 1:
            raise InvalidInputError("page must be at least 1")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise InvalidInputError(f"page size must be between 1 and {MAX_PAGE_SIZE}")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    """One page of results plus the numbers a client needs to page on."""

    items: list[ItemT]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list[ItemT], total: int, pagination: PaginationParams
    ) -> "PaginatedResponse[ItemT]":
        pages = -(-total // pagination.page_size)
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=pages,
            has_next=pagination.page < pages,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[RowT, ItemT]):
    """Lookup by id and paging for one table."""

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[RowT]:
        """ORM class of the table."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ItemT]:
        """Pydantic model rows are converted to."""

    def _to_response_model(self, row: RowT) -> ItemT:
        return self.response_schema.model_validate(row, from_attributes=True)

    def _get_db_obj(self, id: str) -> RowT | None:
        table = self.model_class.__name__
        return safe_query(
            self.session,
            lambda s: s.get(self.model_class, str(id)),
            f"Loading {table} {id}",
        )

    def get_by_id(self, id: str) -> ItemT | None:
        """
        The record with this id, or None.

        Raises:
            DependencyError: If the store is unavailable
        """
        row = self._get_db_obj(id)
        return None if row is None else self._to_response_model(row)

    def _paginate(
        self, query: Select, pagination: PaginationParams | None
    ) -> PaginatedResponse[ItemT]:
        """Count and slice a query that is already filtered and ordered."""
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        counted = select(func.count()).select_from(query.order_by(None).subquery())
        total = safe_query(self.session, lambda s: s.scalar(counted), "Counting results") or 0

        sliced = query.offset(pagination.offset).limit(pagination.page_size)
        rows = safe_query(self.session, lambda s: s.scalars(sliced).all(), "Loading a page")

        items = [self._to_response_model(row) for row in rows]
        return PaginatedResponse[self.response_schema].build(items, total, pagination)
