"""Query arguments and paged results for the generic CRUD service."""
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class QueryArgs(BaseModel):
    """
    Query arguments sent by a data grid.

    All fields are optional; an absent field means "no restriction".

    - **filter**: boolean expression, e.g. `ReleaseDate > @0 and Title.Contains(@1)`
    - **filter_parameters**: positional values referenced as `@0`, `@1`, ...
    - **order_by**: comma-separated sort keys, e.g. `Title, ReleaseDate desc`
    - **skip** / **top**: paging window (ignored unless greater than zero)
    - **select**: projection, e.g. `new {SysGuid, Title}`
    - **expand**: comma-separated navigation names to eager-load, e.g. `Songs`
    """

    filter: str | None = None
    filter_parameters: list[Any] | None = None
    order_by: str | None = None
    skip: int | None = Field(default=None, ge=0)
    top: int | None = Field(default=None, ge=0)
    select: str | None = None
    expand: str | None = None


@dataclass
class PageResult(Generic[T]):
    """A page of records and the count of matching records across all pages."""

    data: list[T]
    count_across_pages: int


@dataclass
class DynamicQueryResult(Generic[T]):
    """
    Result of a dynamic (raw string) query.

    current_page and page_size are derived from the caller's skip/take/total
    figures; row_count is the authoritative count of matching records.
    """

    data: list[T]
    current_page: int
    page_count: int
    page_size: int
    row_count: int


class PageResponse(BaseModel, Generic[T]):
    """HTTP response for a page of rows."""

    data: list[T]
    count_across_pages: int


class DynamicQueryResponse(BaseModel, Generic[T]):
    """HTTP response for a dynamic query."""

    data: list[T]
    current_page: int
    page_count: int
    page_size: int
    row_count: int
