import math
from typing import Generic, TypeVar

from fastapi import Query as QueryParam
from pydantic import BaseModel
from sqlalchemy.orm import Query

T = TypeVar("T")

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


class APIResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None


class Pagination(BaseModel):
    current_page: int
    per_page: int
    total_items: int
    total_pages: int


class PaginatedResponse(BaseModel, Generic[T]):
    success: bool = True
    data: list[T]
    pagination: Pagination


class PaginationParams:
    def __init__(
        self,
        page: int = QueryParam(default=1),
        per_page: int = QueryParam(default=DEFAULT_PER_PAGE),
    ) -> None:
        self.page = max(page, 1)
        self.per_page = min(max(per_page, 1), MAX_PER_PAGE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def paginate(query: Query, params: PaginationParams) -> tuple[list, Pagination]:
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.per_page).all()
    return items, Pagination(
        current_page=params.page,
        per_page=params.per_page,
        total_items=total,
        total_pages=math.ceil(total / params.per_page) if total else 0,
    )


def ok(data=None, message: str | None = None) -> APIResponse:
    return APIResponse(success=True, message=message, data=data)


def page_of(items: list, pagination: Pagination) -> PaginatedResponse:
    return PaginatedResponse(success=True, data=items, pagination=pagination)
