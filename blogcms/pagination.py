import math

from fastapi import Query

from . import schemas


class PageParams:
    """Common `page`/`limit` query parameters."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def paginate(query, params: PageParams):
    """Run `query` for one page and count the whole result set."""
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    pagination = schemas.Pagination(
        page=params.page,
        limit=params.limit,
        total=total,
        pages=math.ceil(total / params.limit) if total else 0,
    )
    return items, pagination
