import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from fastapi import Query

from ..config import settings


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pager(default_limit: Optional[int] = None):
    def _dep(page: int = Query(1), limit: Optional[int] = Query(None)) -> PageParams:
        size = limit or default_limit or settings.default_page_size
        return PageParams(page=max(1, page), limit=max(1, min(settings.max_page_size, size)))

    return _dep


page_params = pager()


def paginate(query, params: PageParams, present: Optional[Callable[[Any], Any]] = None) -> dict:
    total = query.order_by(None).count()
    rows = query.offset(params.offset).limit(params.limit).all()
    return page_envelope(rows if present is None else [present(r) for r in rows], total, params)


def page_envelope(data: Iterable, total: int, params: PageParams) -> dict:
    return {
        "data": list(data),
        "pagination": {
            "total": total,
            "page": params.page,
            "limit": params.limit,
            "totalPages": math.ceil(total / params.limit) if params.limit else 0,
        },
    }
