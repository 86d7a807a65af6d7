import math

from pydantic import BaseModel

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Returns (page, limit, offset) with page >= 1 and limit clamped to 1..MAX_LIMIT."""
    page = max(1, page or 1)
    limit = min(MAX_LIMIT, max(1, limit or DEFAULT_LIMIT))
    return page, limit, (page - 1) * limit


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )
