from math import ceil

from sqlalchemy import func
from sqlmodel import select

MAX_PAGE_SIZE = 100


def paginate(*, session, query, page: int = 1, limit: int = 20) -> dict:
    """
    Run ``query`` one page at a time.

    ``page`` is 1-indexed. ``limit`` is clamped to ``1..MAX_PAGE_SIZE``; the
    total is counted over the unordered query so the ORDER BY never reaches
    the count.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    total = session.exec(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).one()
    rows = session.exec(query.offset((page - 1) * limit).limit(limit)).all()

    return {
        "total_items": total,
        "total_pages": ceil(total / limit),
        "current_page": page,
        "limit": limit,
        "results": list(rows),
    }
