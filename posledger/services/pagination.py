# Overview: Shared paginated-listing envelope for service list_* operations.

from __future__ import annotations


def paginate(query, page: int | None, per_page: int | None, serialize=lambda row: row.to_dict()) -> dict:
    """
    Run `query` and wrap the rows in the listing envelope.

    page=None returns every row. Otherwise per_page defaults to 20 (max 100)
    and the result carries a 'pagination' block.
    """
    if page is None:
        rows = query.all()
        return {
            "items": [serialize(r) for r in rows],
            "count": len(rows),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
