from __future__ import annotations

from decimal import Decimal


def money(value: Decimal | float | int) -> str:
    return f"RM {Decimal(value):,.2f}"


def paginate_query(query, page: int, page_size: int) -> dict[str, object]:
    safe_page = page if page > 0 else 1
    safe_size = max(1, min(page_size, 100))
    total = query.order_by(None).count()
    rows = query.offset((safe_page - 1) * safe_size).limit(safe_size).all()
    return {
        "rows": rows,
        "page": safe_page,
        "page_size": safe_size,
        "total": total,
        "pages": max(1, (total + safe_size - 1) // safe_size),
    }
