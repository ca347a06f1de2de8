"""
Request and pagination helpers shared across apps.

Pagination metadata uses the camelCase shape the settlement listings
return to clients:

    {"page": 2, "pageSize": 20, "total": 45, "totalPages": 3}
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_pagination(
    page=None,
    page_size=None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[int, int]:
    """
    Coerce raw page/page-size values into safe integers.

    Page is at least 1. Page size falls back to the default when missing or
    unparseable and is clamped to 1..max_page_size.

    Example:
        normalize_pagination("0", "500")  # (1, 100)
        normalize_pagination(None, None)  # (1, 20)
    """
    page = max(1, _to_int(page, 1))
    page_size = _to_int(page_size, default_page_size)
    page_size = max(1, min(page_size, max_page_size))
    return page, page_size


def calculate_pagination(total: int, page: int, page_size: int) -> dict:
    """
    Build pagination metadata for a listing response.

    Args:
        total: Total number of matching items
        page: Current page number (1-indexed)
        page_size: Items per page

    Returns:
        Dict with page, pageSize, total and totalPages
    """
    total_pages = math.ceil(total / page_size) if page_size > 0 else 0
    return {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": total_pages,
    }


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Takes the first address in X-Forwarded-For when present.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


def paginate_queryset(queryset, page=None, page_size=None) -> dict:
    """
    Slice an ordered queryset into a listing response.

    Raw page values are normalized first, so query parameters can be passed
    straight through.

    Returns:
        {"data": [...], "pagination": {page, pageSize, total, totalPages}}
    """
    page, page_size = normalize_pagination(page, page_size)
    total = queryset.count()
    offset = (page - 1) * page_size
    return {
        "data": list(queryset[offset : offset + page_size]),
        "pagination": calculate_pagination(total, page, page_size),
    }
