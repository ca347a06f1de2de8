"""
Pagination for settlement listings.

Every listing responds with:

    {
        "data": [...],
        "pagination": {"page": 1, "pageSize": 20, "total": 45, "totalPages": 3}
    }

Query parameters:
    page: 1-indexed page number (values below 1 become 1)
    pageSize: Items per page (default 20, clamped to 1..100)

Services that paginate themselves return the same {data, pagination}
dict; paginated_response() serializes its ``data`` for the view.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework.pagination import BasePagination
from rest_framework.response import Response

from core.helpers import calculate_pagination, normalize_pagination

if TYPE_CHECKING:
    from typing import Any


class SettlementPagination(BasePagination):
    """Offset pagination driven by ``page`` and ``pageSize``."""

    page_query_param = "page"
    page_size_query_param = "pageSize"

    def paginate_queryset(self, queryset, request, view=None):
        self.page, self.page_size = normalize_pagination(
            request.query_params.get(self.page_query_param),
            request.query_params.get(self.page_size_query_param),
        )
        self.total = queryset.count()
        offset = (self.page - 1) * self.page_size
        return list(queryset[offset : offset + self.page_size])

    def get_paginated_response(self, data):
        return Response(
            {
                "data": data,
                "pagination": calculate_pagination(self.total, self.page, self.page_size),
            }
        )

    def get_paginated_response_schema(self, schema):
        return {
            "type": "object",
            "properties": {
                "data": schema,
                "pagination": {
                    "type": "object",
                    "properties": {
                        "page": {"type": "integer", "example": 1},
                        "pageSize": {"type": "integer", "example": 20},
                        "total": {"type": "integer", "example": 45},
                        "totalPages": {"type": "integer", "example": 3},
                    },
                },
            },
        }


def paginated_response(
    result: dict[str, Any],
    serializer_class,
    context: dict[str, Any] | None = None,
) -> Response:
    """Serialize a service-level {data, pagination} dict."""
    serializer = serializer_class(result["data"], many=True, context=context or {})
    return Response({"data": serializer.data, "pagination": result["pagination"]})
