"""
Tests for core.helpers pagination and request utilities.
"""

import pytest
from django.test import RequestFactory

from core.helpers import (
    calculate_pagination,
    get_client_ip,
    normalize_pagination,
    paginate_queryset,
)


class TestNormalizePagination:
    @pytest.mark.parametrize(
        "page,page_size,expected",
        [
            (None, None, (1, 20)),
            ("3", "50", (3, 50)),
            ("0", "500", (1, 100)),
            ("-2", "0", (1, 1)),
            ("abc", "xyz", (1, 20)),
        ],
    )
    def test_coerces_and_clamps(self, page, page_size, expected):
        assert normalize_pagination(page, page_size) == expected

    def test_custom_limits(self):
        assert normalize_pagination(None, "80", default_page_size=10, max_page_size=50) == (1, 50)


class TestCalculatePagination:
    def test_rounds_total_pages_up(self):
        assert calculate_pagination(45, 2, 20) == {
            "page": 2,
            "pageSize": 20,
            "total": 45,
            "totalPages": 3,
        }

    def test_empty_listing(self):
        assert calculate_pagination(0, 1, 20)["totalPages"] == 0


class FakeQuerySet(list):
    def count(self):
        return len(self)


class TestPaginateQueryset:
    def test_slices_requested_page(self):
        result = paginate_queryset(FakeQuerySet(range(45)), "3", "20")

        assert result["data"] == [40, 41, 42, 43, 44]
        assert result["pagination"] == {
            "page": 3,
            "pageSize": 20,
            "total": 45,
            "totalPages": 3,
        }

    def test_defaults_to_first_page(self):
        result = paginate_queryset(FakeQuerySet(range(5)))

        assert result["data"] == [0, 1, 2, 3, 4]
        assert result["pagination"]["page"] == 1


class TestGetClientIp:
    def test_prefers_first_forwarded_address(self):
        request = RequestFactory().get("/", HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1")

        assert get_client_ip(request) == "203.0.113.7"

    def test_falls_back_to_remote_addr(self):
        request = RequestFactory().get("/", REMOTE_ADDR="198.51.100.4")

        assert get_client_ip(request) == "198.51.100.4"
