"""
Tests for ServiceResult and BaseService.
"""

import logging

import pytest

from core.exceptions import ConflictError
from core.services import BaseService, ServiceResult


class WidgetService(BaseService):
    pass


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result
        assert result.to_response() == {"success": True, "data": {"id": 1}}

    def test_failure_with_field_errors(self):
        result = ServiceResult.failure(
            "Cart validation failed",
            error_code="CART_INVALID",
            errors={"cart": ["Cart is empty"]},
        )

        assert not result
        assert result.to_response() == {
            "success": False,
            "error": "Cart validation failed",
            "error_code": "CART_INVALID",
            "errors": {"cart": ["Cart is empty"]},
        }

    def test_from_application_error_keeps_code(self):
        result = ServiceResult.from_exception(
            ConflictError("Version moved on", error_code="STALE_RECORD")
        )

        assert result.error == "Version moved on"
        assert result.error_code == "STALE_RECORD"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("wallet"))

        assert result.error_code == "KEYERROR"


class TestBaseService:
    def test_logger_named_after_service(self):
        assert WidgetService.get_logger().name == f"{__name__}.WidgetService"

    def test_handle_exception_logs_and_wraps(self, mocker):
        mock_logger = mocker.MagicMock()
        mocker.patch.object(WidgetService, "get_logger", return_value=mock_logger)

        result = WidgetService.handle_exception(ValueError("bad amount"), context="Posting")

        assert result.error == "bad amount"
        mock_logger.log.assert_called_once_with(
            logging.ERROR, "Posting: bad amount", exc_info=True
        )

    @pytest.mark.django_db
    def test_atomic_rolls_back(self):
        from django.contrib.auth import get_user_model

        User = get_user_model()

        with pytest.raises(RuntimeError):
            with WidgetService.atomic():
                User.objects.create(username="rolled-back")
                raise RuntimeError("boom")

        assert not User.objects.filter(username="rolled-back").exists()
