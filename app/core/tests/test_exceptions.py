"""
Tests for the application exception hierarchy and DRF handler.
"""

from rest_framework import status
from rest_framework.exceptions import NotAuthenticated

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    application_exception_handler,
)


class TestBaseApplicationError:
    def test_defaults(self):
        error = ValidationError("Amount is required")

        assert error.error_code == "VALIDATION_ERROR"
        assert error.http_status == status.HTTP_400_BAD_REQUEST
        assert str(error) == "[VALIDATION_ERROR] Amount is required"

    def test_to_dict_includes_details_when_present(self):
        error = NotFoundError(
            "Sub-order not found",
            error_code="SUB_ORDER_NOT_FOUND",
            details={"sub_order_id": "abc"},
        )

        assert error.to_dict() == {
            "error": "Sub-order not found",
            "error_code": "SUB_ORDER_NOT_FOUND",
            "details": {"sub_order_id": "abc"},
        }
        assert "details" not in NotFoundError("missing").to_dict()

    def test_subclass_statuses(self):
        assert NotFoundError("x").http_status == status.HTTP_404_NOT_FOUND
        assert ConflictError("x").http_status == status.HTTP_409_CONFLICT
        assert issubclass(ConflictError, BaseApplicationError)


class TestApplicationExceptionHandler:
    def test_renders_application_errors(self):
        response = application_exception_handler(
            ConflictError("Version moved on", error_code="STALE_RECORD"), {"view": None}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "STALE_RECORD"

    def test_delegates_drf_errors(self):
        response = application_exception_handler(NotAuthenticated(), {"view": None})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_unhandled_errors_fall_through(self):
        assert application_exception_handler(RuntimeError("boom"), {"view": None}) is None
