"""
Base exception classes for application-wide error handling.

Every domain error carries a machine-readable code, optional details and
the HTTP status it maps to, so views can let exceptions propagate and rely
on application_exception_handler to render them.

Exception Hierarchy:
    BaseApplicationError (base, 400)
    ├── ValidationError - Input validation failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts, concurrent modifications (409)
    └── ExternalServiceError - Third-party service failures (502)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError(
        "Withdrawal amount is below the minimum",
        error_code="AMOUNT_BELOW_MINIMUM",
        details={"minimum": 100000, "requested": 5000},
    )

    # In settings.REST_FRAMEWORK:
    "EXCEPTION_HANDLER": "core.exceptions.application_exception_handler"

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework import status

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        http_status: Status code used when rendered by the API

    Example:
        try:
            wallet = WalletService.get_wallet_for_store(store)
        except NotFoundError as e:
            logger.warning(f"Wallet missing: {e.error_code}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Sub-order not found",
                "error_code": "SUB_ORDER_NOT_FOUND",
                "details": {"sub_order_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for cart mismatches, bad withdrawal amounts and missing fields
    detected in the service layer. For request-shape validation, use DRF
    serializers.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = status.HTTP_400_BAD_REQUEST


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks permission for an operation.

    For authentication failures (missing/invalid token), DRF's
    AuthenticationFailed applies. This is for authorization failures,
    such as a store touching another store's sub-order.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = status.HTTP_403_FORBIDDEN


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions
    - Optimistic locking failures
    - Lock contention

    Example:
        if sub_order.escrow_released:
            raise ConflictError(
                "Escrow already released",
                error_code="ESCROW_ALREADY_RELEASED",
                details={"sub_order_id": str(sub_order.id)},
            )
    """

    default_error_code: str = "CONFLICT"
    http_status: int = status.HTTP_409_CONFLICT


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal details
    to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = status.HTTP_502_BAD_GATEWAY


def application_exception_handler(exc, context):
    """
    DRF exception handler that renders BaseApplicationError subclasses.

    Anything else is delegated to DRF's default handler, which returns None
    for unhandled exceptions so Django produces a 500.
    """
    # rest_framework.views reads DRF settings, which are not ready while
    # apps are still loading.
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.info(
            f"Application error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            extra={"error_code": exc.error_code, "http_status": exc.http_status},
        )
        return Response(exc.to_dict(), status=exc.http_status)

    return exception_handler(exc, context)
