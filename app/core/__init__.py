"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the settlement app. Nothing here knows
about orders, escrow or wallets.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic-locking version counter

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, NotFoundError, PermissionDeniedError,
      ConflictError, ExternalServiceError
    - application_exception_handler: DRF exception handler

Helpers (import from core.helpers):
    - get_client_ip: Client IP extraction from request
    - normalize_pagination: Page/page-size clamping
    - calculate_pagination: {page, pageSize, total, totalPages} metadata
    - paginate_queryset: Page slice plus metadata in the listing envelope

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .helpers import (
    calculate_pagination,
    get_client_ip,
    normalize_pagination,
    paginate_queryset,
)
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
    # Helpers
    "calculate_pagination",
    "get_client_ip",
    "normalize_pagination",
    "paginate_queryset",
]
