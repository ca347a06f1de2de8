"""
Interfaces of the collaborators the settlement engine calls out to.

The engine depends on these Protocols, not on concrete classes. Default
implementations live in settlement.collaborators and are chosen through
settings (SETTLEMENT_CATALOG_BACKEND, SETTLEMENT_NOTIFICATION_BACKEND,
SETTLEMENT_AUDIT_BACKEND).

Available Protocols:
    CatalogService: Current price, stock and availability of products
    NotificationSender: Fire-and-forget transactional email
    AuditLogger: Best-effort audit trail of admin and money-moving actions
    AdminAuthorizer: Resolves the admin behind a request and checks permissions

Usage:
    from settlement.protocols import CatalogService

    def validate(cart, catalog: CatalogService):
        product = catalog.get_product(item.product_id)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@dataclass(frozen=True)
class ProductInfo:
    """
    Catalog view of a product at the moment of the lookup.

    Attributes:
        id: Product id (string form)
        store_id: Seller id (string form)
        name: Display name
        price: Unit price in kobo
        stock: Units available (no size variants)
        available: Whether the product is still sold
        product_type: "physical" or "digital"
        sizes: [{size, quantity, price?}]
    """

    id: str
    store_id: str
    name: str
    price: int
    stock: int
    available: bool = True
    product_type: str = "physical"
    sizes: list[dict[str, Any]] = field(default_factory=list)

    def get_size(self, size: str) -> dict[str, Any] | None:
        for variant in self.sizes:
            if str(variant.get("size")) == str(size):
                return variant
        return None


@runtime_checkable
class CatalogService(Protocol):
    """Read access to the product catalog. Never mutates stock."""

    def get_product(self, product_id: str) -> ProductInfo | None:
        """Return the product or None if it no longer exists."""
        ...


@runtime_checkable
class NotificationSender(Protocol):
    """
    Transactional notification delivery.

    Called from a Celery task after the financial transaction commits;
    a failure here never rolls money back.
    """

    def send(
        self,
        email_type: str,
        recipient: str,
        template_data: dict[str, Any],
    ) -> bool:
        """
        Send one notification.

        Args:
            email_type: Template identifier, e.g. "escrow_released"
            recipient: Email address
            template_data: JSON-serializable values for the template

        Returns:
            True if the message was handed to the provider
        """
        ...


@runtime_checkable
class AuditLogger(Protocol):
    """Best-effort audit trail. Failures are logged and swallowed."""

    def log_action(self, entry: dict[str, Any]) -> None:
        """
        Record an action.

        The entry carries at least ``action``, ``actor_id``, ``resource_type``
        and ``resource_id``; ``details`` holds action-specific values.
        """
        ...


@runtime_checkable
class AdminAuthorizer(Protocol):
    """Gate for the refund queue, confirmation queue and withdrawal review."""

    def get_admin_from_request(self, request: Any) -> Any | None:
        """Return the admin user behind the request, or None."""
        ...

    def check_permission(self, admin: Any, permissions: list[str]) -> bool:
        """Return True if the admin holds every permission listed."""
        ...
