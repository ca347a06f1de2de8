"""
Default collaborator implementations and the helpers that call them.

Backends are resolved from settings with ``import_string`` so deployments
can swap the catalog, notification or audit provider without code changes.

Fire-and-forget helpers:
    notify_after_commit(): queues a notification once the surrounding
        transaction commits; enqueue failures are logged, never raised.
    audit_after_commit(): records an audit entry once the surrounding
        transaction commits; audit failures are logged, never raised.

Usage:
    from settlement.collaborators import audit_after_commit, notify_after_commit

    with transaction.atomic():
        ...
        notify_after_commit(
            "escrow_released",
            store.email,
            {"subOrderId": str(sub_order.id), "amount": amount},
        )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from settlement.protocols import ProductInfo

if TYPE_CHECKING:
    from typing import Any

    from settlement.protocols import (
        AdminAuthorizer,
        AuditLogger,
        CatalogService,
        NotificationSender,
    )

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("settlement.audit")


# =============================================================================
# Default Implementations
# =============================================================================


class DatabaseCatalog:
    """CatalogService backed by the settlement Product table."""

    def get_product(self, product_id: str) -> ProductInfo | None:
        from django.core.exceptions import ValidationError as DjangoValidationError

        from settlement.models import Product

        try:
            product = Product.objects.filter(pk=product_id).first()
        except (DjangoValidationError, ValueError):
            # Malformed UUID from the client cart
            return None
        if product is None:
            return None

        return ProductInfo(
            id=str(product.id),
            store_id=str(product.store_id),
            name=product.name,
            price=product.price,
            stock=product.stock_quantity,
            available=product.is_available,
            product_type=product.product_type,
            sizes=list(product.sizes or []),
        )


# Subject lines per notification type
EMAIL_SUBJECTS = {
    "order_status_updated": "Your order status has changed",
    "escrow_released": "Funds released to your wallet",
    "escrow_refunded": "Your refund has been approved",
    "payment_confirmed": "Payment received",
    "store_new_order": "You have a new order",
    "escrow_refund_issued": "Your refund is on its way",
    "fund_release_reversed": "A fund release was reversed",
    "withdrawal_requested": "Withdrawal request received",
    "withdrawal_under_review": "Withdrawal under review",
    "withdrawal_approved": "Withdrawal approved",
    "withdrawal_processing": "Withdrawal is being paid out",
    "withdrawal_rejected": "Withdrawal rejected",
    "withdrawal_completed": "Withdrawal paid",
    "withdrawal_failed": "Withdrawal failed",
}


class EmailNotificationSender:
    """NotificationSender that sends plain-text mail through Django's backend."""

    def send(self, email_type: str, recipient: str, template_data: dict[str, Any]) -> bool:
        subject = EMAIL_SUBJECTS.get(email_type, "Account update")
        lines = [f"{key}: {value}" for key, value in sorted(template_data.items())]
        sent = send_mail(
            subject=subject,
            message="\n".join(lines),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
        return sent > 0


class LoggingAuditLogger:
    """AuditLogger that writes structured records to the settlement.audit logger."""

    def log_action(self, entry: dict[str, Any]) -> None:
        audit_logger.info(
            f"{entry.get('action')} on {entry.get('resource_type')} {entry.get('resource_id')}",
            extra={"audit": entry},
        )


class DjangoAdminAuthorizer:
    """AdminAuthorizer on top of Django staff users and model permissions."""

    def get_admin_from_request(self, request: Any) -> Any | None:
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated or not user.is_staff:
            return None
        return user

    def check_permission(self, admin: Any, permissions: list[str]) -> bool:
        if admin is None:
            return False
        return admin.is_superuser or admin.has_perms(permissions)


# =============================================================================
# Backend Resolution
# =============================================================================


def get_catalog() -> CatalogService:
    return import_string(settings.SETTLEMENT_CATALOG_BACKEND)()


def get_notification_sender() -> NotificationSender:
    return import_string(settings.SETTLEMENT_NOTIFICATION_BACKEND)()


def get_audit_logger() -> AuditLogger:
    return import_string(settings.SETTLEMENT_AUDIT_BACKEND)()


def get_admin_authorizer() -> AdminAuthorizer:
    return DjangoAdminAuthorizer()


# =============================================================================
# Fire-and-forget Helpers
# =============================================================================


def _enqueue_notification(email_type: str, recipient: str, template_data: dict) -> None:
    from settlement.workers.notifications import send_settlement_notification

    try:
        send_settlement_notification.delay(email_type, recipient, template_data)
    except Exception as e:
        # Broker outage; the money movement already committed
        logger.warning(
            f"Failed to enqueue {email_type} notification: {e}",
            extra={"email_type": email_type, "recipient": recipient},
        )


def notify_after_commit(email_type: str, recipient: str, template_data: dict) -> None:
    """Queue a notification once the current transaction commits."""
    if not recipient:
        logger.debug(f"Skipping {email_type} notification without recipient")
        return
    transaction.on_commit(
        lambda: _enqueue_notification(email_type, recipient, template_data)
    )


def record_audit(entry: dict[str, Any]) -> None:
    """Write an audit entry now, swallowing (and logging) any failure."""
    entry = {"timestamp": timezone.now().isoformat(), **entry}
    try:
        get_audit_logger().log_action(entry)
    except Exception as e:
        logger.warning(
            f"Audit logging failed for {entry.get('action')}: {e}",
            extra={"action": entry.get("action")},
        )


def audit_after_commit(
    action: str,
    actor,
    resource_type: str,
    resource_id,
    details: dict[str, Any] | None = None,
) -> None:
    """Record an audit entry once the current transaction commits."""
    entry = {
        "action": action,
        "actor_id": str(actor.pk) if actor is not None else None,
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "details": details or {},
    }
    transaction.on_commit(lambda: record_audit(entry))
