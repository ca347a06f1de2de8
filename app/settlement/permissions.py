"""
Permission classes for settlement API.

- IsStoreOwner: The user manages a store (store-scoped endpoints)
- HasAdminPermissions: Staff user holding the view's required permissions,
  checked through the configured AdminAuthorizer

Usage:
    class RefundQueueView(APIView):
        permission_classes = [HasAdminPermissions]
        required_admin_permissions = ["settlement.view_refund_queue"]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from core.exceptions import NotFoundError

from settlement.collaborators import get_admin_authorizer
from settlement.models import Store

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def get_store_for_user(user) -> Store:
    """
    The store managed by ``user``.

    Raises:
        NotFoundError: The user manages no store
    """
    store = Store.objects.filter(owner=user).order_by("created_at").first()
    if store is None:
        raise NotFoundError("Store not found", error_code="STORE_NOT_FOUND")
    return store


class IsStoreOwner(permissions.BasePermission):
    """Allows access only to authenticated users who manage a store."""

    message = "You do not manage a store."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user or not request.user.is_authenticated:
            return False
        return Store.objects.filter(owner=request.user).exists()


class HasAdminPermissions(permissions.BasePermission):
    """
    Allows access to administrators holding every permission the view lists
    in ``required_admin_permissions``.

    The resolved admin is stored on ``request.settlement_admin`` for the view.
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        authorizer = get_admin_authorizer()
        admin = authorizer.get_admin_from_request(request)
        if admin is None:
            return False

        required = list(getattr(view, "required_admin_permissions", []))
        if not authorizer.check_permission(admin, required):
            return False

        request.settlement_admin = admin
        return True
