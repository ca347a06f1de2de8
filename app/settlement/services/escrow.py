"""
Delivery/escrow state machine service.

Every mutation locks the sub-order row, re-validates against the locked
copy and writes in one transaction. Notifications, audit entries and the
gateway refund run only after commit.

Business Rules:
- Delivery updates require a paid order
- Entering DELIVERED starts the return window and creates the FundRelease
- Buyer confirmation (or admin confirmation after the grace period) marks the
  FundRelease READY; it never releases escrow by itself
- CANCELED / FAILED_DELIVERY sub-orders with held escrow form the refund queue
- A refund sets exactly one terminal escrow flag and never credits the store

Usage:
    from settlement.services import EscrowService

    result = EscrowService.update_delivery_status(
        store, sub_order_id, DeliveryStatus.DELIVERED, notes="Left at reception"
    )
    if not result:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from django_fsm import can_proceed

from core.exceptions import NotFoundError
from core.helpers import paginate_queryset
from core.services import BaseService, ServiceResult

from settlement.collaborators import audit_after_commit, notify_after_commit
from settlement.exceptions import EscrowInvariantError
from settlement.locks import lock_for_update
from settlement.models import FundRelease, SubOrder
from settlement.services.fund_release import FundReleaseService
from settlement.services.wallet import WalletService
from settlement.state_machines import (
    REFUND_QUEUE_STATUSES,
    DeliveryStatus,
    FundReleaseStatus,
    FundReleaseTrigger,
    PaymentStatus,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from settlement.models import Store


# Delivery status -> SubOrder transition method
TRANSITIONS = {
    DeliveryStatus.PROCESSING: "start_processing",
    DeliveryStatus.SHIPPED: "ship",
    DeliveryStatus.OUT_FOR_DELIVERY: "dispatch",
    DeliveryStatus.DELIVERED: "deliver",
    DeliveryStatus.CANCELED: "cancel",
    DeliveryStatus.FAILED_DELIVERY: "fail_delivery",
    DeliveryStatus.RETURNED: "mark_returned",
}

# Transitions that take the store's note as the refund reason
REASON_TRANSITIONS = {
    DeliveryStatus.CANCELED,
    DeliveryStatus.FAILED_DELIVERY,
    DeliveryStatus.RETURNED,
}


def actor_label(user) -> str:
    if user is None:
        return "system"
    role = "admin" if getattr(user, "is_staff", False) else "user"
    return f"{role}:{user.pk}"


def _parse_date(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


class EscrowService(BaseService):
    """Delivery status, confirmation and refund operations on sub-orders."""

    # =========================================================================
    # Delivery Status
    # =========================================================================

    @classmethod
    def update_delivery_status(
        cls,
        store: Store,
        sub_order_id: uuid.UUID | str,
        new_status: str,
        notes: str = "",
        actor=None,
        expected_version: int | None = None,
    ) -> ServiceResult[SubOrder]:
        """
        Move a store's sub-order to a new delivery status.

        Forward moves may skip pre-delivery states; backward moves are
        rejected. Setting the current status again is a no-op success.

        Returns:
            ServiceResult with the updated SubOrder
        """
        logger = cls.get_logger()
        log_context = {"sub_order_id": str(sub_order_id), "target_status": new_status}

        if new_status not in DeliveryStatus.values:
            return ServiceResult.failure(
                f"Unsupported delivery status '{new_status}'",
                error_code="INVALID_STATUS",
            )

        with cls.atomic():
            try:
                sub_order = lock_for_update(SubOrder, sub_order_id, expected_version)
            except NotFoundError as e:
                return ServiceResult.failure(e.message, error_code="SUB_ORDER_NOT_FOUND")

            if sub_order.store_id != store.pk:
                return ServiceResult.failure("Sub-order not found", error_code="SUB_ORDER_NOT_FOUND")

            if sub_order.order.payment_status != PaymentStatus.PAID:
                return ServiceResult.failure(
                    "Delivery status can only change after payment is confirmed",
                    error_code="PAYMENT_NOT_CONFIRMED",
                )

            previous_status = sub_order.delivery_status
            if previous_status == new_status:
                return ServiceResult.success(sub_order)

            method_name = TRANSITIONS.get(new_status)
            if method_name is None or not can_proceed(getattr(sub_order, method_name)):
                logger.info(
                    "Rejected delivery transition",
                    extra={**log_context, "current_status": previous_status},
                )
                return ServiceResult.failure(
                    f"Cannot move sub-order from '{previous_status}' to '{new_status}'",
                    error_code="INVALID_STATE_TRANSITION",
                )

            transition_method = getattr(sub_order, method_name)
            if new_status in REASON_TRANSITIONS:
                transition_method(reason=notes)
            else:
                transition_method()

            sub_order.record_status(new_status, notes, actor_label(actor))
            sub_order.save()

            if new_status == DeliveryStatus.DELIVERED:
                FundReleaseService.create_for_sub_order(sub_order)

            notify_after_commit(
                "order_status_updated",
                sub_order.order.buyer.email,
                {
                    "orderId": str(sub_order.order_id),
                    "subOrderId": str(sub_order.id),
                    "status": new_status,
                    "notes": notes,
                },
            )
            audit_after_commit(
                "sub_order.status_updated",
                actor,
                "sub_order",
                sub_order.id,
                {"from": previous_status, "to": new_status},
            )

        logger.info(
            "Delivery status updated",
            extra={**log_context, "previous_status": previous_status},
        )
        return ServiceResult.success(sub_order)

    # =========================================================================
    # Delivery Confirmation
    # =========================================================================

    @staticmethod
    def _mark_release_ready(sub_order: SubOrder, trigger: str) -> None:
        release = FundRelease.objects.select_for_update().filter(sub_order=sub_order).first()
        if release is not None and release.status == FundReleaseStatus.PENDING:
            release.mark_ready(trigger=trigger)
            release.save()

    @classmethod
    def confirm_delivery(cls, buyer, sub_order_id: uuid.UUID | str) -> ServiceResult[SubOrder]:
        """
        Buyer confirms receipt. Does not release escrow.

        Repeated confirmation is a no-op success.
        """
        with cls.atomic():
            try:
                sub_order = lock_for_update(SubOrder, sub_order_id)
            except NotFoundError as e:
                return ServiceResult.failure(e.message, error_code="SUB_ORDER_NOT_FOUND")

            if sub_order.order.buyer_id != buyer.pk:
                return ServiceResult.failure("Sub-order not found", error_code="SUB_ORDER_NOT_FOUND")

            if sub_order.delivery_status != DeliveryStatus.DELIVERED:
                return ServiceResult.failure(
                    "Only delivered orders can be confirmed",
                    error_code="NOT_DELIVERED",
                )

            if sub_order.customer_confirmed or sub_order.auto_confirmed:
                return ServiceResult.success(sub_order)

            sub_order.customer_confirmed = True
            sub_order.confirmed_at = timezone.now()
            sub_order.save(update_fields=["customer_confirmed", "confirmed_at", "updated_at"])
            cls._mark_release_ready(sub_order, FundReleaseTrigger.DELIVERY_CONFIRMED)

        cls.get_logger().info(
            "Delivery confirmed by buyer",
            extra={"sub_order_id": str(sub_order.id)},
        )
        return ServiceResult.success(sub_order)

    @staticmethod
    def confirmation_cutoff(now=None) -> datetime:
        """Start of the day SETTLEMENT_ADMIN_CONFIRMATION_GRACE_DAYS ago."""
        now = timezone.localtime(now or timezone.now())
        day = (now - timedelta(days=settings.SETTLEMENT_ADMIN_CONFIRMATION_GRACE_DAYS)).date()
        return timezone.make_aware(datetime.combine(day, time.min))

    @classmethod
    def admin_confirm_delivery(
        cls,
        admin,
        sub_order_id: uuid.UUID | str,
        notes: str = "",
    ) -> ServiceResult[SubOrder]:
        """
        Confirm delivery on the buyer's behalf once the grace period passed.

        Sets auto_confirmed; escrow still waits for the return window.
        """
        with cls.atomic():
            try:
                sub_order = lock_for_update(SubOrder, sub_order_id)
            except NotFoundError as e:
                return ServiceResult.failure(e.message, error_code="SUB_ORDER_NOT_FOUND")

            if sub_order.delivery_status != DeliveryStatus.DELIVERED:
                return ServiceResult.failure(
                    "Only delivered orders can be confirmed",
                    error_code="NOT_DELIVERED",
                )

            if sub_order.customer_confirmed or sub_order.auto_confirmed:
                return ServiceResult.success(sub_order)

            if sub_order.delivery_date is None or sub_order.delivery_date > cls.confirmation_cutoff():
                return ServiceResult.failure(
                    "The buyer still has time to confirm this delivery",
                    error_code="GRACE_PERIOD_NOT_ELAPSED",
                )

            sub_order.auto_confirmed = True
            sub_order.confirmed_at = timezone.now()
            sub_order.record_status(
                sub_order.delivery_status,
                notes or "Delivery confirmed by administrator",
                actor_label(admin),
            )
            sub_order.save(
                update_fields=["auto_confirmed", "confirmed_at", "status_history", "updated_at"]
            )
            cls._mark_release_ready(sub_order, FundReleaseTrigger.AUTO_CONFIRMED_DELIVERY)

            audit_after_commit(
                "sub_order.delivery_confirmed",
                admin,
                "sub_order",
                sub_order.id,
                {"notes": notes},
            )

        cls.get_logger().info(
            "Delivery confirmed by administrator",
            extra={"sub_order_id": str(sub_order.id), "admin_id": str(admin.pk)},
        )
        return ServiceResult.success(sub_order)

    @classmethod
    def delivery_confirmation_queue(cls, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Delivered, unconfirmed sub-orders past the grace period, oldest first.

        Filters:
            fromDate / toDate: Delivery date range (toDate inclusive to end of day)
            search: Buyer email, first or last name
            page / pageSize
        """
        filters = filters or {}
        queryset = SubOrder.objects.filter(
            delivery_status=DeliveryStatus.DELIVERED,
            customer_confirmed=False,
            auto_confirmed=False,
            delivery_date__lte=cls.confirmation_cutoff(),
        ).select_related("order__buyer", "store")

        from_date = _parse_date(filters.get("fromDate"))
        to_date = _parse_date(filters.get("toDate"))
        if from_date:
            queryset = queryset.filter(delivery_date__gte=from_date)
        if to_date:
            if to_date.time() == time.min:
                to_date = to_date + timedelta(days=1) - timedelta(microseconds=1)
            queryset = queryset.filter(delivery_date__lte=to_date)

        search = (filters.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(order__buyer__email__icontains=search)
                | Q(order__buyer__first_name__icontains=search)
                | Q(order__buyer__last_name__icontains=search)
            )

        return paginate_queryset(
            queryset.order_by("delivery_date"), filters.get("page"), filters.get("pageSize")
        )

    # =========================================================================
    # Release Queue
    # =========================================================================

    @staticmethod
    def _releasable(now=None):
        return SubOrder.objects.filter(
            delivery_status=DeliveryStatus.DELIVERED,
            escrow_held=True,
            escrow_released=False,
            escrow_refunded=False,
            return_window__lt=now or timezone.now(),
        ).select_related("order__buyer", "store")

    @classmethod
    def release_queue(cls, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Delivered sub-orders with held escrow whose return window has passed.

        Filters:
            fromDate / toDate: Order creation date range (toDate inclusive)
            storeId: Restrict to one store
            search: Buyer email, first or last name, or store name
            page / pageSize
        """
        filters = filters or {}
        queryset = cls._releasable()

        from_date = _parse_date(filters.get("fromDate"))
        to_date = _parse_date(filters.get("toDate"))
        if from_date:
            queryset = queryset.filter(order__created_at__gte=from_date)
        if to_date:
            if to_date.time() == time.min:
                to_date = to_date + timedelta(days=1) - timedelta(microseconds=1)
            queryset = queryset.filter(order__created_at__lte=to_date)

        if filters.get("storeId"):
            queryset = queryset.filter(store_id=filters["storeId"])

        search = (filters.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(order__buyer__email__icontains=search)
                | Q(order__buyer__first_name__icontains=search)
                | Q(order__buyer__last_name__icontains=search)
                | Q(store__name__icontains=search)
            )

        return paginate_queryset(
            queryset.order_by("return_window"), filters.get("page"), filters.get("pageSize")
        )

    @classmethod
    def release_queue_entry(cls, sub_order_id: uuid.UUID | str) -> ServiceResult[SubOrder]:
        """One release-queue sub-order; SUB_ORDER_NOT_FOUND if it is not eligible."""
        sub_order = (
            cls._releasable()
            .select_related("fund_release")
            .filter(pk=sub_order_id)
            .first()
        )
        if sub_order is None:
            return ServiceResult.failure(
                "Sub-order is not awaiting escrow release",
                error_code="SUB_ORDER_NOT_FOUND",
            )
        return ServiceResult.success(sub_order)

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def refund_queue(cls, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        CANCELED / FAILED_DELIVERY sub-orders whose escrow is still held.

        Filters:
            storeId: Restrict to one store
            status: canceled | failed_delivery
            page / pageSize
        """
        filters = filters or {}
        queryset = SubOrder.objects.filter(
            delivery_status__in=REFUND_QUEUE_STATUSES,
            escrow_held=True,
            escrow_released=False,
            escrow_refunded=False,
        ).select_related("order__buyer", "store")

        if filters.get("status") in REFUND_QUEUE_STATUSES:
            queryset = queryset.filter(delivery_status=filters["status"])
        if filters.get("storeId"):
            queryset = queryset.filter(store_id=filters["storeId"])

        return paginate_queryset(
            queryset.order_by("updated_at"), filters.get("page"), filters.get("pageSize")
        )

    @classmethod
    def approve_refund(
        cls,
        admin,
        sub_order_id: uuid.UUID | str,
        notes: str = "",
    ) -> ServiceResult[SubOrder]:
        """Approve a refund-queue entry (CANCELED or FAILED_DELIVERY)."""
        return cls._refund(admin, sub_order_id, REFUND_QUEUE_STATUSES, notes)

    @classmethod
    def approve_return_refund(
        cls,
        admin,
        sub_order_id: uuid.UUID | str,
        notes: str = "",
    ) -> ServiceResult[SubOrder]:
        """Consume an approved return from the returns workflow and refund it."""
        return cls._refund(admin, sub_order_id, [DeliveryStatus.RETURNED], notes)

    @classmethod
    def _refund(
        cls,
        admin,
        sub_order_id: uuid.UUID | str,
        allowed_statuses: list[str],
        notes: str,
    ) -> ServiceResult[SubOrder]:
        """
        Escrow held -> refunded, then queue the buyer refund after commit.

        The FundRelease (if any) is marked failed and the wallet's pending
        amount is reduced. No wallet credit is ever posted for the store.
        """
        logger = cls.get_logger()
        log_context = {"sub_order_id": str(sub_order_id)}

        try:
            with cls.atomic():
                try:
                    sub_order = lock_for_update(SubOrder, sub_order_id)
                except NotFoundError as e:
                    return ServiceResult.failure(e.message, error_code="SUB_ORDER_NOT_FOUND")

                if sub_order.escrow_refunded:
                    return ServiceResult.success(sub_order)

                if sub_order.escrow_released:
                    logger.critical("Refund attempted on a released sub-order", extra=log_context)
                    return ServiceResult.failure(
                        "Escrow has already been released to the store",
                        error_code="ESCROW_ALREADY_RELEASED",
                    )

                if sub_order.delivery_status not in allowed_statuses:
                    return ServiceResult.failure(
                        f"Sub-order in '{sub_order.delivery_status}' status cannot be refunded here",
                        error_code="NOT_REFUNDABLE",
                    )

                reason = notes or sub_order.escrow_refund_reason or "Refund approved"
                sub_order.refund_escrow(reason=reason, refunded_at=timezone.now())
                sub_order.record_status(
                    sub_order.delivery_status, f"Refund approved: {reason}", actor_label(admin)
                )
                sub_order.save(
                    update_fields=[
                        "escrow_held",
                        "escrow_refunded",
                        "escrow_refunded_at",
                        "escrow_refund_reason",
                        "status_history",
                        "updated_at",
                    ]
                )

                release = (
                    FundRelease.objects.select_for_update().filter(sub_order=sub_order).first()
                )
                if release is not None and release.status not in (
                    FundReleaseStatus.RELEASED,
                    FundReleaseStatus.REVERSED,
                ):
                    if release.status != FundReleaseStatus.FAILED:
                        release.mark_failed(reason=f"Escrow refunded to buyer: {reason}")
                    else:
                        release.admin_notes = f"Escrow refunded to buyer: {reason}"
                    release.save()
                    if release.settlement_amount > 0:
                        WalletService.adjust_pending(
                            release.wallet_id,
                            -release.settlement_amount,
                            reason=f"Escrow refunded for sub-order {sub_order.id}",
                        )

                cls._schedule_buyer_refund(sub_order.id)
                notify_after_commit(
                    "escrow_refunded",
                    sub_order.order.buyer.email,
                    {
                        "orderId": str(sub_order.order_id),
                        "subOrderId": str(sub_order.id),
                        "amount": sub_order.total_amount + sub_order.shipping_price,
                        "reason": reason,
                    },
                )
                audit_after_commit(
                    "sub_order.refund_approved",
                    admin,
                    "sub_order",
                    sub_order.id,
                    {"delivery_status": sub_order.delivery_status, "reason": reason},
                )
        except EscrowInvariantError as e:
            logger.critical(f"Escrow invariant violated during refund: {e}", extra=log_context)
            return ServiceResult.from_exception(e)

        logger.info(
            "Escrow refunded",
            extra={**log_context, "delivery_status": sub_order.delivery_status},
        )
        return ServiceResult.success(sub_order)

    @staticmethod
    def _schedule_buyer_refund(sub_order_id) -> None:
        from settlement.workers.refunds import issue_buyer_refund

        transaction.on_commit(lambda: issue_buyer_refund.delay(str(sub_order_id)))

