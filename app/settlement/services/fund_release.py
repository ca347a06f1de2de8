"""
Fund release services.

FundReleaseService moves escrow into store wallets:
- create_for_sub_order(): snapshot the settlement breakdown when a sub-order
  is first delivered
- release_sub_order(): the per-sub-order unit of work run by the scheduler
- release_by_admin(): manual release from the admin release queue
- record_failure(): mark a release failed in its own transaction
- reverse_fund_release(): admin compensating action

FundReleaseQueryService is the read-only listing/summary surface for
stores and administrators. It takes no locks.

Release Flow (one transaction per sub-order):
    1. Lock the sub-order row and its FundRelease row
    2. Re-check the release predicate under the lock
    3. FundRelease PENDING/READY -> PROCESSING
    4. Escrow held -> released
    5. Credit the wallet (idempotency key fund_release:<id>:release)
    6. FundRelease PROCESSING -> RELEASED
    7. Notify the store after commit
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Count, Sum
from django.utils import timezone

from core.exceptions import NotFoundError
from core.helpers import paginate_queryset
from core.services import BaseService, ServiceResult

from settlement.collaborators import audit_after_commit, notify_after_commit
from settlement.exceptions import (
    EscrowInvariantError,
    InsufficientBalanceError,
    LockAcquisitionError,
)
from settlement.locks import DistributedLock, lock_for_update
from settlement.models import FundRelease, SubOrder
from settlement.services.commission import calculate_commission
from settlement.services.wallet import WalletService
from settlement.state_machines import (
    DeliveryStatus,
    FundReleaseStatus,
    FundReleaseTrigger,
    TransactionSource,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from settlement.models import Store


# Held while an administrator releases one sub-order (seconds)
ADMIN_RELEASE_LOCK_TTL = 60


class FundReleaseService(BaseService):
    """Creation, release, failure bookkeeping and reversal of fund releases."""

    @classmethod
    def create_for_sub_order(cls, sub_order: SubOrder) -> FundRelease:
        """
        Create the FundRelease for a sub-order that just became DELIVERED.

        Must run inside the transaction that holds the sub-order lock.
        Idempotent: an existing release is returned unchanged.
        """
        existing = FundRelease.objects.filter(sub_order=sub_order).first()
        if existing is not None:
            return existing

        breakdown = calculate_commission(sub_order.total_amount, sub_order.shipping_price)
        wallet = WalletService.get_or_create_wallet(sub_order.store)

        release = FundRelease.objects.create(
            order_id=sub_order.order_id,
            sub_order=sub_order,
            store=sub_order.store,
            wallet=wallet,
            item_subtotal=breakdown.item_subtotal,
            commission=breakdown.commission,
            applied_percentage_fee=breakdown.percentage_fee,
            applied_flat_fee=breakdown.flat_fee,
            shipping_price=breakdown.shipping_price,
            settlement_amount=breakdown.settlement_amount,
            store_verified=sub_order.store.is_verified,
            scheduled_release_time=sub_order.return_window,
            metadata={
                "deliveryDate": sub_order.delivery_date.isoformat()
                if sub_order.delivery_date
                else None,
            },
        )
        if breakdown.settlement_amount > 0:
            WalletService.adjust_pending(
                wallet.id,
                breakdown.settlement_amount,
                reason=f"Escrow held for sub-order {sub_order.id}",
            )

        cls.get_logger().info(
            "Fund release created",
            extra={
                "fund_release_id": str(release.id),
                "sub_order_id": str(sub_order.id),
                "amount": release.settlement_amount,
                "scheduled_release_time": release.scheduled_release_time.isoformat(),
            },
        )
        return release

    @classmethod
    def release_sub_order(
        cls,
        sub_order_id: uuid.UUID | str,
        now=None,
        trigger: str | None = None,
        admin=None,
        notes: str = "",
    ) -> ServiceResult[FundRelease]:
        """
        Release one sub-order's escrow into its store wallet.

        Re-validates everything under row locks, so it is safe to call from
        concurrent workers and safe to retry. An already-released sub-order
        succeeds without a second credit.

        Args:
            trigger: Recorded on the release instead of the derived one
            admin: Administrator releasing by hand; audited after commit
            notes: Stored in admin_notes

        Returns:
            ServiceResult with the FundRelease. Failure codes:
            SUB_ORDER_NOT_FOUND, ESCROW_ALREADY_REFUNDED, NOT_DELIVERED,
            RETURN_WINDOW_OPEN, INVALID_RELEASE_STATE, ESCROW_INVARIANT_VIOLATION

        Raises:
            Exception: Unexpected failures propagate so the caller can record
                them with record_failure()
        """
        logger = cls.get_logger()
        now = now or timezone.now()
        log_context = {"sub_order_id": str(sub_order_id)}

        try:
            with cls.atomic():
                try:
                    sub_order = lock_for_update(SubOrder, sub_order_id)
                except NotFoundError as e:
                    return ServiceResult.failure(e.message, error_code="SUB_ORDER_NOT_FOUND")

                release = (
                    FundRelease.objects.select_for_update()
                    .filter(sub_order=sub_order)
                    .first()
                )

                if sub_order.escrow_released:
                    logger.info("Escrow already released", extra=log_context)
                    return ServiceResult.success(release)

                if sub_order.escrow_refunded:
                    logger.critical(
                        "Release attempted on a refunded sub-order",
                        extra=log_context,
                    )
                    return ServiceResult.failure(
                        "Escrow has already been refunded",
                        error_code="ESCROW_ALREADY_REFUNDED",
                    )

                if sub_order.delivery_status != DeliveryStatus.DELIVERED:
                    return ServiceResult.failure(
                        f"Sub-order is {sub_order.delivery_status}, not delivered",
                        error_code="NOT_DELIVERED",
                    )

                if sub_order.return_window is None or now <= sub_order.return_window:
                    return ServiceResult.failure(
                        "Return window has not elapsed",
                        error_code="RETURN_WINDOW_OPEN",
                    )

                if release is None:
                    release = cls.create_for_sub_order(sub_order)
                    release = FundRelease.objects.select_for_update().get(pk=release.pk)

                if release.status == FundReleaseStatus.FAILED:
                    release.retry()

                if release.status not in (FundReleaseStatus.PENDING, FundReleaseStatus.READY):
                    logger.critical(
                        f"Escrow held but fund release is {release.status}",
                        extra={**log_context, "fund_release_id": str(release.id)},
                    )
                    return ServiceResult.failure(
                        f"Fund release is {release.status}",
                        error_code="INVALID_RELEASE_STATE",
                    )

                trigger = trigger or (
                    release.trigger
                    if release.delivery_confirmed and release.trigger
                    else FundReleaseTrigger.TIME_ELAPSED
                )
                if notes:
                    release.admin_notes = notes
                release.start_processing()

                sub_order.release_escrow(released_at=now)
                sub_order.save(
                    update_fields=[
                        "escrow_held",
                        "escrow_released",
                        "escrow_released_at",
                        "updated_at",
                    ]
                )

                if release.settlement_amount > 0:
                    WalletService.credit(
                        release.wallet_id,
                        release.settlement_amount,
                        TransactionSource.ORDER,
                        description=f"Escrow release for sub-order {sub_order.id}",
                        related_order=sub_order.order,
                        related_sub_order=sub_order,
                        related_document_type="fund_release",
                        related_document_id=release.id,
                        idempotency_key=f"fund_release:{release.id}:release",
                        pending_delta=-release.settlement_amount,
                        count_as_earned=True,
                    )

                release.mark_released(trigger=trigger, released_at=now)
                release.save()

                if admin is not None:
                    audit_after_commit(
                        "fund_release.released_by_admin",
                        admin,
                        "fund_release",
                        release.id,
                        {"sub_order_id": str(sub_order.id), "notes": notes},
                    )

                notify_after_commit(
                    "escrow_released",
                    sub_order.store.email,
                    {
                        "subOrderId": str(sub_order.id),
                        "orderId": str(sub_order.order_id),
                        "amount": release.settlement_amount,
                    },
                )
        except EscrowInvariantError as e:
            logger.critical(
                f"Escrow invariant violated during release: {e}",
                extra=log_context,
            )
            return ServiceResult.from_exception(e)

        logger.info(
            "Escrow released",
            extra={
                **log_context,
                "fund_release_id": str(release.id),
                "amount": release.settlement_amount,
                "trigger": trigger,
            },
        )
        return ServiceResult.success(release)

    @classmethod
    def release_by_admin(
        cls,
        admin,
        sub_order_id: uuid.UUID | str,
        notes: str = "",
    ) -> ServiceResult[FundRelease]:
        """
        Release escrow from the admin release queue.

        Takes the same per-sub-order lock as the scheduler without waiting
        for it, then runs release_sub_order(), which re-checks the release
        predicate under the row lock.

        Returns:
            ServiceResult with the FundRelease. Adds LOCK_ACQUISITION_FAILED
            to the release_sub_order() failure codes.
        """
        lock_key = f"escrow:release:{sub_order_id}"
        try:
            with DistributedLock(lock_key, ttl=ADMIN_RELEASE_LOCK_TTL, blocking=False):
                result = cls.release_sub_order(
                    sub_order_id,
                    trigger=FundReleaseTrigger.ADMIN_APPROVED,
                    admin=admin,
                    notes=notes,
                )
        except LockAcquisitionError as e:
            cls.get_logger().warning(
                "Release already in progress",
                extra={"sub_order_id": str(sub_order_id), "lock_key": lock_key},
            )
            return ServiceResult.from_exception(e)

        if result:
            cls.get_logger().info(
                "Escrow released by administrator",
                extra={"sub_order_id": str(sub_order_id), "admin_id": str(admin.pk)},
            )
        return result

    @classmethod
    def record_failure(cls, sub_order_id: uuid.UUID | str, reason: str) -> FundRelease | None:
        """
        Mark the sub-order's fund release FAILED in a fresh transaction.

        Called after release_sub_order() rolled back; the scheduler picks
        FAILED releases up again on its next run. A release that is already
        FAILED records the new failure on top of the earlier ones.
        """
        with cls.atomic():
            release = (
                FundRelease.objects.select_for_update()
                .filter(sub_order_id=sub_order_id)
                .first()
            )
            if release is None:
                return None
            if release.status not in (
                FundReleaseStatus.PENDING,
                FundReleaseStatus.READY,
                FundReleaseStatus.PROCESSING,
                FundReleaseStatus.FAILED,
            ):
                return release

            release.mark_failed(reason=reason[:2000])
            release.save()

        cls.get_logger().warning(
            "Fund release marked failed",
            extra={
                "fund_release_id": str(release.id),
                "sub_order_id": str(sub_order_id),
                "failure_count": release.failure_count,
                "reason": reason,
            },
        )
        return release

    @classmethod
    def reverse_fund_release(
        cls,
        fund_release_id: uuid.UUID | str,
        admin,
        reason: str,
        expected_version: int | None = None,
    ) -> ServiceResult[FundRelease]:
        """
        Compensating admin action: RELEASED -> REVERSED.

        Debits the wallet with an ADJUSTMENT entry and parks the amount back
        in ``pending``. Escrow flags on the sub-order stay terminal.
        """
        logger = cls.get_logger()

        if not reason or not reason.strip():
            return ServiceResult.failure("A reason is required", error_code="REASON_REQUIRED")

        try:
            with cls.atomic():
                release = lock_for_update(FundRelease, fund_release_id, expected_version)

                if release.status != FundReleaseStatus.RELEASED:
                    return ServiceResult.failure(
                        f"Only released fund releases can be reversed (current: {release.status})",
                        error_code="INVALID_STATE_TRANSITION",
                    )

                if release.settlement_amount > 0:
                    WalletService.debit(
                        release.wallet_id,
                        release.settlement_amount,
                        TransactionSource.ADJUSTMENT,
                        description=f"Reversal of fund release {release.id}: {reason}",
                        related_order=release.order,
                        related_sub_order=release.sub_order,
                        related_document_type="fund_release",
                        related_document_id=release.id,
                        idempotency_key=f"fund_release:{release.id}:reverse",
                        pending_delta=release.settlement_amount,
                    )

                release.reverse(reason=reason)
                release.save()

                notify_after_commit(
                    "fund_release_reversed",
                    release.store.email,
                    {
                        "fundReleaseId": str(release.id),
                        "amount": release.settlement_amount,
                        "reason": reason,
                    },
                )
                audit_after_commit(
                    "fund_release.reversed",
                    admin,
                    "fund_release",
                    release.id,
                    {"amount": release.settlement_amount, "reason": reason},
                )
        except InsufficientBalanceError as e:
            logger.warning(
                "Fund release reversal blocked by wallet balance",
                extra={"fund_release_id": str(fund_release_id), **e.details},
            )
            return ServiceResult.from_exception(e)
        except NotFoundError as e:
            return ServiceResult.failure(e.message, error_code="FUND_RELEASE_NOT_FOUND")

        logger.info(
            "Fund release reversed",
            extra={"fund_release_id": str(release.id), "amount": release.settlement_amount},
        )
        return ServiceResult.success(release)


# =============================================================================
# Query Service
# =============================================================================


SORT_FIELDS = {
    "created_at": "created_at",
    "scheduled_release_time": "scheduled_release_time",
    "actual_released_at": "actual_released_at",
    "amount": "settlement_amount",
}


class FundReleaseQueryService(BaseService):
    """Read-only fund release listings. No transactions, no locks."""

    @staticmethod
    def _apply_filters(queryset, filters: dict[str, Any]):
        status = filters.get("status")
        if status in FundReleaseStatus.values:
            queryset = queryset.filter(status=status)
        if filters.get("orderId"):
            queryset = queryset.filter(order_id=filters["orderId"])
        if filters.get("storeId"):
            queryset = queryset.filter(store_id=filters["storeId"])

        sort_field = SORT_FIELDS.get(filters.get("sortBy") or "created_at", "created_at")
        prefix = "" if filters.get("sortOrder") == "asc" else "-"
        return queryset.order_by(f"{prefix}{sort_field}", "-id")

    @classmethod
    def get_store_fund_releases(
        cls,
        store: Store,
        filters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Paginated fund releases for one store.

        Filters:
            status: One of the FundReleaseStatus values
            orderId: Restrict to one order
            sortBy: created_at | scheduled_release_time | actual_released_at | amount
            sortOrder: asc | desc (default desc)
            page / pageSize
        """
        filters = filters or {}
        queryset = FundRelease.objects.filter(store=store).select_related("sub_order")
        return paginate_queryset(
            cls._apply_filters(queryset, filters), filters.get("page"), filters.get("pageSize")
        )

    @classmethod
    def list_for_admin(cls, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fund releases across all stores; same filters plus storeId."""
        filters = filters or {}
        queryset = FundRelease.objects.select_related("sub_order", "store")
        return paginate_queryset(
            cls._apply_filters(queryset, filters), filters.get("page"), filters.get("pageSize")
        )

    @staticmethod
    def get_store_summary_stats(store: Store) -> dict[str, Any]:
        """
        Count and total amount per status, with zero for absent statuses.

        Example:
            {
                "byStatus": {"pending": {"count": 2, "totalAmount": 95000}, ...},
                "totalCount": 3,
                "totalAmount": 140000,
            }
        """
        rows = (
            FundRelease.objects.filter(store=store)
            .values("status")
            .annotate(count=Count("id"), total=Sum("settlement_amount"))
            .order_by()
        )
        by_status = {status: {"count": 0, "totalAmount": 0} for status in FundReleaseStatus.values}
        for row in rows:
            by_status[row["status"]] = {
                "count": row["count"],
                "totalAmount": int(row["total"] or 0),
            }
        return {
            "byStatus": by_status,
            "totalCount": sum(s["count"] for s in by_status.values()),
            "totalAmount": sum(s["totalAmount"] for s in by_status.values()),
        }

    @staticmethod
    def get_fund_release_detail(
        fund_release_id: uuid.UUID | str,
        store: Store | None = None,
    ) -> FundRelease:
        """
        One release with its sub-order and items loaded.

        Raises:
            NotFoundError: Unknown id, or the release belongs to another store
        """
        queryset = FundRelease.objects.select_related("sub_order", "order", "store").prefetch_related(
            "sub_order__items"
        )
        if store is not None:
            queryset = queryset.filter(store=store)
        try:
            return queryset.get(pk=fund_release_id)
        except (FundRelease.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(
                "Fund release not found",
                error_code="FUND_RELEASE_NOT_FOUND",
                details={"fund_release_id": str(fund_release_id)},
            )
