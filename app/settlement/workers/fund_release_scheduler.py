"""
Fund release scheduler.

Moves escrow for delivered sub-orders into store wallets once their return
window has passed.

Tasks:
- process_due_fund_releases: Periodic scan that queues one release task per
  due sub-order
- release_sub_order_escrow: Releases one sub-order under a distributed lock

Usage:
    # Scheduled daily via django-celery-beat
    from settlement.workers import process_due_fund_releases

    process_due_fund_releases.delay()

    # Release a specific sub-order now
    release_sub_order_escrow.delay(str(sub_order_id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from settlement.exceptions import LockAcquisitionError
from settlement.locks import DistributedLock
from settlement.models import RELEASABLE_STATUSES, SubOrder
from settlement.state_machines import DeliveryStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Lock TTL for a single release (seconds)
RELEASE_LOCK_TTL = 60

# Wait for a concurrent release of the same sub-order (seconds)
RELEASE_LOCK_TIMEOUT = 10.0


def due_sub_orders(now=None):
    """
    Sub-orders whose escrow can be released.

    Delivered, still held, return window passed, and either no fund release
    yet or one the scheduler may (re)attempt. Oldest window first.
    """
    now = now or timezone.now()
    return (
        SubOrder.objects.filter(
            delivery_status=DeliveryStatus.DELIVERED,
            escrow_held=True,
            return_window__lt=now,
        )
        .filter(
            Q(fund_release__isnull=True) | Q(fund_release__status__in=RELEASABLE_STATUSES)
        )
        .order_by("return_window")
    )


# =============================================================================
# Periodic Task: Scan for Due Releases
# =============================================================================


@shared_task(bind=True)
def process_due_fund_releases(self, batch_size: int | None = None) -> dict:
    """
    Queue release tasks for every sub-order whose return window has elapsed.

    Idempotent: release_sub_order_escrow re-checks state under locks, so a
    sub-order queued twice is credited once.

    Returns:
        Dict with queued_count and failed_to_queue
    """
    batch_size = batch_size or settings.SETTLEMENT_RELEASE_BATCH_SIZE
    logger.info("Starting due fund release scan", extra={"batch_size": batch_size})

    sub_order_ids = list(due_sub_orders().values_list("id", flat=True)[:batch_size])

    queued_count = 0
    failed_to_queue = 0
    for sub_order_id in sub_order_ids:
        try:
            release_sub_order_escrow.delay(str(sub_order_id))
            queued_count += 1
        except Exception as e:
            failed_to_queue += 1
            logger.error(
                f"Failed to queue fund release: {e}",
                extra={"sub_order_id": str(sub_order_id)},
            )

    logger.info(
        f"Due fund release scan complete: queued {queued_count} sub-orders",
        extra={"queued_count": queued_count, "failed_to_queue": failed_to_queue},
    )
    return {"queued_count": queued_count, "failed_to_queue": failed_to_queue}


# =============================================================================
# Individual Release Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def release_sub_order_escrow(self, sub_order_id: str) -> dict:
    """
    Release one sub-order's escrow.

    An unexpected error rolls the release back, marks the fund release
    FAILED in a fresh transaction and is logged; the next scheduler run
    retries it.

    Returns:
        Dict with status: one of "released", "not_found", "skipped",
        "lock_failed", "failed"
    """
    from settlement.services import FundReleaseService

    try:
        UUID(str(sub_order_id))
    except ValueError:
        logger.error(f"Invalid sub_order_id format: {sub_order_id}")
        return {
            "status": "not_found",
            "sub_order_id": sub_order_id,
            "error": "Invalid UUID format",
        }

    log_context = {"sub_order_id": str(sub_order_id)}
    lock_key = f"escrow:release:{sub_order_id}"

    try:
        with DistributedLock(lock_key, ttl=RELEASE_LOCK_TTL, timeout=RELEASE_LOCK_TIMEOUT):
            result = FundReleaseService.release_sub_order(sub_order_id)
    except LockAcquisitionError as e:
        logger.warning(
            f"Could not acquire lock for release: {e}",
            extra={**log_context, "lock_key": lock_key},
        )
        return {"status": "lock_failed", "sub_order_id": str(sub_order_id), "error": str(e)}
    except Exception as e:
        logger.exception(f"Unexpected error during escrow release: {e}", extra=log_context)
        FundReleaseService.record_failure(sub_order_id, str(e))
        return {
            "status": "failed",
            "sub_order_id": str(sub_order_id),
            "error": str(e),
            "error_code": "UNEXPECTED_ERROR",
        }

    if result.success:
        return {
            "status": "released",
            "sub_order_id": str(sub_order_id),
            "fund_release_id": str(result.data.id) if result.data else None,
        }

    if result.error_code == "SUB_ORDER_NOT_FOUND":
        return {"status": "not_found", "sub_order_id": str(sub_order_id)}

    logger.info(
        f"Escrow release skipped: {result.error}",
        extra={**log_context, "error_code": result.error_code},
    )
    return {
        "status": "skipped",
        "sub_order_id": str(sub_order_id),
        "error": result.error,
        "error_code": result.error_code,
    }


__all__ = [
    "due_sub_orders",
    "process_due_fund_releases",
    "release_sub_order_escrow",
]
