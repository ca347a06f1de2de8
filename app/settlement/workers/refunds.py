"""
Buyer refund worker.

Escrow refunds are decided inside a database transaction (EscrowService);
the money goes back to the buyer's card afterwards through this task, so a
slow or failing gateway never holds a row lock.

Usage:
    from settlement.workers import issue_buyer_refund

    issue_buyer_refund.delay(str(sub_order_id))
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import transaction
from django.utils import timezone

from settlement.adapters import (
    FlutterwaveAdapter,
    IdempotencyKeyGenerator,
    backoff_delay,
    is_retryable_gateway_error,
)
from settlement.collaborators import notify_after_commit
from settlement.exceptions import PaymentGatewayError
from settlement.models import SubOrder

logger = logging.getLogger(__name__)

MAX_REFUND_RETRIES = 5

# Backoff between Celery retries (seconds)
REFUND_RETRY_BASE_DELAY = 30.0
REFUND_RETRY_MAX_DELAY = 900.0


@shared_task(bind=True, max_retries=MAX_REFUND_RETRIES, acks_late=True)
def issue_buyer_refund(self, sub_order_id: str) -> dict:
    """
    Refund a sub-order's item total and shipping to the buyer.

    Each sub-order is refunded at most once. The request carries a key
    derived from the sub-order id, and escrow_refund_attempted_at is claimed
    before it is sent. A failure the gateway may have processed (read
    timeout, 5xx) keeps the claim and is never resent automatically; it is
    logged at CRITICAL for reconciliation against the Flutterwave dashboard.
    Failures the gateway certainly rejected release the claim, and the
    retryable ones are retried with exponential backoff.

    Returns:
        Dict with status: one of "refunded", "already_refunded",
        "not_refunded", "not_found", "unconfirmed", "failed"
    """
    log_context = {"sub_order_id": str(sub_order_id)}

    sub_order = (
        SubOrder.objects.select_related("order", "order__buyer")
        .filter(pk=sub_order_id)
        .first()
    )
    if sub_order is None:
        logger.warning("Sub-order not found for buyer refund", extra=log_context)
        return {"status": "not_found", "sub_order_id": str(sub_order_id)}

    if sub_order.escrow_refund_reference:
        return {
            "status": "already_refunded",
            "sub_order_id": str(sub_order_id),
            "refund_id": sub_order.escrow_refund_reference,
        }

    if not sub_order.escrow_refunded:
        logger.error("Buyer refund requested for unrefunded escrow", extra=log_context)
        return {"status": "not_refunded", "sub_order_id": str(sub_order_id)}

    order = sub_order.order
    amount = sub_order.total_amount + sub_order.shipping_price
    idempotency_key = IdempotencyKeyGenerator.generate("refund", sub_order.id)
    log_context.update(
        {
            "order_id": str(order.id),
            "transaction_id": order.gateway_transaction_id,
            "amount": amount,
            "idempotency_key": idempotency_key,
        }
    )

    claimed = SubOrder.objects.filter(
        pk=sub_order.pk,
        escrow_refund_reference="",
        escrow_refund_attempted_at__isnull=True,
    ).update(escrow_refund_attempted_at=timezone.now())
    if not claimed:
        logger.critical(
            "Earlier buyer refund attempt has no confirmed outcome, not resending",
            extra=log_context,
        )
        return {"status": "unconfirmed", "sub_order_id": str(sub_order_id)}

    try:
        refund = FlutterwaveAdapter.refund_transaction(
            order.gateway_transaction_id, amount, idempotency_key=idempotency_key
        )
    except PaymentGatewayError as e:
        if e.outcome_unknown:
            logger.critical(
                f"Buyer refund outcome unknown, reconcile before reissuing: {e}",
                extra={**log_context, "error_code": e.error_code},
            )
            return {
                "status": "unconfirmed",
                "sub_order_id": str(sub_order_id),
                "error": str(e),
                "error_code": e.error_code,
            }

        SubOrder.objects.filter(pk=sub_order.pk).update(escrow_refund_attempted_at=None)

        if is_retryable_gateway_error(e) and self.request.retries < MAX_REFUND_RETRIES:
            countdown = backoff_delay(
                self.request.retries,
                base=REFUND_RETRY_BASE_DELAY,
                max_delay=REFUND_RETRY_MAX_DELAY,
            )
            logger.warning(
                f"Buyer refund failed, retrying in {countdown:.0f}s: {e}",
                extra={**log_context, "attempt": self.request.retries + 1},
            )
            raise self.retry(exc=e, countdown=countdown)

        logger.error(
            f"Buyer refund failed, manual follow-up required: {e}",
            extra={**log_context, "error_code": e.error_code},
        )
        return {
            "status": "failed",
            "sub_order_id": str(sub_order_id),
            "error": str(e),
            "error_code": e.error_code,
        }

    with transaction.atomic():
        SubOrder.objects.filter(pk=sub_order.pk).update(escrow_refund_reference=refund.id)
        notify_after_commit(
            "escrow_refund_issued",
            order.buyer.email,
            {
                "orderId": str(order.id),
                "subOrderId": str(sub_order.id),
                "amount": amount,
            },
        )

    logger.info(
        "Buyer refund issued",
        extra={**log_context, "refund_id": refund.id},
    )
    return {
        "status": "refunded",
        "sub_order_id": str(sub_order_id),
        "refund_id": refund.id,
        "amount": amount,
    }


__all__ = ["issue_buyer_refund"]
