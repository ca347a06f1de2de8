"""
Workers for async settlement processing.

This module contains Celery tasks for background settlement operations:
- Fund release scheduler: Releases escrow once return windows elapse
- Refunds: Sends approved escrow refunds back to the buyer's card
- Reconciliation: Checks wallet balances against their ledgers
- Notifications: Delivers settlement emails

Usage:
    from settlement.workers import (
        issue_buyer_refund,
        process_due_fund_releases,
        reconcile_wallet_balances,
        release_sub_order_escrow,
        send_settlement_notification,
    )

    process_due_fund_releases.delay()
    release_sub_order_escrow.delay(str(sub_order_id))
"""

from settlement.workers.fund_release_scheduler import (
    due_sub_orders,
    process_due_fund_releases,
    release_sub_order_escrow,
)
from settlement.workers.notifications import send_settlement_notification
from settlement.workers.reconciliation import reconcile_wallet_balances
from settlement.workers.refunds import issue_buyer_refund

__all__ = [
    # Fund Release Scheduler
    "due_sub_orders",
    "process_due_fund_releases",
    "release_sub_order_escrow",
    # Refunds
    "issue_buyer_refund",
    # Reconciliation
    "reconcile_wallet_balances",
    # Notifications
    "send_settlement_notification",
]
