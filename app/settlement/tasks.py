"""
Celery task discovery for the settlement app.

Celery's autodiscover_tasks() imports ``<app>.tasks``; the tasks themselves
live in settlement.workers.

Periodic schedules (django-celery-beat, created by migration 0002):
    settlement-release-due-escrow: process_due_fund_releases, daily 02:00 UTC
    settlement-reconcile-wallets: reconcile_wallet_balances, daily 03:30 UTC
"""

from settlement.workers import (
    issue_buyer_refund,
    process_due_fund_releases,
    reconcile_wallet_balances,
    release_sub_order_escrow,
    send_settlement_notification,
)

__all__ = [
    "issue_buyer_refund",
    "process_due_fund_releases",
    "reconcile_wallet_balances",
    "release_sub_order_escrow",
    "send_settlement_notification",
]
