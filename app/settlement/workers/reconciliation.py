"""
Wallet reconciliation worker.

Compares each wallet's cached balance with the signed sum of its ledger.
Divergence is never auto-healed: the ledger is the source of truth, but a
mismatch means a write path bypassed WalletService and needs a person.

Usage:
    from settlement.workers import reconcile_wallet_balances

    reconcile_wallet_balances.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from settlement.models import Wallet

logger = logging.getLogger(__name__)

# Wallets loaded per database round-trip
RECONCILIATION_CHUNK_SIZE = 500


@shared_task(bind=True)
def reconcile_wallet_balances(self) -> dict:
    """
    Check every wallet against its ledger.

    Returns:
        Dict with wallets_checked, discrepancies and the ids of divergent
        wallets
    """
    from settlement.services import WalletService

    logger.info("Starting wallet reconciliation run")

    wallets_checked = 0
    divergent: list[str] = []

    for wallet in Wallet.objects.order_by("created_at").iterator(
        chunk_size=RECONCILIATION_CHUNK_SIZE
    ):
        report = WalletService.reconcile(wallet)
        wallets_checked += 1
        if report.is_consistent:
            continue

        divergent.append(str(wallet.id))
        logger.critical(
            "Wallet balance does not match its ledger",
            extra={
                "wallet_id": str(wallet.id),
                "store_id": str(wallet.store_id),
                "cached_balance": report.cached_balance,
                "ledger_balance": report.ledger_balance,
                "difference": report.difference,
            },
        )

    logger.info(
        f"Wallet reconciliation complete: {len(divergent)} discrepancies",
        extra={"wallets_checked": wallets_checked, "discrepancies": len(divergent)},
    )
    return {
        "wallets_checked": wallets_checked,
        "discrepancies": len(divergent),
        "divergent_wallet_ids": divergent,
    }


__all__ = ["reconcile_wallet_balances"]
