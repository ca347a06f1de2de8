"""
Settlement models.

Models:
    Store, Product: Seller and catalog rows
    Order, SubOrder, SubOrderItem: Checkout aggregate; escrow lives on SubOrder
    FundRelease: Per-sub-order release schedule and audit record
    Wallet, WalletTransaction: Store wallet and its append-only ledger
    WithdrawalRequest: Store payout requests
"""

from settlement.models.fund_release import RELEASABLE_STATUSES, FundRelease
from settlement.models.order import (
    REFUNDABLE_STATUSES,
    Order,
    SubOrder,
    SubOrderItem,
)
from settlement.models.store import Product, Store
from settlement.models.wallet import Wallet, WalletTransaction
from settlement.models.withdrawal import REVIEWABLE_STATUSES, WithdrawalRequest

__all__ = [
    "REFUNDABLE_STATUSES",
    "RELEASABLE_STATUSES",
    "REVIEWABLE_STATUSES",
    "FundRelease",
    "Order",
    "Product",
    "Store",
    "SubOrder",
    "SubOrderItem",
    "Wallet",
    "WalletTransaction",
    "WithdrawalRequest",
]
