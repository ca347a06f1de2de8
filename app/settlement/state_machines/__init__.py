"""
State machine enums for settlement models.

This module exposes the TextChoices used by settlement models with django-fsm.
"""

from settlement.state_machines.states import (
    PRE_DELIVERY_STATUSES,
    REFUND_QUEUE_STATUSES,
    DeliveryStatus,
    FundReleaseStatus,
    FundReleaseTrigger,
    PaymentStatus,
    ProductType,
    StoreStatus,
    TransactionSource,
    TransactionType,
    WithdrawalStatus,
)

__all__ = [
    "PRE_DELIVERY_STATUSES",
    "REFUND_QUEUE_STATUSES",
    "DeliveryStatus",
    "FundReleaseStatus",
    "FundReleaseTrigger",
    "PaymentStatus",
    "ProductType",
    "StoreStatus",
    "TransactionSource",
    "TransactionType",
    "WithdrawalStatus",
]
