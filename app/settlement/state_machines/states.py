"""
State enums for settlement models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order payment status:
    pending → paid | failed | cancelled (terminal, never reverts)

SubOrder delivery status:
    pending → processing → shipped → out_for_delivery → delivered
    any pre-delivered state → canceled | failed_delivery | returned
    delivered → returned (while escrow is held and the return window is open)

Escrow (flags on SubOrder):
    held → released (terminal)
    held → refunded (terminal)

FundRelease status:
    pending → ready → processing → released → reversed
    pending/ready/processing → failed → pending (retry)

WithdrawalRequest status:
    pending → under_review → approved → processing → completed
    pending/under_review → rejected
    processing → failed
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Payment status of an Order.

    Terminal states: PAID, FAILED, CANCELLED
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class DeliveryStatus(models.TextChoices):
    """
    Delivery status of a SubOrder.

    Forward path:
        PENDING → PROCESSING → SHIPPED → OUT_FOR_DELIVERY → DELIVERED

    Side branches (from any pre-delivered state):
        CANCELED, FAILED_DELIVERY, RETURNED

    DELIVERED may also move to RETURNED while escrow is still held.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for Delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELED = "canceled", "Canceled"
    RETURNED = "returned", "Returned"
    FAILED_DELIVERY = "failed_delivery", "Failed Delivery"


# Ordered forward path; a sub-order may skip ahead but never move back
PRE_DELIVERY_STATUSES = [
    DeliveryStatus.PENDING,
    DeliveryStatus.PROCESSING,
    DeliveryStatus.SHIPPED,
    DeliveryStatus.OUT_FOR_DELIVERY,
]

# Statuses whose held escrow waits for a manual refund approval
REFUND_QUEUE_STATUSES = [
    DeliveryStatus.CANCELED,
    DeliveryStatus.FAILED_DELIVERY,
]


class FundReleaseStatus(models.TextChoices):
    """
    States for the FundRelease lifecycle.

    Terminal states: RELEASED (unless reversed), REVERSED

    Recovery Flow:
        FAILED → PENDING (retried on the next scheduler run)

    Compensating Flow:
        RELEASED → REVERSED (admin only)
    """

    PENDING = "pending", "Pending"
    READY = "ready", "Ready"
    PROCESSING = "processing", "Processing"
    RELEASED = "released", "Released"
    FAILED = "failed", "Failed"
    REVERSED = "reversed", "Reversed"


class FundReleaseTrigger(models.TextChoices):
    """What caused a FundRelease to advance."""

    TIME_ELAPSED = "time_elapsed", "Return Window Elapsed"
    DELIVERY_CONFIRMED = "delivery_confirmed", "Delivery Confirmed"
    AUTO_CONFIRMED_DELIVERY = "auto_confirmed_delivery", "Auto Confirmed Delivery"
    ADMIN_APPROVED = "admin_approved", "Admin Approved"


class TransactionType(models.TextChoices):
    """Direction of a WalletTransaction."""

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"


class TransactionSource(models.TextChoices):
    """Business event behind a WalletTransaction."""

    ORDER = "order", "Order"
    WITHDRAWAL = "withdrawal", "Withdrawal"
    REFUND = "refund", "Refund"
    ADJUSTMENT = "adjustment", "Adjustment"


class WithdrawalStatus(models.TextChoices):
    """
    States for a store's WithdrawalRequest.

    Terminal states: COMPLETED, REJECTED, FAILED
    """

    PENDING = "pending", "Pending"
    UNDER_REVIEW = "under_review", "Under Review"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"
    FAILED = "failed", "Failed"


class StoreStatus(models.TextChoices):
    """Only ACTIVE stores accept new orders."""

    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    SUSPENDED = "suspended", "Suspended"
    REJECTED = "rejected", "Rejected"


class ProductType(models.TextChoices):
    """Only PHYSICAL products require a shipping selection."""

    PHYSICAL = "physical", "Physical"
    DIGITAL = "digital", "Digital"
