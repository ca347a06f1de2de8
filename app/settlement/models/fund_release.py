"""
FundRelease model: scheduling and audit record for one sub-order's payout.

Created when the sub-order first becomes DELIVERED, advanced by the fund
release scheduler, and terminal at RELEASED or REVERSED.

Usage:
    from settlement.models import FundRelease
    from settlement.state_machines import FundReleaseStatus

    release = FundRelease.objects.select_for_update().get(sub_order=sub_order)
    release.start_processing()
    release.mark_released(trigger=FundReleaseTrigger.TIME_ELAPSED)
    release.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.state_machines import FundReleaseStatus, FundReleaseTrigger

# Statuses the scheduler will (re)attempt
RELEASABLE_STATUSES = [
    FundReleaseStatus.PENDING,
    FundReleaseStatus.READY,
    FundReleaseStatus.FAILED,
]


class FundRelease(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Settlement schedule for a single sub-order.

    State Flow:
        PENDING → READY (delivery confirmed) → PROCESSING → RELEASED
        PENDING → PROCESSING (return window elapsed without confirmation)
        PENDING/READY/PROCESSING → FAILED → PENDING (retry)
        RELEASED → REVERSED (admin compensating action)

    Fields:
        order / sub_order / store / wallet: What is being settled and where to
        item_subtotal: Sub-order item total in kobo
        commission: Platform fee taken from item_subtotal
        applied_percentage_fee / applied_flat_fee: Commission breakdown
        shipping_price: Shipping paid by the buyer, passed through to the store
        settlement_amount: item_subtotal - commission + shipping_price
        status: Release state (FSM managed)
        trigger: What last advanced the release
        store_verified: Store verification at creation time
        delivery_confirmed / delivery_confirmed_at: Buyer or admin confirmation
        scheduled_release_time: Earliest release time (the return window)
        actual_released_at: When the wallet was credited
        failure_count / last_failed_at: Scheduler retry bookkeeping
        admin_notes: Failure reason or admin comment (not shown to stores)
        metadata: Free-form context (not shown to stores)
        version: Optimistic locking version
    """

    order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        related_name="fund_releases",
    )

    sub_order = models.OneToOneField(
        "settlement.SubOrder",
        on_delete=models.PROTECT,
        related_name="fund_release",
        help_text="At most one fund release per sub-order",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="fund_releases",
    )

    wallet = models.ForeignKey(
        "settlement.Wallet",
        on_delete=models.PROTECT,
        related_name="fund_releases",
    )

    # ==========================================================================
    # Settlement Breakdown (kobo)
    # ==========================================================================

    item_subtotal = models.PositiveBigIntegerField()

    commission = models.PositiveBigIntegerField()

    applied_percentage_fee = models.PositiveBigIntegerField(default=0)

    applied_flat_fee = models.PositiveBigIntegerField(default=0)

    shipping_price = models.PositiveBigIntegerField(default=0)

    settlement_amount = models.BigIntegerField(
        help_text="Amount credited to the store wallet on release",
    )

    # ==========================================================================
    # State & Rules
    # ==========================================================================

    status = FSMField(
        default=FundReleaseStatus.PENDING,
        choices=FundReleaseStatus.choices,
        db_index=True,
        protected=True,
        help_text="Release state (managed by FSM)",
    )

    trigger = models.CharField(
        max_length=30,
        choices=FundReleaseTrigger.choices,
        blank=True,
        default="",
    )

    store_verified = models.BooleanField(default=False)

    delivery_confirmed = models.BooleanField(default=False)

    delivery_confirmed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    scheduled_release_time = models.DateTimeField(
        db_index=True,
        help_text="Earliest time the scheduler may release (return window end)",
    )

    actual_released_at = models.DateTimeField(null=True, blank=True)

    failure_count = models.PositiveIntegerField(default=0)

    last_failed_at = models.DateTimeField(null=True, blank=True)

    reversed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Internal Notes
    # ==========================================================================

    admin_notes = models.TextField(blank=True, default="")

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Fund Release"
        verbose_name_plural = "Fund Releases"
        indexes = [
            models.Index(fields=["store", "status"]),
            models.Index(fields=["order", "sub_order"]),
            models.Index(fields=["scheduled_release_time", "status"]),
        ]
        permissions = [
            ("reverse_fund_release", "Can reverse a released fund release"),
            ("view_all_fund_releases", "Can list fund releases across stores"),
        ]

    def __str__(self) -> str:
        return f"FundRelease({self.id}, {self.status}, {self.settlement_amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=FundReleaseStatus.PENDING,
        target=FundReleaseStatus.READY,
    )
    def mark_ready(self, trigger: str):
        """
        Transition: PENDING -> READY

        Delivery was confirmed. Release still waits for the return window.
        """
        self.trigger = trigger
        self.delivery_confirmed = True
        self.delivery_confirmed_at = timezone.now()

    @transition(
        field=status,
        source=[FundReleaseStatus.PENDING, FundReleaseStatus.READY],
        target=FundReleaseStatus.PROCESSING,
    )
    def start_processing(self):
        """Transition: PENDING/READY -> PROCESSING"""

    @transition(
        field=status,
        source=FundReleaseStatus.PROCESSING,
        target=FundReleaseStatus.RELEASED,
    )
    def mark_released(self, trigger: str, released_at=None):
        """Transition: PROCESSING -> RELEASED"""
        self.trigger = trigger
        self.actual_released_at = released_at or timezone.now()

    @transition(
        field=status,
        source=[
            FundReleaseStatus.PENDING,
            FundReleaseStatus.READY,
            FundReleaseStatus.PROCESSING,
            FundReleaseStatus.FAILED,
        ],
        target=FundReleaseStatus.FAILED,
    )
    def mark_failed(self, reason: str):
        """
        Transition: PENDING/READY/PROCESSING/FAILED -> FAILED

        The latest reason is kept in admin_notes for the failure report;
        a release that fails again on retry counts another failure.
        """
        self.admin_notes = reason
        self.failure_count += 1
        self.last_failed_at = timezone.now()

    @transition(
        field=status,
        source=FundReleaseStatus.FAILED,
        target=FundReleaseStatus.PENDING,
    )
    def retry(self):
        """Transition: FAILED -> PENDING (next scheduler run)"""

    @transition(
        field=status,
        source=FundReleaseStatus.RELEASED,
        target=FundReleaseStatus.REVERSED,
    )
    def reverse(self, reason: str):
        """
        Transition: RELEASED -> REVERSED

        Compensating admin action; the wallet debit is posted by the service.
        """
        self.admin_notes = reason
        self.reversed_at = timezone.now()
