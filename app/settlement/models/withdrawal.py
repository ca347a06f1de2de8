"""
WithdrawalRequest model: a store's request to pay wallet funds out to a bank.

The requested amount leaves the balance and sits in the wallet's pending
bucket while an administrator reviews it.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.state_machines import WithdrawalStatus

REVIEWABLE_STATUSES = [WithdrawalStatus.PENDING, WithdrawalStatus.UNDER_REVIEW]


class WithdrawalRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Payout request raised by a store.

    State Flow:
        PENDING → UNDER_REVIEW → APPROVED → PROCESSING → COMPLETED
        PENDING/UNDER_REVIEW → REJECTED (funds returned to balance)
        PROCESSING → FAILED (funds returned to balance)

    Fields:
        store / wallet: Who is being paid and which wallet funds it
        request_number: Public reference, WDR-XXXXXXXX
        requested_amount: Amount debited from the wallet, in kobo
        processing_fee: Percentage plus fixed fee, in kobo
        net_amount: requested_amount - processing_fee (what the bank receives)
        bank_details: Payout account snapshot
        status: Review state (FSM managed)
        status_history: [{status, changedAt, notes, actor}]
        reviewed_by / reviewed_at / review_notes: Admin review
        rejection_reason: Why the request was rejected
        transaction_reference: Bank transfer reference once paid
        processed_at: When the payout completed or failed
        ip_address / user_agent: Request origin
        version: Optimistic locking version
    """

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="withdrawal_requests",
    )

    wallet = models.ForeignKey(
        "settlement.Wallet",
        on_delete=models.PROTECT,
        related_name="withdrawal_requests",
    )

    request_number = models.CharField(
        max_length=20,
        unique=True,
        help_text="Public reference (WDR-XXXXXXXX)",
    )

    # ==========================================================================
    # Amounts (kobo)
    # ==========================================================================

    requested_amount = models.PositiveBigIntegerField()

    processing_fee = models.PositiveBigIntegerField()

    net_amount = models.PositiveBigIntegerField()

    bank_details = models.JSONField(
        default=dict,
        help_text="Snapshot of the payout account at request time",
    )

    description = models.CharField(max_length=255, blank=True, default="")

    status = FSMField(
        default=WithdrawalStatus.PENDING,
        choices=WithdrawalStatus.choices,
        db_index=True,
        protected=True,
        help_text="Review state (managed by FSM)",
    )

    status_history = models.JSONField(default=list, blank=True)

    # ==========================================================================
    # Review
    # ==========================================================================

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reviewed_withdrawals",
    )

    reviewed_at = models.DateTimeField(null=True, blank=True)

    review_notes = models.TextField(blank=True, default="")

    rejection_reason = models.TextField(blank=True, default="")

    transaction_reference = models.CharField(max_length=100, blank=True, default="")

    processed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Request Origin
    # ==========================================================================

    ip_address = models.GenericIPAddressField(null=True, blank=True)

    user_agent = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Withdrawal Request"
        verbose_name_plural = "Withdrawal Requests"
        indexes = [
            models.Index(fields=["store", "status"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(net_amount__gt=0),
                name="withdrawal_net_amount_positive",
            ),
        ]
        permissions = [
            ("review_withdrawal", "Can approve, reject and settle withdrawals"),
        ]

    def __str__(self) -> str:
        return f"WithdrawalRequest({self.request_number}, {self.status})"

    def record_status(self, status: str, notes: str = "", actor: str = "") -> None:
        self.status_history = [
            *(self.status_history or []),
            {
                "status": str(status),
                "changedAt": timezone.now().isoformat(),
                "notes": notes,
                "actor": actor,
            },
        ]

    def _review(self, reviewer, notes: str) -> None:
        self.reviewed_by = reviewer
        self.reviewed_at = timezone.now()
        self.review_notes = notes

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=WithdrawalStatus.PENDING,
        target=WithdrawalStatus.UNDER_REVIEW,
    )
    def start_review(self, reviewer):
        """Transition: PENDING -> UNDER_REVIEW"""
        self.reviewed_by = reviewer

    @transition(
        field=status,
        source=REVIEWABLE_STATUSES,
        target=WithdrawalStatus.APPROVED,
    )
    def approve(self, reviewer, notes: str = "", transaction_reference: str = ""):
        """Transition: PENDING/UNDER_REVIEW -> APPROVED"""
        self._review(reviewer, notes)
        self.transaction_reference = transaction_reference

    @transition(
        field=status,
        source=REVIEWABLE_STATUSES,
        target=WithdrawalStatus.REJECTED,
    )
    def reject(self, reviewer, reason: str):
        """Transition: PENDING/UNDER_REVIEW -> REJECTED"""
        self._review(reviewer, reason)
        self.rejection_reason = reason

    @transition(
        field=status,
        source=WithdrawalStatus.APPROVED,
        target=WithdrawalStatus.PROCESSING,
    )
    def start_processing(self):
        """Transition: APPROVED -> PROCESSING"""

    @transition(
        field=status,
        source=[WithdrawalStatus.APPROVED, WithdrawalStatus.PROCESSING],
        target=WithdrawalStatus.COMPLETED,
    )
    def complete(self, transaction_reference: str):
        """Transition: APPROVED/PROCESSING -> COMPLETED"""
        self.transaction_reference = transaction_reference
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[WithdrawalStatus.APPROVED, WithdrawalStatus.PROCESSING],
        target=WithdrawalStatus.FAILED,
    )
    def fail(self, reason: str):
        """Transition: APPROVED/PROCESSING -> FAILED"""
        self.rejection_reason = reason
        self.processed_at = timezone.now()
