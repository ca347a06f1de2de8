"""
Wallet and WalletTransaction models.

The WalletTransaction table is the ledger and the source of truth; the
Wallet row holds a cached balance that WalletService updates in the same
transaction as every ledger append. The reconciliation task asserts that
``balance == sum(credits) - sum(debits)``.

Usage:
    from settlement.services import WalletService

    # Never write wallet.balance directly
    WalletService.credit(
        wallet_id=wallet.id,
        amount=50000,
        source=TransactionSource.ORDER,
        description="Escrow release for sub-order ...",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.exceptions import WalletError
from settlement.state_machines import TransactionSource, TransactionType


class Wallet(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A store's settlement wallet.

    Fields:
        store: Owning store (one wallet per store)
        balance: Withdrawable funds in kobo (cached projection of the ledger)
        pending: Funds awaiting release or payout, in kobo
        total_earned: Lifetime escrow releases credited, in kobo
        currency: Always SETTLEMENT_CURRENCY
        version: Optimistic locking version
    """

    store = models.OneToOneField(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="wallet",
    )

    balance = models.BigIntegerField(
        default=0,
        help_text="Withdrawable balance in kobo; equals the signed ledger sum",
    )

    pending = models.BigIntegerField(
        default=0,
        help_text="Funds awaiting escrow release or withdrawal payout",
    )

    total_earned = models.BigIntegerField(
        default=0,
        help_text="Lifetime escrow releases credited to this wallet",
    )

    currency = models.CharField(
        max_length=3,
        default=settings.SETTLEMENT_CURRENCY,
    )

    class Meta:
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(pending__gte=0),
                name="wallet_pending_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Wallet({self.store_id}, {self.balance} {self.currency})"


class WalletTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    Immutable ledger entry.

    Entries are never updated or deleted; corrections are new entries with
    source ADJUSTMENT.

    Fields:
        wallet: Wallet the entry belongs to
        type: CREDIT (adds to balance) or DEBIT (subtracts)
        source: Business event (order, withdrawal, refund, adjustment)
        amount: Positive amount in kobo
        balance_after: Wallet balance right after this entry
        related_order / related_sub_order: Settlement context, if any
        related_document_type / related_document_id: e.g. ("withdrawal", id)
        description: Human-readable explanation
        idempotency_key: Unique key preventing a duplicate posting
        created_at: When the entry was written
    """

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
    )

    type = models.CharField(
        max_length=10,
        choices=TransactionType.choices,
    )

    source = models.CharField(
        max_length=20,
        choices=TransactionSource.choices,
    )

    amount = models.PositiveBigIntegerField(
        help_text="Always positive; direction comes from type",
    )

    balance_after = models.BigIntegerField()

    related_order = models.ForeignKey(
        "settlement.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )

    related_sub_order = models.ForeignKey(
        "settlement.SubOrder",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )

    related_document_type = models.CharField(max_length=30, blank=True, default="")

    related_document_id = models.UUIDField(null=True, blank=True)

    description = models.CharField(max_length=255, blank=True, default="")

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Prevents posting the same settlement event twice",
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet Transaction"
        verbose_name_plural = "Wallet Transactions"
        indexes = [
            models.Index(fields=["wallet", "created_at"]),
            models.Index(fields=["wallet", "type"]),
            models.Index(fields=["related_document_type", "related_document_id"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="wallet_transaction_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        sign = "+" if self.type == TransactionType.CREDIT else "-"
        return f"WalletTransaction({sign}{self.amount}, {self.source})"

    @property
    def signed_amount(self) -> int:
        return self.amount if self.type == TransactionType.CREDIT else -self.amount

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise WalletError(
                "Wallet transactions are immutable",
                error_code="LEDGER_IMMUTABLE",
                details={"transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise WalletError(
            "Wallet transactions cannot be deleted",
            error_code="LEDGER_IMMUTABLE",
            details={"transaction_id": str(self.pk)},
        )
