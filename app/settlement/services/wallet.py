"""
Wallet ledger service.

All balance changes go through WalletService.credit()/debit(): the wallet
row is locked with SELECT ... FOR UPDATE, the ledger entry is appended and
the cached balance is updated in the same transaction.

Key features:
- Idempotent postings via WalletTransaction.idempotency_key (safe to retry)
- Debits never take the balance below zero
- Read paths (history, reconciliation report) take no locks
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db.models import Case, F, IntegerField, Sum, When

from core.exceptions import NotFoundError
from core.helpers import paginate_queryset
from core.services import BaseService

from settlement.exceptions import InsufficientBalanceError, WalletError
from settlement.models import Wallet, WalletTransaction
from settlement.state_machines import TransactionSource, TransactionType

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from settlement.models import Store


@dataclass
class ReconciliationReport:
    """Cached balance against the ledger sum for one wallet."""

    wallet_id: uuid.UUID
    cached_balance: int
    ledger_balance: int

    @property
    def difference(self) -> int:
        return self.cached_balance - self.ledger_balance

    @property
    def is_consistent(self) -> bool:
        return self.difference == 0


class WalletService(BaseService):
    """
    Ledger writes and reads for store wallets.

    Every write method must be called inside, or opens, a transaction; the
    wallet row stays locked until that transaction ends, which serializes
    withdrawals and escrow releases against the same wallet.
    """

    # =========================================================================
    # Lookup
    # =========================================================================

    @staticmethod
    def get_or_create_wallet(store: Store) -> Wallet:
        wallet, _ = Wallet.objects.get_or_create(store=store)
        return wallet

    @staticmethod
    def get_wallet_for_store(store: Store) -> Wallet:
        try:
            return Wallet.objects.get(store=store)
        except Wallet.DoesNotExist:
            raise NotFoundError(
                "Wallet not found for this store",
                error_code="WALLET_NOT_FOUND",
                details={"store_id": str(store.pk)},
            )

    @staticmethod
    def lock_wallet(wallet_id: uuid.UUID) -> Wallet:
        """Re-read the wallet under a row lock. Call inside a transaction."""
        try:
            return Wallet.objects.select_for_update().get(pk=wallet_id)
        except Wallet.DoesNotExist:
            raise NotFoundError(
                f"Wallet {wallet_id} not found",
                error_code="WALLET_NOT_FOUND",
                details={"wallet_id": str(wallet_id)},
            )

    # =========================================================================
    # Postings
    # =========================================================================

    @classmethod
    def credit(
        cls,
        wallet_id: uuid.UUID,
        amount: int,
        source: str,
        *,
        description: str = "",
        related_order=None,
        related_sub_order=None,
        related_document_type: str = "",
        related_document_id: uuid.UUID | None = None,
        idempotency_key: str | None = None,
        pending_delta: int = 0,
        count_as_earned: bool = False,
    ) -> WalletTransaction:
        """
        Append a credit and raise the cached balance.

        Args:
            wallet_id: Wallet to credit
            amount: Positive amount in kobo
            source: TransactionSource value
            pending_delta: Change to apply to ``pending`` in the same write
            count_as_earned: Add the amount to ``total_earned`` (escrow releases)
            idempotency_key: Returns the existing entry if already posted

        Returns:
            The created or existing WalletTransaction
        """
        return cls._post(
            wallet_id=wallet_id,
            tx_type=TransactionType.CREDIT,
            amount=amount,
            source=source,
            description=description,
            related_order=related_order,
            related_sub_order=related_sub_order,
            related_document_type=related_document_type,
            related_document_id=related_document_id,
            idempotency_key=idempotency_key,
            pending_delta=pending_delta,
            count_as_earned=count_as_earned,
        )

    @classmethod
    def debit(
        cls,
        wallet_id: uuid.UUID,
        amount: int,
        source: str,
        *,
        description: str = "",
        related_order=None,
        related_sub_order=None,
        related_document_type: str = "",
        related_document_id: uuid.UUID | None = None,
        idempotency_key: str | None = None,
        pending_delta: int = 0,
    ) -> WalletTransaction:
        """
        Append a debit and lower the cached balance.

        Raises:
            InsufficientBalanceError: If the locked balance is below ``amount``
        """
        return cls._post(
            wallet_id=wallet_id,
            tx_type=TransactionType.DEBIT,
            amount=amount,
            source=source,
            description=description,
            related_order=related_order,
            related_sub_order=related_sub_order,
            related_document_type=related_document_type,
            related_document_id=related_document_id,
            idempotency_key=idempotency_key,
            pending_delta=pending_delta,
            count_as_earned=False,
        )

    @classmethod
    def adjust_pending(cls, wallet_id: uuid.UUID, delta: int, reason: str = "") -> Wallet:
        """
        Move funds into (positive delta) or out of the pending bucket.

        Pending never goes below zero; an underflow is logged and clamped,
        since pending is informational and carries no ledger entries.
        """
        with cls.atomic():
            wallet = cls.lock_wallet(wallet_id)
            cls._apply_pending(wallet, delta, reason)
            wallet.save(update_fields=["pending", "updated_at"])
        return wallet

    @classmethod
    def _apply_pending(cls, wallet: Wallet, delta: int, reason: str = "") -> None:
        new_pending = wallet.pending + delta
        if new_pending < 0:
            cls.get_logger().warning(
                f"Pending underflow on wallet {wallet.id}, clamping to zero",
                extra={
                    "wallet_id": str(wallet.id),
                    "pending": wallet.pending,
                    "delta": delta,
                    "reason": reason,
                },
            )
            new_pending = 0
        wallet.pending = new_pending

    @classmethod
    def _post(
        cls,
        *,
        wallet_id: uuid.UUID,
        tx_type: str,
        amount: int,
        source: str,
        description: str,
        related_order,
        related_sub_order,
        related_document_type: str,
        related_document_id,
        idempotency_key: str | None,
        pending_delta: int,
        count_as_earned: bool,
    ) -> WalletTransaction:
        if amount <= 0:
            raise WalletError(
                "Transaction amount must be positive",
                error_code="INVALID_AMOUNT",
                details={"amount": amount},
            )
        if source not in TransactionSource.values:
            raise WalletError(
                f"Unknown transaction source '{source}'",
                error_code="INVALID_SOURCE",
            )

        logger = cls.get_logger()

        with cls.atomic():
            wallet = cls.lock_wallet(wallet_id)

            # Idempotency check before any balance validation
            if idempotency_key:
                existing = WalletTransaction.objects.filter(
                    idempotency_key=idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Wallet posting already recorded",
                        extra={
                            "wallet_id": str(wallet_id),
                            "idempotency_key": idempotency_key,
                        },
                    )
                    return existing

            if tx_type == TransactionType.DEBIT:
                if wallet.balance < amount:
                    raise InsufficientBalanceError(
                        wallet_id=wallet.id,
                        required=amount,
                        available=wallet.balance,
                    )
                wallet.balance -= amount
            else:
                wallet.balance += amount
                if count_as_earned:
                    wallet.total_earned += amount

            if pending_delta:
                cls._apply_pending(wallet, pending_delta, description)

            try:
                entry = WalletTransaction.objects.create(
                    wallet=wallet,
                    type=tx_type,
                    source=source,
                    amount=amount,
                    balance_after=wallet.balance,
                    related_order=related_order,
                    related_sub_order=related_sub_order,
                    related_document_type=related_document_type,
                    related_document_id=related_document_id,
                    description=description[:255],
                    idempotency_key=idempotency_key,
                )
            except IntegrityError:
                # Concurrent posting with the same key won the race
                raise WalletError(
                    "Duplicate wallet posting",
                    error_code="DUPLICATE_POSTING",
                    details={"idempotency_key": idempotency_key},
                )

            wallet.save(update_fields=["balance", "pending", "total_earned", "updated_at"])

        logger.info(
            f"Wallet {tx_type} posted",
            extra={
                "wallet_id": str(wallet_id),
                "transaction_id": str(entry.id),
                "amount": amount,
                "source": source,
                "balance_after": entry.balance_after,
            },
        )
        return entry

    # =========================================================================
    # Read Paths
    # =========================================================================

    @staticmethod
    def ledger_balance(wallet_id: uuid.UUID) -> int:
        """Signed sum of all ledger entries for the wallet."""
        total = WalletTransaction.objects.filter(wallet_id=wallet_id).aggregate(
            total=Sum(
                Case(
                    When(type=TransactionType.CREDIT, then=F("amount")),
                    When(type=TransactionType.DEBIT, then=-F("amount")),
                    output_field=IntegerField(),
                )
            )
        )["total"]
        return int(total or 0)

    @classmethod
    def reconcile(cls, wallet: Wallet) -> ReconciliationReport:
        """Compare the cached balance with the ledger. Never rewrites the balance."""
        wallet.refresh_from_db(fields=["balance"])
        return ReconciliationReport(
            wallet_id=wallet.id,
            cached_balance=wallet.balance,
            ledger_balance=cls.ledger_balance(wallet.id),
        )

    @staticmethod
    def transaction_history(
        store: Store,
        filters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Paginated ledger for a store's wallet, newest first.

        Filters:
            type: credit | debit
            source: order | withdrawal | refund | adjustment
            page / pageSize: Pagination (pageSize clamped to 1..100)
        """
        filters = filters or {}
        queryset = WalletTransaction.objects.filter(wallet__store=store)
        if filters.get("type") in TransactionType.values:
            queryset = queryset.filter(type=filters["type"])
        if filters.get("source") in TransactionSource.values:
            queryset = queryset.filter(source=filters["source"])

        return paginate_queryset(
            queryset.order_by("-created_at"), filters.get("page"), filters.get("pageSize")
        )
