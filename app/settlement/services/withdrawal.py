"""
Withdrawal request service.

Money Flow:
    create_request: balance -= amount, pending += amount (WITHDRAWAL debit)
    approve:        pending -= amount
    reject:         pending -= amount, balance += amount (ADJUSTMENT credit)
    fail:           balance += amount (ADJUSTMENT credit)
    complete:       no wallet change

Every write locks the withdrawal row (and the wallet row through
WalletService) inside one transaction; admin actions accept the version
the client last saw and fail with STALE_RECORD if it moved on.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q

from core.exceptions import NotFoundError
from core.helpers import paginate_queryset
from core.services import BaseService, ServiceResult

from settlement.collaborators import audit_after_commit, notify_after_commit
from settlement.exceptions import InsufficientBalanceError, StaleRecordError
from settlement.locks import lock_for_update
from settlement.models import REVIEWABLE_STATUSES, WithdrawalRequest
from settlement.services.escrow import _parse_date, actor_label
from settlement.services.wallet import WalletService
from settlement.state_machines import TransactionSource, WithdrawalStatus

if TYPE_CHECKING:
    from typing import Any

    from settlement.models import Store


def calculate_withdrawal_fee(amount: int) -> tuple[int, int]:
    """
    Processing fee and net payout for a withdrawal.

    fee = round(amount * WITHDRAWAL_FEE_PERCENT / 100) + WITHDRAWAL_FIXED_FEE

    Example:
        calculate_withdrawal_fee(200000)  # (8000, 192000)
    """
    percent = Decimal(str(settings.WITHDRAWAL_FEE_PERCENT))
    percentage_fee = int(
        (Decimal(amount) * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    fee = percentage_fee + settings.WITHDRAWAL_FIXED_FEE
    return fee, amount - fee


def generate_request_number() -> str:
    """WDR- followed by 8 upper-case hex characters, unique among requests."""
    for _ in range(5):
        candidate = f"WDR-{uuid.uuid4().hex[:8].upper()}"
        if not WithdrawalRequest.objects.filter(request_number=candidate).exists():
            return candidate
    return f"WDR-{uuid.uuid4().hex[:12].upper()}"


class WithdrawalService(BaseService):
    """Store payout requests and their admin review."""

    # =========================================================================
    # Store Side
    # =========================================================================

    @classmethod
    def create_request(
        cls,
        store: Store,
        amount: int,
        account_number: str,
        description: str = "",
        requested_by=None,
        ip_address: str | None = None,
        user_agent: str = "",
    ) -> ServiceResult[WithdrawalRequest]:
        """
        Validate and submit a withdrawal request.

        Validation failures leave the wallet untouched.

        Returns:
            ServiceResult with the new WithdrawalRequest. Failure codes:
            AMOUNT_BELOW_MINIMUM, AMOUNT_ABOVE_MAXIMUM, BANK_ACCOUNT_NOT_FOUND,
            AMOUNT_TOO_LOW_AFTER_FEES, WALLET_NOT_FOUND, INSUFFICIENT_BALANCE
        """
        logger = cls.get_logger()

        if amount < settings.WITHDRAWAL_MIN_AMOUNT:
            return ServiceResult.failure(
                f"Minimum withdrawal amount is {settings.WITHDRAWAL_MIN_AMOUNT}",
                error_code="AMOUNT_BELOW_MINIMUM",
            )
        if amount > settings.WITHDRAWAL_MAX_AMOUNT:
            return ServiceResult.failure(
                f"Maximum withdrawal amount is {settings.WITHDRAWAL_MAX_AMOUNT}",
                error_code="AMOUNT_ABOVE_MAXIMUM",
            )

        bank_account = store.get_payout_account(account_number)
        if bank_account is None:
            return ServiceResult.failure(
                "Selected bank account not found or not verified",
                error_code="BANK_ACCOUNT_NOT_FOUND",
            )

        fee, net_amount = calculate_withdrawal_fee(amount)
        if net_amount <= 0:
            return ServiceResult.failure(
                "Withdrawal amount is too low after fees",
                error_code="AMOUNT_TOO_LOW_AFTER_FEES",
            )

        try:
            wallet = WalletService.get_wallet_for_store(store)
        except NotFoundError as e:
            return ServiceResult.from_exception(e)

        try:
            with cls.atomic():
                # Lock first so the balance check below is authoritative
                locked_wallet = WalletService.lock_wallet(wallet.id)
                if locked_wallet.balance < amount:
                    raise InsufficientBalanceError(
                        wallet_id=wallet.id,
                        required=amount,
                        available=locked_wallet.balance,
                        message="Insufficient balance for withdrawal",
                    )

                withdrawal = WithdrawalRequest(
                    store=store,
                    wallet=wallet,
                    request_number=generate_request_number(),
                    requested_amount=amount,
                    processing_fee=fee,
                    net_amount=net_amount,
                    bank_details=dict(bank_account),
                    description=description,
                    ip_address=ip_address or None,
                    user_agent=(user_agent or "")[:255],
                )
                withdrawal.record_status(
                    WithdrawalStatus.PENDING,
                    "Withdrawal requested",
                    actor_label(requested_by),
                )
                withdrawal.save()

                WalletService.debit(
                    wallet.id,
                    amount,
                    TransactionSource.WITHDRAWAL,
                    description=f"Withdrawal request {withdrawal.request_number}",
                    related_document_type="withdrawal",
                    related_document_id=withdrawal.id,
                    idempotency_key=f"withdrawal:{withdrawal.id}:debit",
                    pending_delta=amount,
                )

                notify_after_commit(
                    "withdrawal_requested",
                    store.email,
                    {
                        "requestNumber": withdrawal.request_number,
                        "amount": amount,
                        "fee": fee,
                        "netAmount": net_amount,
                    },
                )
                audit_after_commit(
                    "withdrawal.requested",
                    requested_by,
                    "withdrawal",
                    withdrawal.id,
                    {"amount": amount, "store_id": str(store.pk)},
                )
        except InsufficientBalanceError as e:
            logger.info(
                "Withdrawal rejected for insufficient balance",
                extra={"store_id": str(store.pk), **e.details},
            )
            return ServiceResult.from_exception(e)

        logger.info(
            "Withdrawal requested",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "store_id": str(store.pk),
                "amount": amount,
                "fee": fee,
            },
        )
        return ServiceResult.success(withdrawal)

    @classmethod
    def list_for_store(
        cls,
        store: Store,
        filters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        filters = filters or {}
        queryset = WithdrawalRequest.objects.filter(store=store)
        if filters.get("status") in WithdrawalStatus.values:
            queryset = queryset.filter(status=filters["status"])
        return paginate_queryset(
            queryset.order_by("-created_at"), filters.get("page"), filters.get("pageSize")
        )

    @staticmethod
    def get_for_store(store: Store, withdrawal_id) -> WithdrawalRequest:
        try:
            return WithdrawalRequest.objects.get(pk=withdrawal_id, store=store)
        except (WithdrawalRequest.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(
                "Withdrawal request not found or does not belong to this store",
                error_code="WITHDRAWAL_NOT_FOUND",
            )

    # =========================================================================
    # Admin Side
    # =========================================================================

    @classmethod
    def start_review(cls, admin, withdrawal_id, expected_version: int | None = None):
        """PENDING -> UNDER_REVIEW. No wallet change."""

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.start_review(reviewer=admin)

        return cls._admin_transition(
            admin, withdrawal_id, expected_version, [WithdrawalStatus.PENDING], apply, "under_review"
        )

    @classmethod
    def approve(
        cls,
        admin,
        withdrawal_id,
        notes: str = "",
        transaction_reference: str = "",
        expected_version: int | None = None,
    ) -> ServiceResult[WithdrawalRequest]:
        """PENDING/UNDER_REVIEW -> APPROVED; the amount leaves ``pending``."""

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.approve(
                reviewer=admin, notes=notes, transaction_reference=transaction_reference
            )
            WalletService.adjust_pending(
                withdrawal.wallet_id,
                -withdrawal.requested_amount,
                reason=f"Withdrawal {withdrawal.request_number} approved",
            )

        return cls._admin_transition(
            admin, withdrawal_id, expected_version, REVIEWABLE_STATUSES, apply, "approved", notes
        )

    @classmethod
    def reject(
        cls,
        admin,
        withdrawal_id,
        reason: str,
        expected_version: int | None = None,
    ) -> ServiceResult[WithdrawalRequest]:
        """PENDING/UNDER_REVIEW -> REJECTED; funds go back to the balance."""
        if not reason or not reason.strip():
            return ServiceResult.failure(
                "A rejection reason is required", error_code="REASON_REQUIRED"
            )

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.reject(reviewer=admin, reason=reason)
            WalletService.credit(
                withdrawal.wallet_id,
                withdrawal.requested_amount,
                TransactionSource.ADJUSTMENT,
                description=(
                    f"Withdrawal request {withdrawal.request_number} rejected. Funds returned."
                ),
                related_document_type="withdrawal",
                related_document_id=withdrawal.id,
                idempotency_key=f"withdrawal:{withdrawal.id}:reject",
                pending_delta=-withdrawal.requested_amount,
            )

        return cls._admin_transition(
            admin, withdrawal_id, expected_version, REVIEWABLE_STATUSES, apply, "rejected", reason
        )

    @classmethod
    def start_processing(
        cls,
        admin,
        withdrawal_id,
        expected_version: int | None = None,
    ) -> ServiceResult[WithdrawalRequest]:
        """APPROVED -> PROCESSING (bank transfer initiated)."""

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.start_processing()

        return cls._admin_transition(
            admin,
            withdrawal_id,
            expected_version,
            [WithdrawalStatus.APPROVED],
            apply,
            "processing",
        )

    @classmethod
    def complete(
        cls,
        admin,
        withdrawal_id,
        transaction_reference: str,
        expected_version: int | None = None,
    ) -> ServiceResult[WithdrawalRequest]:
        """APPROVED/PROCESSING -> COMPLETED with the bank transfer reference."""
        if not transaction_reference or not transaction_reference.strip():
            return ServiceResult.failure(
                "A transaction reference is required",
                error_code="TRANSACTION_REFERENCE_REQUIRED",
            )

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.complete(transaction_reference=transaction_reference)

        return cls._admin_transition(
            admin,
            withdrawal_id,
            expected_version,
            [WithdrawalStatus.APPROVED, WithdrawalStatus.PROCESSING],
            apply,
            "completed",
            transaction_reference,
        )

    @classmethod
    def fail(
        cls,
        admin,
        withdrawal_id,
        reason: str,
        expected_version: int | None = None,
    ) -> ServiceResult[WithdrawalRequest]:
        """APPROVED/PROCESSING -> FAILED; funds go back to the balance."""
        if not reason or not reason.strip():
            return ServiceResult.failure("A failure reason is required", error_code="REASON_REQUIRED")

        def apply(withdrawal: WithdrawalRequest) -> None:
            withdrawal.fail(reason=reason)
            WalletService.credit(
                withdrawal.wallet_id,
                withdrawal.requested_amount,
                TransactionSource.ADJUSTMENT,
                description=(
                    f"Withdrawal request {withdrawal.request_number} failed. Funds returned."
                ),
                related_document_type="withdrawal",
                related_document_id=withdrawal.id,
                idempotency_key=f"withdrawal:{withdrawal.id}:fail",
            )

        return cls._admin_transition(
            admin,
            withdrawal_id,
            expected_version,
            [WithdrawalStatus.APPROVED, WithdrawalStatus.PROCESSING],
            apply,
            "failed",
            reason,
        )

    @classmethod
    def _admin_transition(
        cls,
        admin,
        withdrawal_id,
        expected_version: int | None,
        allowed_statuses: list[str],
        apply,
        outcome: str,
        notes: str = "",
    ) -> ServiceResult[WithdrawalRequest]:
        """Lock, check state, apply the transition and its wallet effect, save."""
        logger = cls.get_logger()

        try:
            with cls.atomic():
                withdrawal = lock_for_update(WithdrawalRequest, withdrawal_id, expected_version)

                if withdrawal.status not in allowed_statuses:
                    return ServiceResult.failure(
                        f"Withdrawal request is already {withdrawal.status}",
                        error_code="INVALID_STATE_TRANSITION",
                    )

                apply(withdrawal)
                withdrawal.record_status(withdrawal.status, notes, actor_label(admin))
                withdrawal.save()

                notify_after_commit(
                    f"withdrawal_{outcome}",
                    withdrawal.store.email,
                    {
                        "requestNumber": withdrawal.request_number,
                        "amount": withdrawal.requested_amount,
                        "netAmount": withdrawal.net_amount,
                        "notes": notes,
                    },
                )
                audit_after_commit(
                    f"withdrawal.{outcome}",
                    admin,
                    "withdrawal",
                    withdrawal.id,
                    {"amount": withdrawal.requested_amount, "notes": notes},
                )
        except NotFoundError as e:
            return ServiceResult.failure(e.message, error_code="WITHDRAWAL_NOT_FOUND")
        except StaleRecordError as e:
            return ServiceResult.from_exception(e)

        logger.info(
            f"Withdrawal {outcome}",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "amount": withdrawal.requested_amount,
                "admin_id": str(admin.pk) if admin is not None else None,
            },
        )
        return ServiceResult.success(withdrawal)

    @classmethod
    def list_for_admin(cls, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Withdrawal requests across stores, newest first.

        Filters:
            status / storeId
            fromDate / toDate: Creation date range; toDate runs to end of day
            search: Request number or store name
            page / pageSize
        """
        filters = filters or {}
        queryset = WithdrawalRequest.objects.select_related("store")

        if filters.get("status") in WithdrawalStatus.values:
            queryset = queryset.filter(status=filters["status"])
        if filters.get("storeId"):
            queryset = queryset.filter(store_id=filters["storeId"])

        from_date = _parse_date(filters.get("fromDate"))
        to_date = _parse_date(filters.get("toDate"))
        if from_date:
            queryset = queryset.filter(created_at__gte=from_date)
        if to_date:
            end_of_day = to_date.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(
                days=1
            )
            queryset = queryset.filter(created_at__lt=end_of_day)

        search = (filters.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(request_number__icontains=search) | Q(store__name__icontains=search)
            )

        return paginate_queryset(
            queryset.order_by("-created_at"), filters.get("page"), filters.get("pageSize")
        )
