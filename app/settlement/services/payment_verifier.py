"""
Payment verification and order finalization.

PaymentVerifier resolves the true outcome of a payment attempt from the
gateway, never from a client-supplied status. It is idempotent: calling it
any number of times with the same reference leaves the order in the same
state, and a terminal order is never moved.

OrderFinalizationService is the only code path that marks an order paid.

Flow (checkout-success redirect and webhook):
    result = PaymentVerifier.verify(transaction_id="4975363")
    if result.ok and result.transaction and result.transaction.is_successful:
        OrderFinalizationService.finalize_paid_order(
            result.transaction.order_id, result.transaction
        )

PaymentVerifier.verify_checkout() does both steps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from core.services import BaseService, ServiceResult

from settlement.adapters import FlutterwaveAdapter
from settlement.collaborators import audit_after_commit, notify_after_commit
from settlement.exceptions import GatewayConfigurationError
from settlement.models import Order
from settlement.state_machines import PaymentStatus

if TYPE_CHECKING:
    from typing import Any

    from settlement.adapters import GatewayTransaction

GENERIC_VERIFICATION_ERROR = "There was an error when trying to verify the payment."


@dataclass
class VerificationResult:
    """
    Structured verifier outcome.

    ``transaction`` is kept for the finalization step and is never rendered
    to clients.
    """

    ok: bool
    status: str | None = None
    error: str | None = None
    transaction: GatewayTransaction | None = None

    @classmethod
    def succeeded(cls, status: str, transaction: GatewayTransaction | None = None):
        return cls(ok=True, status=status, transaction=transaction)

    @classmethod
    def failed(cls, error: str):
        return cls(ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "status": self.status}
        return {"ok": False, "error": self.error}


def _lock_order(**lookup) -> Order | None:
    try:
        return Order.objects.select_for_update().filter(**lookup).first()
    except (DjangoValidationError, ValueError):
        # Malformed UUID in gateway metadata
        return None


class PaymentVerifier(BaseService):
    """
    Idempotent reconciliation of gateway payment outcomes.

    All methods return a VerificationResult and never raise.
    """

    @classmethod
    def verify(
        cls,
        transaction_id: str | None = None,
        tx_ref: str | None = None,
        buyer=None,
    ) -> VerificationResult:
        """
        Resolve a payment outcome.

        Args:
            transaction_id: Flutterwave transaction id (preferred)
            tx_ref: Order idempotency key, used when the buyer abandoned the
                gateway before a transaction id existed
            buyer: Restricts the tx_ref lookup to this buyer's orders; another
                buyer's reference reads as not found

        Returns:
            VerificationResult; never raises
        """
        try:
            if transaction_id:
                return cls._verify_by_transaction_id(str(transaction_id))
            if tx_ref:
                return cls._verify_by_tx_ref(tx_ref, buyer)
            return VerificationResult.failed("Missing required transaction identifier")
        except GatewayConfigurationError as e:
            cls.get_logger().critical(
                f"Payment verification impossible: {e}",
                extra={"transaction_id": transaction_id, "tx_ref": tx_ref},
            )
            return VerificationResult.failed("Payment gateway is not configured")
        except Exception:
            cls.get_logger().exception(
                "Unexpected error during payment verification",
                extra={"transaction_id": transaction_id, "tx_ref": tx_ref},
            )
            return VerificationResult.failed(GENERIC_VERIFICATION_ERROR)

    @classmethod
    def _verify_by_transaction_id(cls, transaction_id: str) -> VerificationResult:
        logger = cls.get_logger()
        transaction = FlutterwaveAdapter.verify_transaction(transaction_id)
        if transaction is None:
            return VerificationResult.failed("Could not retrieve transaction data")

        if transaction.is_pending:
            return VerificationResult.succeeded(transaction.status, transaction)

        if transaction.is_successful:
            return VerificationResult.succeeded(transaction.status, transaction)

        # Terminal, non-successful outcome
        if not transaction.order_id:
            return VerificationResult.failed("Missing order reference in transaction metadata")

        with cls.atomic():
            order = _lock_order(pk=transaction.order_id)
            if order is None:
                return VerificationResult.failed("Order not found")

            if order.payment_status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
                return VerificationResult.succeeded(order.payment_status, transaction)

            if order.payment_status == PaymentStatus.PAID:
                logger.warning(
                    "Gateway reports a non-successful status for a paid order",
                    extra={
                        "order_id": str(order.id),
                        "transaction_id": transaction_id,
                        "gateway_status": transaction.status,
                    },
                )
                return VerificationResult.succeeded(order.payment_status, transaction)

            if transaction.status == "failed":
                order.mark_failed()
            else:
                order.mark_cancelled()
            order.save(update_fields=["payment_status", "expire_at", "updated_at"])

        logger.info(
            f"Order payment closed as {order.payment_status}",
            extra={
                "order_id": str(order.id),
                "transaction_id": transaction_id,
                "gateway_status": transaction.status,
            },
        )
        return VerificationResult.succeeded(transaction.status, transaction)

    @classmethod
    def _verify_by_tx_ref(cls, tx_ref: str, buyer=None) -> VerificationResult:
        lookup = {"idempotency_key": tx_ref}
        if buyer is not None:
            lookup["buyer"] = buyer

        with cls.atomic():
            order = _lock_order(**lookup)
            if order is None:
                return VerificationResult.failed("Order not found")

            if order.is_terminal:
                return VerificationResult.succeeded(order.payment_status)

            order.mark_cancelled()
            order.save(update_fields=["payment_status", "expire_at", "updated_at"])

        cls.get_logger().info(
            "Abandoned checkout cancelled",
            extra={"order_id": str(order.id), "tx_ref": tx_ref},
        )
        return VerificationResult.succeeded(PaymentStatus.CANCELLED)

    @classmethod
    def verify_checkout(
        cls,
        transaction_id: str | None = None,
        tx_ref: str | None = None,
        buyer=None,
    ) -> VerificationResult:
        """
        Verify and, for a successful charge, finalize the order.

        A finalization failure (amount mismatch, unknown order) turns the
        result into ``ok=False``; the order is left untouched.
        """
        result = cls.verify(transaction_id=transaction_id, tx_ref=tx_ref, buyer=buyer)
        transaction = result.transaction
        if not (result.ok and transaction is not None and transaction.is_successful):
            return result

        finalization = OrderFinalizationService.finalize_paid_order(
            transaction.order_id, transaction
        )
        if not finalization.success:
            return VerificationResult.failed(finalization.error or GENERIC_VERIFICATION_ERROR)
        return result


class OrderFinalizationService(BaseService):
    """Marks gateway-verified orders paid, exactly once."""

    @classmethod
    def finalize_paid_order(
        cls,
        order_id: str | None,
        transaction: GatewayTransaction,
    ) -> ServiceResult[Order]:
        """
        Mark an order paid after a verified successful charge.

        The transaction must be one returned by FlutterwaveAdapter, never a
        webhook payload. Amount (kobo), currency and tx_ref must match the
        order.

        Returns:
            ServiceResult with the order; an already-paid order succeeds
            without changes
        """
        logger = cls.get_logger()
        log_context = {
            "order_id": order_id,
            "transaction_id": transaction.id,
            "tx_ref": transaction.tx_ref,
        }

        if not transaction.is_successful:
            return ServiceResult.failure(
                "Transaction was not successful",
                error_code="TRANSACTION_NOT_SUCCESSFUL",
            )
        if not order_id:
            return ServiceResult.failure(
                "Missing order reference in transaction metadata",
                error_code="ORDER_REFERENCE_MISSING",
            )

        with cls.atomic():
            order = _lock_order(pk=order_id)
            if order is None:
                return ServiceResult.failure("Order not found", error_code="ORDER_NOT_FOUND")

            if order.payment_status == PaymentStatus.PAID:
                logger.info("Order already finalized", extra=log_context)
                return ServiceResult.success(order)

            if order.is_terminal:
                # Buyer paid after the order was closed; needs a manual refund
                logger.error(
                    f"Successful charge for a {order.payment_status} order",
                    extra={**log_context, "payment_status": order.payment_status},
                )
                return ServiceResult.failure(
                    f"Order is already {order.payment_status}",
                    error_code="ORDER_ALREADY_FINALIZED",
                )

            if transaction.tx_ref != order.idempotency_key:
                logger.error("Transaction reference mismatch", extra=log_context)
                return ServiceResult.failure(
                    "Transaction reference does not match the order",
                    error_code="TX_REF_MISMATCH",
                )

            if (
                transaction.amount != order.total_amount
                or transaction.currency.upper() != settings.SETTLEMENT_CURRENCY
            ):
                logger.error(
                    "Charged amount does not match the order",
                    extra={
                        **log_context,
                        "expected_amount": order.total_amount,
                        "charged_amount": transaction.amount,
                        "currency": transaction.currency,
                    },
                )
                return ServiceResult.failure(
                    "Charged amount does not match the order total",
                    error_code="AMOUNT_MISMATCH",
                )

            order.mark_paid(transaction_id=transaction.id)
            order.save(
                update_fields=[
                    "payment_status",
                    "gateway_transaction_id",
                    "paid_at",
                    "expire_at",
                    "updated_at",
                ]
            )

            buyer_email = order.buyer.email
            notify_after_commit(
                "payment_confirmed",
                buyer_email,
                {"orderId": str(order.id), "amount": order.total_amount},
            )
            for sub_order in order.sub_orders.select_related("store"):
                notify_after_commit(
                    "store_new_order",
                    sub_order.store.email,
                    {
                        "orderId": str(order.id),
                        "subOrderId": str(sub_order.id),
                        "amount": sub_order.total_amount,
                    },
                )
            audit_after_commit(
                "order.paid",
                None,
                "order",
                order.id,
                {"transaction_id": transaction.id, "amount": order.total_amount},
            )

        logger.info("Order marked paid", extra={**log_context, "amount": order.total_amount})
        return ServiceResult.success(order)
