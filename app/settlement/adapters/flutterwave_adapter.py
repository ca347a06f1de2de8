"""
Flutterwave API adapter.

Thin wrapper around the Flutterwave v3 REST API using requests. Every call
runs outside any database transaction; callers open their transaction only
after the adapter returns.

Features:
- Retries transient failures (5xx, timeouts, connection errors) with
  exponential backoff and jitter
- Translates HTTP failures into settlement.exceptions gateway errors
- Converts between kobo (internal) and naira (gateway)
- Fails fast when FLUTTERWAVE_SECRET_KEY is not configured

Usage:
    from settlement.adapters import FlutterwaveAdapter, InitializePaymentParams

    link = FlutterwaveAdapter.initialize_payment(
        InitializePaymentParams(
            tx_ref=order.idempotency_key,
            amount=order.total_amount,
            customer_email=buyer.email,
            customer_name="Ada Obi",
            order_id=str(order.id),
        )
    )
    redirect(link.link)

    transaction = FlutterwaveAdapter.verify_transaction("4975363")
    if transaction is None:
        ...  # gateway unreachable after retries; safe to call again later
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

import requests
from django.conf import settings

from settlement.exceptions import (
    GatewayConfigurationError,
    GatewayRequestError,
    GatewayUnavailableError,
    PaymentGatewayError,
)

if TYPE_CHECKING:
    from typing import Any


# Gateway statuses that mean the charge went through
SUCCESS_STATUSES = frozenset({"successful", "completed", "success"})

PENDING_STATUS = "pending"

# Base delay between retries, in seconds
RETRY_BASE_DELAY = 0.5
RETRY_MAX_DELAY = 8.0


# =============================================================================
# Amount Conversion
# =============================================================================


def kobo_to_naira(amount: int) -> Decimal:
    """Convert integer kobo to a naira Decimal with two places."""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def naira_to_kobo(amount: Any) -> int:
    """Convert a gateway naira amount (number or string) to integer kobo."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Data Transfer Objects
# =============================================================================


@dataclass
class InitializePaymentParams:
    """
    Parameters for creating a hosted payment link.

    Attributes:
        tx_ref: Order idempotency key
        amount: Amount in kobo
        customer_email: Buyer email (required by Flutterwave)
        customer_name: Buyer full name
        customer_phone: Buyer phone number
        order_id: Order id, echoed back in transaction meta
        currency: ISO currency code
        redirect_url: Where the buyer lands after paying
        session_duration: Minutes the checkout session stays open
        max_retry_attempt: Payment attempts allowed in one session
    """

    tx_ref: str
    amount: int
    customer_email: str
    order_id: str
    customer_name: str = ""
    customer_phone: str = ""
    currency: str = "NGN"
    redirect_url: str | None = None
    session_duration: int = 30
    max_retry_attempt: int = 3

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.tx_ref:
            raise ValueError("tx_ref is required")
        if not self.customer_email:
            raise ValueError("customer_email is required")

    def to_payload(self) -> dict[str, Any]:
        return {
            "tx_ref": self.tx_ref,
            "amount": float(kobo_to_naira(self.amount)),
            "currency": self.currency,
            "redirect_url": self.redirect_url or settings.FLUTTERWAVE_REDIRECT_URL,
            "customer": {
                "email": self.customer_email,
                "name": self.customer_name,
                "phonenumber": self.customer_phone,
            },
            "meta": {
                "email": self.customer_email,
                "phone_number": self.customer_phone,
                "fullName": self.customer_name,
                "idempotencyKey": self.tx_ref,
                "orderId": self.order_id,
            },
            "configurations": {
                "session_duration": self.session_duration,
                "max_retry_attempt": self.max_retry_attempt,
            },
        }


@dataclass
class PaymentLink:
    """Hosted checkout link returned by initialize_payment."""

    link: str
    tx_ref: str


@dataclass
class GatewayTransaction:
    """
    Verified transaction as reported by Flutterwave.

    Attributes:
        id: Flutterwave transaction id
        tx_ref: Our idempotency key
        status: Raw gateway status (lower-cased)
        amount: Charged amount in kobo
        currency: ISO currency code
        order_id: meta.orderId, if present
        customer_email: Payer email
        raw_response: Full ``data`` object for debugging
    """

    id: str
    tx_ref: str
    status: str
    amount: int
    currency: str
    order_id: str | None = None
    customer_email: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING_STATUS

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> GatewayTransaction:
        meta = data.get("meta") or data.get("meta_data") or {}
        customer = data.get("customer") or {}
        return cls(
            id=str(data.get("id", "")),
            tx_ref=str(data.get("tx_ref", "")),
            status=str(data.get("status", "")).lower(),
            amount=naira_to_kobo(data.get("amount") or 0),
            currency=str(data.get("currency", "")),
            order_id=meta.get("orderId"),
            customer_email=customer.get("email"),
            raw_response=data,
        )


@dataclass
class GatewayRefund:
    """Refund created against a transaction."""

    id: str
    status: str
    amount: int
    transaction_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency & Retry Helpers
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Deterministic references for gateway operations.

    Format: "{operation}:{entity_id}:{attempt}:{hash}" for generic keys and
    "STL-{hash}" for payment tx_refs. The hash is salted with SECRET_KEY so
    references cannot be guessed from ids.

    Example:
        IdempotencyKeyGenerator.tx_ref(buyer.id, "cart-8f2c")
        # "STL-3f9a1c0b7d2e4a6b8c9d0e1f"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"

    @staticmethod
    def tx_ref(buyer_id: uuid.UUID | int | str, client_key: str) -> str:
        """Stable tx_ref for one buyer's checkout attempt."""
        hash_input = f"checkout:{buyer_id}:{client_key}:{settings.SECRET_KEY}"
        return f"STL-{hashlib.sha256(hash_input.encode()).hexdigest()[:24]}"


def backoff_delay(
    attempt: int,
    base: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
) -> float:
    """
    Exponential backoff with 0-25% jitter.

    Example:
        # Attempt 0: 0.5 - 0.625 seconds
        # Attempt 1: 1.0 - 1.25 seconds
        # Attempt 2: 2.0 - 2.5 seconds
    """
    delay = min(base * (2**attempt), max_delay)
    return delay + delay * random.uniform(0, 0.25)


def is_retryable_gateway_error(error: Exception) -> bool:
    """True for gateway errors worth retrying from a Celery task."""
    return isinstance(error, PaymentGatewayError) and error.is_retryable


# =============================================================================
# Flutterwave Adapter
# =============================================================================


class FlutterwaveAdapter:
    """
    Adapter for Flutterwave API operations.

    All methods are classmethods; no state is kept between calls, so the
    adapter is safe to use from web workers and Celery workers alike.

    Configuration (via settings):
    - FLUTTERWAVE_SECRET_KEY: Secret API key (required)
    - FLUTTERWAVE_API_URL: Base URL (default https://api.flutterwave.com/v3)
    - FLUTTERWAVE_TIMEOUT: Per-request timeout in seconds
    - FLUTTERWAVE_MAX_RETRIES: Attempts for transient failures
    - FLUTTERWAVE_WEBHOOK_HASH: Expected verif-hash header value
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _headers() -> dict[str, str]:
        secret_key = settings.FLUTTERWAVE_SECRET_KEY
        if not secret_key:
            raise GatewayConfigurationError(
                "FLUTTERWAVE_SECRET_KEY is not configured",
                details={"setting": "FLUTTERWAVE_SECRET_KEY"},
            )
        return {
            "Authorization": f"Bearer {secret_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _url(path: str) -> str:
        return f"{settings.FLUTTERWAVE_API_URL.rstrip('/')}/{path.lstrip('/')}"

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def verify_transaction(cls, transaction_id: str) -> GatewayTransaction | None:
        """
        Fetch the authoritative status of a transaction.

        Returns:
            GatewayTransaction, or None when the gateway could not be reached
            after all retries or does not know the transaction

        Raises:
            GatewayConfigurationError: Secret key missing
        """
        log_context = {
            "operation": "verify_transaction",
            "transaction_id": transaction_id,
        }
        try:
            body = cls._request(
                "GET", f"transactions/{transaction_id}/verify", log_context=log_context
            )
        except GatewayConfigurationError:
            raise
        except PaymentGatewayError as e:
            cls.get_logger().warning(
                f"Transaction verification unavailable: {e}",
                extra={**log_context, "error_code": e.error_code},
            )
            return None

        data = body.get("data") or {}
        if not data:
            cls.get_logger().warning(
                "Verification response had no transaction data", extra=log_context
            )
            return None
        return GatewayTransaction.from_response(data)

    @classmethod
    def initialize_payment(cls, params: InitializePaymentParams) -> PaymentLink:
        """
        Create a hosted payment link.

        Raises:
            GatewayConfigurationError: Secret key missing
            GatewayRequestError: Gateway rejected the payload
            GatewayUnavailableError: Gateway unreachable after retries
        """
        log_context = {
            "operation": "initialize_payment",
            "tx_ref": params.tx_ref,
            "amount": params.amount,
            "order_id": params.order_id,
        }
        body = cls._request("POST", "payments", payload=params.to_payload(), log_context=log_context)

        link = (body.get("data") or {}).get("link")
        if not link:
            raise GatewayRequestError(
                "Payment link missing from gateway response",
                details={"tx_ref": params.tx_ref},
            )
        return PaymentLink(link=link, tx_ref=params.tx_ref)

    @classmethod
    def refund_transaction(
        cls,
        transaction_id: str,
        amount: int,
        idempotency_key: str | None = None,
    ) -> GatewayRefund:
        """
        Refund part or all of a transaction.

        Only failures the gateway certainly did not process (rate limiting,
        connect timeouts) are retried here. A read timeout or 5xx is raised
        with outcome_unknown set so the caller can reconcile before any
        second refund is attempted.

        Args:
            transaction_id: Flutterwave transaction id of the original charge
            amount: Amount to refund in kobo
            idempotency_key: Stable key for this refund, e.g.
                IdempotencyKeyGenerator.generate("refund", sub_order.id)

        Raises:
            GatewayConfigurationError: Secret key missing
            GatewayRequestError: Gateway rejected the refund
            GatewayUnavailableError: Gateway unreachable or outcome unknown
        """
        if amount <= 0:
            raise ValueError("refund amount must be positive")

        log_context = {
            "operation": "refund_transaction",
            "transaction_id": transaction_id,
            "amount": amount,
        }
        body = cls._request(
            "POST",
            f"transactions/{transaction_id}/refund",
            payload={"amount": float(kobo_to_naira(amount))},
            log_context=log_context,
            idempotency_key=idempotency_key,
            retry_unknown_outcome=False,
        )
        data = body.get("data") or {}
        return GatewayRefund(
            id=str(data.get("id", "")),
            status=str(data.get("status", "")).lower(),
            amount=naira_to_kobo(data.get("amount_refunded") or data.get("amount") or 0),
            transaction_id=str(transaction_id),
            raw_response=data,
        )

    @classmethod
    def verify_webhook_signature(cls, signature: str | None) -> bool:
        """
        Compare the verif-hash header with the configured secret hash.

        Raises:
            GatewayConfigurationError: FLUTTERWAVE_WEBHOOK_HASH missing
        """
        expected = settings.FLUTTERWAVE_WEBHOOK_HASH
        if not expected:
            raise GatewayConfigurationError(
                "FLUTTERWAVE_WEBHOOK_HASH is not configured",
                details={"setting": "FLUTTERWAVE_WEBHOOK_HASH"},
            )
        if not signature:
            return False
        return hmac.compare_digest(signature.encode(), expected.encode())

    # =========================================================================
    # HTTP
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        log_context: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        retry_unknown_outcome: bool = True,
    ) -> dict[str, Any]:
        """
        Send a request, retrying transient failures.

        Args:
            idempotency_key: Sent as X-Idempotency-Key when given
            retry_unknown_outcome: False for requests that move money; a
                failure that may have been processed is raised at once
                instead of being sent again

        Returns:
            Decoded JSON body
        """
        logger = cls.get_logger()
        log_context = log_context or {}
        headers = cls._headers()
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        max_attempts = max(1, settings.FLUTTERWAVE_MAX_RETRIES)

        start_time = time.time()
        logger.info("Starting Flutterwave operation", extra=log_context)

        for attempt in range(max_attempts):
            try:
                body = cls._send_once(method, path, headers, payload)
            except GatewayUnavailableError as e:
                if e.outcome_unknown and not retry_unknown_outcome:
                    logger.error(
                        f"Flutterwave outcome unknown, not resending: {e}",
                        extra={**log_context, "attempt": attempt + 1},
                    )
                    raise
                if attempt + 1 >= max_attempts:
                    logger.error(
                        f"Flutterwave operation failed after {max_attempts} attempts: {e}",
                        extra={
                            **log_context,
                            "attempts": max_attempts,
                            "duration_ms": (time.time() - start_time) * 1000,
                        },
                    )
                    raise
                delay = backoff_delay(attempt)
                logger.warning(
                    f"Transient Flutterwave error, retrying in {delay:.2f}s: {e}",
                    extra={**log_context, "attempt": attempt + 1},
                )
                time.sleep(delay)
                continue
            except GatewayRequestError as e:
                logger.error(
                    f"Flutterwave rejected request: {e}",
                    extra={**log_context, "status_code": e.status_code},
                )
                raise

            logger.info(
                "Flutterwave operation completed",
                extra={
                    **log_context,
                    "attempt": attempt + 1,
                    "duration_ms": (time.time() - start_time) * 1000,
                },
            )
            return body

        raise GatewayUnavailableError("Flutterwave request was not attempted")

    @classmethod
    def _send_once(
        cls,
        method: str,
        path: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None,
    ) -> dict[str, Any]:
        try:
            response = requests.request(
                method,
                cls._url(path),
                headers=headers,
                json=payload,
                timeout=settings.FLUTTERWAVE_TIMEOUT,
            )
        except requests.ConnectTimeout as e:
            raise GatewayUnavailableError(
                f"Could not connect to Flutterwave: {e}",
                details={"path": path},
            ) from e
        except (requests.Timeout, requests.ConnectionError) as e:
            raise GatewayUnavailableError(
                f"Could not reach Flutterwave: {e}",
                details={"path": path},
                outcome_unknown=True,
            ) from e

        if response.status_code == 429:
            raise GatewayUnavailableError(
                "Flutterwave rate limited the request",
                details={"path": path},
                status_code=response.status_code,
            )

        if response.status_code >= 500:
            raise GatewayUnavailableError(
                f"Flutterwave returned HTTP {response.status_code}",
                details={"path": path},
                status_code=response.status_code,
                outcome_unknown=True,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayUnavailableError(
                "Flutterwave returned a non-JSON response",
                details={"path": path},
                status_code=response.status_code,
                outcome_unknown=True,
            ) from e

        if response.status_code >= 400 or body.get("status") == "error":
            raise GatewayRequestError(
                body.get("message") or f"Flutterwave returned HTTP {response.status_code}",
                details={"path": path},
                status_code=response.status_code,
            )

        return body


__all__ = [
    "SUCCESS_STATUSES",
    "FlutterwaveAdapter",
    "GatewayRefund",
    "GatewayTransaction",
    "IdempotencyKeyGenerator",
    "InitializePaymentParams",
    "PaymentLink",
    "backoff_delay",
    "is_retryable_gateway_error",
    "kobo_to_naira",
    "naira_to_kobo",
]
