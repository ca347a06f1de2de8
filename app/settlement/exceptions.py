"""
Settlement-specific exceptions.

Exception Hierarchy:
    SettlementError (base for the settlement domain)
    ├── WalletError - Wallet ledger failures
    │   └── InsufficientBalanceError - Debit larger than available balance
    ├── EscrowInvariantError - Attempt to break escrow terminal-state rules
    └── PaymentGatewayError - Flutterwave failures (inherits ExternalServiceError)
        ├── GatewayConfigurationError - Missing credentials (permanent)
        ├── GatewayRequestError - 4xx responses (permanent)
        └── GatewayUnavailableError - 5xx/timeouts/connection errors (retryable)

    StaleRecordError - Optimistic locking conflict (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from settlement.exceptions import InsufficientBalanceError

    if wallet.balance < amount:
        raise InsufficientBalanceError(
            wallet_id=wallet.id, required=amount, available=wallet.balance
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Settlement Domain Exceptions
# =============================================================================


class SettlementError(BaseApplicationError):
    """Base exception for settlement operations."""

    default_error_code: str = "SETTLEMENT_ERROR"


class WalletError(SettlementError):
    """Raised when a wallet ledger operation fails."""

    default_error_code: str = "WALLET_ERROR"


class InsufficientBalanceError(WalletError):
    """
    Raised when a debit exceeds the wallet's available balance.

    The wallet row is locked when this is raised, so the reported balance
    is authoritative for the current transaction.
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        wallet_id: Any,
        required: int,
        available: int,
        message: str | None = None,
    ):
        self.wallet_id = wallet_id
        self.required = required
        self.available = available
        super().__init__(
            message or "Insufficient wallet balance",
            details={
                "wallet_id": str(wallet_id),
                "required": required,
                "available": available,
            },
        )


class EscrowInvariantError(SettlementError):
    """
    Raised when code tries to break the escrow terminal-state rules.

    Examples: releasing a refunded sub-order, refunding a released one,
    or clearing ``held`` without setting exactly one terminal flag. These
    should be unreachable; callers log them at CRITICAL and abort the
    transaction.
    """

    default_error_code: str = "ESCROW_INVARIANT_VIOLATION"
    http_status: int = 409


# =============================================================================
# Payment Gateway Exceptions
# =============================================================================


class PaymentGatewayError(ExternalServiceError):
    """
    Base exception for Flutterwave failures.

    Attributes:
        is_retryable: Whether the caller may retry the same request
        status_code: HTTP status returned by the gateway, if any
        outcome_unknown: The request may have reached the gateway and been
            processed even though no usable response came back
    """

    default_error_code: str = "PAYMENT_GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
        outcome_unknown: bool = False,
    ):
        self.status_code = status_code
        self.outcome_unknown = outcome_unknown
        super().__init__(message, error_code=error_code, details=details)


class GatewayConfigurationError(PaymentGatewayError):
    """Raised when gateway credentials are missing. Never retry."""

    default_error_code: str = "GATEWAY_NOT_CONFIGURED"
    http_status: int = 500


class GatewayRequestError(PaymentGatewayError):
    """Raised for 4xx responses: the request itself is wrong."""

    default_error_code: str = "GATEWAY_REQUEST_REJECTED"


class GatewayUnavailableError(PaymentGatewayError):
    """
    Raised for 5xx responses, rate limiting, timeouts and connection errors.

    Rate limiting and connect timeouts leave outcome_unknown False: the
    gateway never accepted the request.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True
    http_status: int = 503


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects a concurrent modification.

    The record's version changed between read and write; the caller should
    re-read and retry or surface a conflict to the client.
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """Raised when a distributed lock cannot be acquired in time."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state transition is not allowed.

    Example:
        raise InvalidStateTransitionError(
            "Cannot move sub-order from 'delivered' to 'shipped'",
            details={"current_state": "delivered", "target_state": "shipped"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "EscrowInvariantError",
    "GatewayConfigurationError",
    "GatewayRequestError",
    "GatewayUnavailableError",
    "InsufficientBalanceError",
    "InvalidStateTransitionError",
    "LockAcquisitionError",
    "PaymentGatewayError",
    "SettlementError",
    "StaleRecordError",
    "WalletError",
]
