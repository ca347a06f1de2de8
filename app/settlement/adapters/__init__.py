"""
External payment gateway adapters.

Usage:
    from settlement.adapters import FlutterwaveAdapter, InitializePaymentParams
"""

from settlement.adapters.flutterwave_adapter import (
    SUCCESS_STATUSES,
    FlutterwaveAdapter,
    GatewayRefund,
    GatewayTransaction,
    IdempotencyKeyGenerator,
    InitializePaymentParams,
    PaymentLink,
    backoff_delay,
    is_retryable_gateway_error,
    kobo_to_naira,
    naira_to_kobo,
)

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
