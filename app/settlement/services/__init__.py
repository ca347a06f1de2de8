"""
Settlement services.

Usage:
    from settlement.services import (
        CheckoutService,
        EscrowService,
        FundReleaseService,
        PaymentVerifier,
        WalletService,
        WithdrawalService,
    )

    result = EscrowService.confirm_delivery(buyer, sub_order_id)
    if not result.success:
        ...
"""

from settlement.services.checkout import (
    CartItem,
    CartSnapshot,
    CartValidationResult,
    CheckoutService,
    CheckoutValidator,
    ShippingAggregator,
    validate_shipping_info,
)
from settlement.services.commission import (
    CommissionBreakdown,
    calculate_commission,
    flat_fee_for,
)
from settlement.services.escrow import EscrowService
from settlement.services.fund_release import FundReleaseQueryService, FundReleaseService
from settlement.services.payment_verifier import (
    OrderFinalizationService,
    PaymentVerifier,
    VerificationResult,
)
from settlement.services.wallet import ReconciliationReport, WalletService
from settlement.services.withdrawal import (
    WithdrawalService,
    calculate_withdrawal_fee,
    generate_request_number,
)

__all__ = [
    # Checkout
    "CartItem",
    "CartSnapshot",
    "CartValidationResult",
    "CheckoutService",
    "CheckoutValidator",
    "ShippingAggregator",
    "validate_shipping_info",
    # Commission
    "CommissionBreakdown",
    "calculate_commission",
    "flat_fee_for",
    # Escrow & Fund Releases
    "EscrowService",
    "FundReleaseQueryService",
    "FundReleaseService",
    # Payments
    "OrderFinalizationService",
    "PaymentVerifier",
    "VerificationResult",
    # Wallet
    "ReconciliationReport",
    "WalletService",
    # Withdrawals
    "WithdrawalService",
    "calculate_withdrawal_fee",
    "generate_request_number",
]
