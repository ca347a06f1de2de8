"""
Platform commission calculation.

Commission = percentage of the item subtotal + a flat fee picked by subtotal
band. Shipping is never commissioned; it passes through to the store.

All arithmetic is integer kobo. The percentage part is rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings


@dataclass(frozen=True)
class CommissionBreakdown:
    """
    Settlement breakdown for one sub-order.

    Attributes:
        item_subtotal: Sum of line totals in kobo
        percentage_fee: Percentage part of the commission
        flat_fee: Flat part of the commission
        shipping_price: Shipping paid by the buyer for this sub-order
    """

    item_subtotal: int
    percentage_fee: int
    flat_fee: int
    shipping_price: int = 0

    @property
    def commission(self) -> int:
        return self.percentage_fee + self.flat_fee

    @property
    def settlement_amount(self) -> int:
        return self.item_subtotal - self.commission + self.shipping_price


def flat_fee_for(item_subtotal: int) -> int:
    if item_subtotal < settings.SETTLEMENT_SMALL_ORDER_THRESHOLD:
        return settings.SETTLEMENT_SMALL_ORDER_FLAT_FEE
    if item_subtotal >= settings.SETTLEMENT_LARGE_ORDER_THRESHOLD:
        return settings.SETTLEMENT_LARGE_ORDER_FLAT_FEE
    return 0


def calculate_commission(item_subtotal: int, shipping_price: int = 0) -> CommissionBreakdown:
    """
    Compute the commission breakdown for a sub-order.

    The commission is capped at the item subtotal so the settlement amount
    never drops below the shipping price.

    Example:
        calculate_commission(200000, shipping_price=150000)
        # percentage_fee=10000, flat_fee=10000, settlement_amount=330000
    """
    if item_subtotal < 0 or shipping_price < 0:
        raise ValueError("amounts must be non-negative")

    percent = Decimal(str(settings.SETTLEMENT_COMMISSION_PERCENT))
    percentage_fee = int(
        (Decimal(item_subtotal) * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    flat_fee = flat_fee_for(item_subtotal)

    if percentage_fee + flat_fee > item_subtotal:
        percentage_fee = min(percentage_fee, item_subtotal)
        flat_fee = item_subtotal - percentage_fee

    return CommissionBreakdown(
        item_subtotal=item_subtotal,
        percentage_fee=percentage_fee,
        flat_fee=flat_fee,
        shipping_price=shipping_price,
    )
