"""
Order, SubOrder and SubOrderItem models.

An Order is the buyer's checkout; each store's share of it is a separate
SubOrder row so the delivery/escrow state machine, the refund queue and the
fund release scheduler can lock one sub-order at a time.

Usage:
    from settlement.models import Order, SubOrder
    from settlement.state_machines import DeliveryStatus

    sub_order = SubOrder.objects.select_for_update().get(pk=sub_order_id)
    sub_order.deliver()          # out_for_delivery -> delivered
    sub_order.save()
    sub_order.return_window      # delivery_date + 7 days

    # Escrow flags only change through these methods
    sub_order.release_escrow(released_at=timezone.now())
    sub_order.refund_escrow(reason="Damaged on arrival", refunded_at=timezone.now())
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.exceptions import EscrowInvariantError
from settlement.state_machines import (
    PRE_DELIVERY_STATUSES,
    DeliveryStatus,
    PaymentStatus,
)

# Delivery statuses from which a held escrow may be refunded
REFUNDABLE_STATUSES = [
    DeliveryStatus.CANCELED,
    DeliveryStatus.FAILED_DELIVERY,
    DeliveryStatus.RETURNED,
]


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Aggregate root for one checkout.

    The payment status only moves forward, from PENDING to exactly one of
    PAID, FAILED or CANCELLED. Sub-orders are never deleted with the order.

    Fields:
        id: UUID primary key
        buyer: User who checked out
        total_amount: Items plus shipping across all sub-orders, in kobo
        payment_status: PENDING → PAID | FAILED | CANCELLED (FSM managed)
        idempotency_key: Gateway tx_ref; one order per key
        gateway_transaction_id: Flutterwave transaction id once known
        shipping_address: Buyer's address snapshot
        expire_at: When an unpaid order may be purged
        paid_at: When finalization marked the order paid
        version: Optimistic locking version
    """

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="User who placed the order",
    )

    total_amount = models.PositiveBigIntegerField(
        help_text="Order total (items + shipping) in kobo",
    )

    payment_status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Payment outcome (managed by FSM, never reverts)",
    )

    # ==========================================================================
    # Gateway References
    # ==========================================================================

    idempotency_key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Gateway tx_ref; guarantees one order per checkout attempt",
    )

    payment_gateway = models.CharField(
        max_length=30,
        default="flutterwave",
    )

    gateway_transaction_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Flutterwave transaction id of the successful charge",
    )

    # ==========================================================================
    # Buyer Data
    # ==========================================================================

    shipping_address = models.JSONField(
        default=dict,
        blank=True,
        help_text="Shipping info snapshot taken at checkout",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    expire_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When an unpaid order becomes eligible for cleanup",
    )

    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["buyer", "payment_status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=0),
                name="order_total_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.payment_status}, {self.total_amount})"

    @property
    def is_terminal(self) -> bool:
        return self.payment_status != PaymentStatus.PENDING

    def extend_expiry(self, days: int | None = None) -> None:
        grace_days = days if days is not None else settings.SETTLEMENT_PAYMENT_GRACE_DAYS
        self.expire_at = timezone.now() + timedelta(days=grace_days)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.PAID,
    )
    def mark_paid(self, transaction_id: str | None = None):
        """Transition: PENDING -> PAID. Called only by order finalization."""
        self.gateway_transaction_id = transaction_id
        self.paid_at = timezone.now()
        self.expire_at = None

    @transition(
        field=payment_status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def mark_failed(self):
        """Transition: PENDING -> FAILED. The gateway reported a failed charge."""
        self.extend_expiry()

    @transition(
        field=payment_status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.CANCELLED,
    )
    def mark_cancelled(self):
        """Transition: PENDING -> CANCELLED. Abandoned or non-failed terminal charge."""
        self.extend_expiry()


# =============================================================================
# SubOrder
# =============================================================================


def escrow_is_held(sub_order: SubOrder) -> bool:
    """FSM condition: escrow has not reached a terminal state."""
    return (
        sub_order.escrow_held
        and not sub_order.escrow_released
        and not sub_order.escrow_refunded
    )


def return_window_open(sub_order: SubOrder) -> bool:
    """FSM condition: a delivered sub-order is still inside its return window."""
    if sub_order.delivery_status != DeliveryStatus.DELIVERED:
        return True
    return sub_order.return_window is not None and timezone.now() <= sub_order.return_window


class SubOrder(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One store's portion of an order; the unit escrow operates on.

    Escrow State:
        held=True, released=False, refunded=False   (from creation)
        held=False, released=True, refunded=False   (terminal)
        held=False, released=False, refunded=True   (terminal)

    A database check constraint rejects any other combination, and
    release_escrow()/refund_escrow() are the only code paths that change
    the flags.

    Fields:
        id: UUID primary key
        order: Parent order
        store: Seller
        total_amount: Item subtotal in kobo (shipping excluded)
        shipping_method: {name, price, estimatedDeliveryDays, description} snapshot
        delivery_status: Delivery state (FSM managed)
        delivery_date: When the sub-order entered DELIVERED
        return_window: delivery_date + SETTLEMENT_RETURN_WINDOW_DAYS
        customer_confirmed / confirmed_at / auto_confirmed: Delivery confirmation
        escrow_*: Escrow flags and bookkeeping
        status_history: [{status, changedAt, notes, actor}]
        version: Optimistic locking version
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="sub_orders",
    )

    store = models.ForeignKey(
        "settlement.Store",
        on_delete=models.PROTECT,
        related_name="sub_orders",
    )

    total_amount = models.PositiveBigIntegerField(
        help_text="Item subtotal in kobo, shipping excluded",
    )

    shipping_method = models.JSONField(
        default=dict,
        blank=True,
        help_text="Snapshot of the shipping method the buyer selected",
    )

    delivery_status = FSMField(
        default=DeliveryStatus.PENDING,
        choices=DeliveryStatus.choices,
        db_index=True,
        protected=True,
        help_text="Delivery state (managed by FSM)",
    )

    # ==========================================================================
    # Delivery Tracking
    # ==========================================================================

    delivery_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the sub-order was marked delivered",
    )

    return_window = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Escrow can be released once this has passed",
    )

    customer_confirmed = models.BooleanField(default=False)

    confirmed_at = models.DateTimeField(null=True, blank=True)

    auto_confirmed = models.BooleanField(
        default=False,
        help_text="True when an administrator confirmed on the buyer's behalf",
    )

    # ==========================================================================
    # Escrow
    # ==========================================================================

    escrow_held = models.BooleanField(default=True)

    escrow_released = models.BooleanField(default=False)

    escrow_refunded = models.BooleanField(default=False)

    escrow_released_at = models.DateTimeField(null=True, blank=True)

    escrow_refunded_at = models.DateTimeField(null=True, blank=True)

    escrow_refund_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the sub-order is awaiting or received a refund",
    )

    escrow_refund_reference = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Gateway refund id once the buyer refund was issued",
    )

    escrow_refund_attempted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set before the refund request is sent; cleared only when "
        "the gateway certainly did not process it",
    )

    status_history = models.JSONField(
        default=list,
        blank=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Sub-order"
        verbose_name_plural = "Sub-orders"
        indexes = [
            models.Index(fields=["store", "delivery_status"]),
            models.Index(fields=["delivery_status", "escrow_held"]),
            models.Index(fields=["order", "store"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(escrow_held=True, escrow_released=False, escrow_refunded=False)
                    | models.Q(escrow_held=False, escrow_released=True, escrow_refunded=False)
                    | models.Q(escrow_held=False, escrow_released=False, escrow_refunded=True)
                ),
                name="sub_order_escrow_single_terminal_state",
            ),
        ]
        permissions = [
            ("approve_refund", "Can approve escrow refunds"),
            ("confirm_delivery", "Can confirm delivery on a buyer's behalf"),
            ("release_escrow", "Can release held escrow to the store wallet"),
            ("view_refund_queue", "Can view the refund queue"),
        ]

    def __str__(self) -> str:
        return f"SubOrder({self.id}, {self.delivery_status}, {self.escrow_state})"

    # ==========================================================================
    # Derived Values
    # ==========================================================================

    @property
    def shipping_price(self) -> int:
        return int((self.shipping_method or {}).get("price") or 0)

    @property
    def escrow_state(self) -> str:
        if self.escrow_released:
            return "released"
        if self.escrow_refunded:
            return "refunded"
        return "held"

    @property
    def escrow(self) -> dict:
        return {
            "held": self.escrow_held,
            "released": self.escrow_released,
            "refunded": self.escrow_refunded,
            "releasedAt": self.escrow_released_at,
            "refundReason": self.escrow_refund_reason,
        }

    @property
    def customer_confirmed_delivery(self) -> dict:
        return {
            "confirmed": self.customer_confirmed,
            "confirmedAt": self.confirmed_at,
            "autoConfirmed": self.auto_confirmed,
        }

    def record_status(self, status: str, notes: str = "", actor: str = "") -> None:
        """Append an entry to the status history (caller saves)."""
        self.status_history = [
            *(self.status_history or []),
            {
                "status": str(status),
                "changedAt": timezone.now().isoformat(),
                "notes": notes,
                "actor": actor,
            },
        ]

    # ==========================================================================
    # Escrow Transitions
    # ==========================================================================

    def release_escrow(self, released_at=None) -> None:
        """
        Move escrow from held to released.

        Raises:
            EscrowInvariantError: If escrow is not held or the sub-order is
                not delivered
        """
        if not escrow_is_held(self):
            raise EscrowInvariantError(
                f"Cannot release escrow in state '{self.escrow_state}'",
                details={"sub_order_id": str(self.id), "escrow_state": self.escrow_state},
            )
        if self.delivery_status != DeliveryStatus.DELIVERED:
            raise EscrowInvariantError(
                "Escrow can only be released for delivered sub-orders",
                details={
                    "sub_order_id": str(self.id),
                    "delivery_status": self.delivery_status,
                },
            )
        self.escrow_held = False
        self.escrow_released = True
        self.escrow_released_at = released_at or timezone.now()

    def refund_escrow(self, reason: str = "", refunded_at=None) -> None:
        """
        Move escrow from held to refunded.

        Raises:
            EscrowInvariantError: If escrow is not held or the delivery
                status is not canceled, failed delivery or returned
        """
        if not escrow_is_held(self):
            raise EscrowInvariantError(
                f"Cannot refund escrow in state '{self.escrow_state}'",
                details={"sub_order_id": str(self.id), "escrow_state": self.escrow_state},
            )
        if self.delivery_status not in REFUNDABLE_STATUSES:
            raise EscrowInvariantError(
                f"Cannot refund a sub-order in '{self.delivery_status}' status",
                details={
                    "sub_order_id": str(self.id),
                    "delivery_status": self.delivery_status,
                },
            )
        self.escrow_held = False
        self.escrow_refunded = True
        self.escrow_refunded_at = refunded_at or timezone.now()
        if reason:
            self.escrow_refund_reason = reason

    # ==========================================================================
    # Delivery Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=delivery_status,
        source=DeliveryStatus.PENDING,
        target=DeliveryStatus.PROCESSING,
    )
    def start_processing(self):
        """Transition: PENDING -> PROCESSING"""

    @transition(
        field=delivery_status,
        source=PRE_DELIVERY_STATUSES[:2],
        target=DeliveryStatus.SHIPPED,
    )
    def ship(self):
        """Transition: PENDING/PROCESSING -> SHIPPED"""

    @transition(
        field=delivery_status,
        source=PRE_DELIVERY_STATUSES[:3],
        target=DeliveryStatus.OUT_FOR_DELIVERY,
    )
    def dispatch(self):
        """Transition: PENDING/PROCESSING/SHIPPED -> OUT_FOR_DELIVERY"""

    @transition(
        field=delivery_status,
        source=PRE_DELIVERY_STATUSES,
        target=DeliveryStatus.DELIVERED,
        conditions=[escrow_is_held],
    )
    def deliver(self, delivered_at=None):
        """
        Transition: any pre-delivered state -> DELIVERED

        Starts the return window. Escrow stays held; the fund release
        scheduler releases it once the window has passed.
        """
        self.delivery_date = delivered_at or timezone.now()
        self.return_window = self.delivery_date + timedelta(
            days=settings.SETTLEMENT_RETURN_WINDOW_DAYS
        )

    @transition(
        field=delivery_status,
        source=PRE_DELIVERY_STATUSES,
        target=DeliveryStatus.CANCELED,
        conditions=[escrow_is_held],
    )
    def cancel(self, reason: str = ""):
        """Transition: any pre-delivered state -> CANCELED (enters refund queue)"""
        self.escrow_refund_reason = reason or "Marked for review: Canceled"

    @transition(
        field=delivery_status,
        source=PRE_DELIVERY_STATUSES,
        target=DeliveryStatus.FAILED_DELIVERY,
        conditions=[escrow_is_held],
    )
    def fail_delivery(self, reason: str = ""):
        """Transition: any pre-delivered state -> FAILED_DELIVERY (enters refund queue)"""
        self.escrow_refund_reason = reason or "Marked for review: Failed Delivery"

    @transition(
        field=delivery_status,
        source=[*PRE_DELIVERY_STATUSES, DeliveryStatus.DELIVERED],
        target=DeliveryStatus.RETURNED,
        conditions=[escrow_is_held, return_window_open],
    )
    def mark_returned(self, reason: str = ""):
        """
        Transition: pre-delivered or DELIVERED -> RETURNED

        Escrow stays held until the returns workflow approves the refund.
        """
        self.escrow_refund_reason = reason or "Marked for review: Returned"


class SubOrderItem(UUIDPrimaryKeyMixin, models.Model):
    """
    A line item within a sub-order.

    Fields:
        sub_order: Owning sub-order
        product: Catalog product (PROTECT so history survives)
        quantity: Units ordered
        unit_price: Price per unit in kobo at checkout
        selected_size: Size variant, blank when the product has none
        product_snapshot: {name, productType} at checkout
    """

    sub_order = models.ForeignKey(
        SubOrder,
        on_delete=models.CASCADE,
        related_name="items",
    )

    product = models.ForeignKey(
        "settlement.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )

    quantity = models.PositiveIntegerField()

    unit_price = models.PositiveBigIntegerField(
        help_text="Unit price in kobo at checkout",
    )

    selected_size = models.CharField(max_length=20, blank=True, default="")

    product_snapshot = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = "Sub-order item"
        verbose_name_plural = "Sub-order items"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="sub_order_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"SubOrderItem({self.product_id} x{self.quantity})"

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity
