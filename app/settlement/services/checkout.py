"""
Checkout validation, shipping aggregation and payment-intent preparation.

Flow:
    1. CheckoutValidator re-reads every cart line from the catalog
    2. ShippingAggregator resolves one shipping method per store that needs one
    3. CheckoutService.prepare_payment creates the pending Order (one
       SubOrder per store) and, after commit, asks Flutterwave for a
       hosted payment link

Nothing here trusts a client-supplied price: product prices come from the
catalog and shipping prices from the store's configured methods.

Usage:
    from settlement.services import CartSnapshot, CheckoutService

    cart = CartSnapshot.from_payload(request.data["items"])
    result = CheckoutService.prepare_payment(
        buyer=request.user,
        cart=cart,
        shipping_selections={"<store_id>": "Express"},
        shipping_info=request.data["shippingInfo"],
        idempotency_key=request.data["idempotencyKey"],
    )
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

from settlement.adapters import (
    FlutterwaveAdapter,
    IdempotencyKeyGenerator,
    InitializePaymentParams,
)
from settlement.collaborators import get_catalog
from settlement.exceptions import PaymentGatewayError
from settlement.models import Order, Store, SubOrder, SubOrderItem
from settlement.state_machines import PaymentStatus, ProductType

if TYPE_CHECKING:
    from typing import Any

    from settlement.protocols import CatalogService, ProductInfo


SHIPPING_SELECTION_REQUIRED = "Please select shipping methods for all stores with physical products"
SHIPPING_INFO_REQUIRED = "Complete shipping information is required to place your order."

REQUIRED_SHIPPING_FIELDS = (
    "firstName",
    "lastName",
    "address",
    "phoneNumber",
    "cityOfResidence",
    "stateOfResidence",
)


# =============================================================================
# Cart
# =============================================================================


@dataclass(frozen=True)
class CartItem:
    """
    One cart line as the buyer last saw it.

    Attributes:
        product_id: Catalog product id
        quantity: Units requested
        price: Unit price shown to the buyer, in kobo
        selected_size: Size variant, if the product has sizes
    """

    product_id: str
    quantity: int
    price: int
    selected_size: str | None = None


@dataclass
class CartSnapshot:
    items: list[CartItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @classmethod
    def from_payload(cls, items: list[dict[str, Any]]) -> CartSnapshot:
        """Build a snapshot from validated request data (camelCase keys)."""
        return cls(
            items=[
                CartItem(
                    product_id=str(item["productId"]),
                    quantity=int(item["quantity"]),
                    price=int(item["price"]),
                    selected_size=item.get("selectedSize") or None,
                )
                for item in items
            ]
        )


@dataclass
class CartValidationResult:
    """
    Outcome of CheckoutValidator.validate().

    Attributes:
        validation_errors: Human-readable problems; empty when valid
        products: Catalog view of each product that still exists, by id
        stores: Store rows referenced by the cart, by id
        lines_by_store: Valid cart lines grouped by store id
    """

    validation_errors: list[str] = field(default_factory=list)
    products: dict[str, ProductInfo] = field(default_factory=dict)
    stores: dict[str, Store] = field(default_factory=dict)
    lines_by_store: dict[str, list[CartItem]] = field(default_factory=OrderedDict)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "validationErrors": list(self.validation_errors)}


# =============================================================================
# Checkout Validator
# =============================================================================


class CheckoutValidator:
    """
    Re-validates a cart against current catalog and store state.

    Never mutates anything. Must run again right before payment preparation;
    an earlier result is never reused.
    """

    def __init__(self, catalog: CatalogService | None = None):
        self.catalog = catalog or get_catalog()

    @staticmethod
    def unit_price(product: ProductInfo, selected_size: str | None) -> int:
        """Current unit price, honouring a size variant's own price."""
        if selected_size:
            variant = product.get_size(selected_size) or {}
            if variant.get("price") is not None:
                return int(variant["price"])
        return product.price

    def validate(self, cart: CartSnapshot) -> CartValidationResult:
        result = CartValidationResult()

        if cart.is_empty:
            result.validation_errors.append("Cart is empty")
            return result

        for item in cart.items:
            product = self.catalog.get_product(item.product_id)
            if product is None:
                result.validation_errors.append(
                    "A product in your cart no longer exists in the catalog."
                )
                continue

            result.products[product.id] = product
            result.lines_by_store.setdefault(product.store_id, []).append(item)

            if not product.available:
                result.validation_errors.append(f"{product.name} is no longer available.")
                continue

            if item.selected_size:
                variant = product.get_size(item.selected_size)
                if variant is None:
                    result.validation_errors.append(
                        f"Size {item.selected_size} is no longer available for {product.name}."
                    )
                    continue
                available = int(variant.get("quantity") or 0)
                if available < item.quantity:
                    result.validation_errors.append(
                        f"Insufficient stock for {product.name} (Size: {item.selected_size}). "
                        f"Available: {available}, Requested: {item.quantity}."
                    )
            elif product.stock < item.quantity:
                result.validation_errors.append(
                    f"Insufficient stock for {product.name}. "
                    f"Available: {product.stock}, Requested: {item.quantity}."
                )

            current_price = self.unit_price(product, item.selected_size)
            if current_price != item.price:
                result.validation_errors.append(
                    f"The price of {product.name} has changed. "
                    f"Current price: {current_price}, cart price: {item.price}."
                )

        stores = {
            str(pk): store
            for pk, store in Store.objects.in_bulk(list(result.lines_by_store)).items()
        }
        for store_id in result.lines_by_store:
            store = stores.get(store_id)
            if store is None:
                result.validation_errors.append(
                    "One of the selected stores could not be found. Please check and try again."
                )
                continue
            result.stores[store_id] = store
            if not store.is_active:
                result.validation_errors.append(
                    f'The store "{store.name}" is not active and cannot accept new orders.'
                )

        return result


# =============================================================================
# Shipping
# =============================================================================


@dataclass
class ShippingResolution:
    """Shipping method snapshot per store id and the total shipping cost."""

    methods: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(int(method.get("price") or 0) for method in self.methods.values())

    def price_for(self, store_id: str) -> int:
        return int((self.methods.get(store_id) or {}).get("price") or 0)


class ShippingAggregator:
    """
    Resolves shipping selections and totals them in integer kobo.

    Pure computation over already-loaded stores and products.
    """

    @staticmethod
    def requires_shipping(store: Store, products: list[ProductInfo]) -> bool:
        """Only stores selling physical goods with configured methods need a selection."""
        has_physical = any(p.product_type == ProductType.PHYSICAL for p in products)
        return has_physical and bool(store.active_shipping_methods())

    @classmethod
    def stores_requiring_shipping(
        cls,
        stores: dict[str, Store],
        products_by_store: dict[str, list[ProductInfo]],
    ) -> list[str]:
        return [
            store_id
            for store_id, store in stores.items()
            if cls.requires_shipping(store, products_by_store.get(store_id, []))
        ]

    @classmethod
    def resolve(
        cls,
        selections: dict[str, Any],
        stores: dict[str, Store],
        products_by_store: dict[str, list[ProductInfo]],
    ) -> ShippingResolution:
        """
        Resolve each required store's selection by method name.

        A selection may be the method name or a dict with a ``name`` key; any
        price in the selection is ignored.

        Raises:
            ValidationError: A required store has no selection, or the
                selected method is not offered by that store
        """
        required = cls.stores_requiring_shipping(stores, products_by_store)
        missing = [store_id for store_id in required if not selections.get(store_id)]
        if missing:
            raise ValidationError(
                SHIPPING_SELECTION_REQUIRED,
                error_code="SHIPPING_SELECTION_REQUIRED",
                details={"store_ids": missing},
            )

        resolution = ShippingResolution()
        for store_id in required:
            selection = selections[store_id]
            name = selection.get("name") if isinstance(selection, dict) else str(selection)
            method = stores[store_id].get_shipping_method(name)
            if method is None:
                raise ValidationError(
                    f"Shipping method '{name}' is not offered by {stores[store_id].name}",
                    error_code="SHIPPING_METHOD_UNAVAILABLE",
                    details={"store_id": store_id, "method": name},
                )
            resolution.methods[store_id] = {
                "name": method.get("name"),
                "price": int(method.get("price") or 0),
                "estimatedDeliveryDays": method.get("estimatedDeliveryDays"),
                "description": method.get("description", ""),
            }
        return resolution


def validate_shipping_info(shipping_info: dict[str, Any] | None) -> None:
    """
    Raises:
        ValidationError: Any required address field is missing or blank
    """
    shipping_info = shipping_info or {}
    missing = [
        name for name in REQUIRED_SHIPPING_FIELDS if not str(shipping_info.get(name) or "").strip()
    ]
    if missing:
        raise ValidationError(
            SHIPPING_INFO_REQUIRED,
            error_code="SHIPPING_INFO_INCOMPLETE",
            details={"missing_fields": missing},
        )


# =============================================================================
# Checkout Service
# =============================================================================


class CheckoutService(BaseService):
    """Creates pending orders and hosted payment links."""

    @classmethod
    def validate_cart(cls, cart: CartSnapshot) -> CartValidationResult:
        return CheckoutValidator().validate(cart)

    @classmethod
    def prepare_payment(
        cls,
        buyer,
        cart: CartSnapshot,
        shipping_selections: dict[str, Any],
        shipping_info: dict[str, Any],
        idempotency_key: str,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Validate everything again, create the pending order and get a payment link.

        A repeated idempotency key for the same buyer returns the existing
        order instead of creating a second one.

        Returns:
            ServiceResult with {orderId, txRef, redirectLink}
        """
        logger = cls.get_logger()
        tx_ref = IdempotencyKeyGenerator.tx_ref(buyer.pk, idempotency_key)

        try:
            validate_shipping_info(shipping_info)
        except ValidationError as e:
            return ServiceResult.failure(
                e.message,
                error_code=e.error_code,
                errors={"shippingInfo": e.details.get("missing_fields", [])},
            )

        existing = Order.objects.filter(idempotency_key=tx_ref).first()
        if existing is not None:
            logger.info(
                "Checkout repeated with an existing idempotency key",
                extra={"order_id": str(existing.id), "tx_ref": tx_ref},
            )
            return cls._payment_link_for(existing, buyer, shipping_info)

        validation = CheckoutValidator().validate(cart)
        if not validation.is_valid:
            return ServiceResult.failure(
                "Cart validation failed",
                error_code="CART_INVALID",
                errors={"cart": validation.validation_errors},
            )

        products_by_store = {
            store_id: [validation.products[item.product_id] for item in lines]
            for store_id, lines in validation.lines_by_store.items()
        }
        try:
            shipping = ShippingAggregator.resolve(
                shipping_selections or {}, validation.stores, products_by_store
            )
        except ValidationError as e:
            return ServiceResult.failure(e.message, error_code=e.error_code)

        try:
            order = cls._create_order(buyer, validation, shipping, shipping_info, tx_ref)
        except IntegrityError:
            # Same key submitted concurrently; the other request created it
            order = Order.objects.get(idempotency_key=tx_ref)

        return cls._payment_link_for(order, buyer, shipping_info)

    @classmethod
    def _create_order(
        cls,
        buyer,
        validation: CartValidationResult,
        shipping: ShippingResolution,
        shipping_info: dict[str, Any],
        tx_ref: str,
    ) -> Order:
        with cls.atomic():
            store_totals = {
                store_id: sum(
                    CheckoutValidator.unit_price(
                        validation.products[item.product_id], item.selected_size
                    )
                    * item.quantity
                    for item in lines
                )
                for store_id, lines in validation.lines_by_store.items()
            }
            order = Order.objects.create(
                buyer=buyer,
                total_amount=sum(store_totals.values()) + shipping.total,
                idempotency_key=tx_ref,
                shipping_address=dict(shipping_info),
                expire_at=timezone.now() + timedelta(days=settings.SETTLEMENT_PAYMENT_GRACE_DAYS),
            )

            for store_id, lines in validation.lines_by_store.items():
                sub_order = SubOrder.objects.create(
                    order=order,
                    store=validation.stores[store_id],
                    total_amount=store_totals[store_id],
                    shipping_method=shipping.methods.get(store_id, {}),
                )
                sub_order.record_status(sub_order.delivery_status, "Order placed", "system")
                sub_order.save(update_fields=["status_history", "updated_at"])

                SubOrderItem.objects.bulk_create(
                    [
                        SubOrderItem(
                            sub_order=sub_order,
                            product_id=item.product_id,
                            quantity=item.quantity,
                            unit_price=CheckoutValidator.unit_price(
                                validation.products[item.product_id], item.selected_size
                            ),
                            selected_size=item.selected_size or "",
                            product_snapshot={
                                "name": validation.products[item.product_id].name,
                                "productType": validation.products[item.product_id].product_type,
                            },
                        )
                        for item in lines
                    ]
                )

        cls.get_logger().info(
            "Pending order created",
            extra={
                "order_id": str(order.id),
                "tx_ref": tx_ref,
                "amount": order.total_amount,
                "sub_orders": len(validation.lines_by_store),
            },
        )
        return order

    @classmethod
    def _payment_link_for(
        cls,
        order: Order,
        buyer,
        shipping_info: dict[str, Any],
    ) -> ServiceResult[dict[str, Any]]:
        if order.buyer_id != buyer.pk:
            return ServiceResult.failure(
                "Idempotency key belongs to another order",
                error_code="IDEMPOTENCY_KEY_CONFLICT",
            )
        if order.payment_status != PaymentStatus.PENDING:
            return ServiceResult.failure(
                f"Order is already {order.payment_status}",
                error_code="ORDER_ALREADY_FINALIZED",
            )

        full_name = " ".join(
            part for part in (shipping_info.get("firstName"), shipping_info.get("lastName")) if part
        )
        try:
            link = FlutterwaveAdapter.initialize_payment(
                InitializePaymentParams(
                    tx_ref=order.idempotency_key,
                    amount=order.total_amount,
                    currency=settings.SETTLEMENT_CURRENCY,
                    customer_email=shipping_info.get("email") or buyer.email,
                    customer_name=full_name,
                    customer_phone=shipping_info.get("phoneNumber", ""),
                    order_id=str(order.id),
                )
            )
        except (PaymentGatewayError, ValueError) as e:
            cls.get_logger().error(
                f"Payment initialization failed: {e}",
                extra={"order_id": str(order.id), "tx_ref": order.idempotency_key},
            )
            return ServiceResult.from_exception(e)

        return ServiceResult.success(
            {
                "orderId": str(order.id),
                "txRef": order.idempotency_key,
                "redirectLink": link.link,
            }
        )
