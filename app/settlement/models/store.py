"""
Store and Product models.

A Store is the seller side of a sub-order: it owns a wallet, configures the
shipping methods buyers pick from, and registers payout accounts for
withdrawals. Product is the minimal catalog row the default catalog
collaborator reads prices and stock from.

Usage:
    from settlement.models import Product, Store

    store = Store.objects.create(
        owner=user,
        name="Ada's Shoes",
        email="ada@example.com",
        shipping_methods=[
            {"name": "Express", "price": 250000, "estimatedDeliveryDays": "1-2"},
        ],
    )
    store.get_shipping_method("Express")["price"]  # 250000
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import ProductType, StoreStatus


class Store(UUIDPrimaryKeyMixin, BaseModel):
    """
    A seller on the marketplace.

    Fields:
        id: UUID primary key
        owner: User who manages the store
        name: Display name
        email: Contact address for settlement notifications
        status: Only ACTIVE stores accept orders
        is_verified: Verification flag snapshotted into fund releases
        shipping_methods: [{name, price, estimatedDeliveryDays, description, isActive}]
        payout_accounts: [{bankName, accountNumber, accountHolderName, bankCode}]
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="stores",
        help_text="User who manages this store",
    )

    name = models.CharField(
        max_length=200,
        help_text="Store display name",
    )

    email = models.EmailField(
        help_text="Contact email for settlement and payout notifications",
    )

    status = models.CharField(
        max_length=20,
        choices=StoreStatus.choices,
        default=StoreStatus.ACTIVE,
        db_index=True,
        help_text="Only active stores can accept new orders",
    )

    is_verified = models.BooleanField(
        default=False,
        help_text="Whether the store passed verification",
    )

    # ==========================================================================
    # Configuration (JSON snapshots)
    # ==========================================================================

    shipping_methods = models.JSONField(
        default=list,
        blank=True,
        help_text="Configured shipping methods; prices in kobo",
    )

    payout_accounts = models.JSONField(
        default=list,
        blank=True,
        help_text="Bank accounts withdrawals may be paid into",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Store"
        verbose_name_plural = "Stores"

    def __str__(self) -> str:
        return f"Store({self.name})"

    @property
    def is_active(self) -> bool:
        return self.status == StoreStatus.ACTIVE

    def active_shipping_methods(self) -> list[dict]:
        """Shipping methods buyers may currently select."""
        return [m for m in self.shipping_methods or [] if m.get("isActive", True)]

    def get_shipping_method(self, name: str) -> dict | None:
        """Look up an active shipping method by name (case-sensitive)."""
        for method in self.active_shipping_methods():
            if method.get("name") == name:
                return method
        return None

    def get_payout_account(self, account_number: str) -> dict | None:
        for account in self.payout_accounts or []:
            if account.get("accountNumber") == account_number:
                return account
        return None


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    Catalog entry sold by a store.

    Fields:
        store: Seller
        name: Display name used in validation messages
        price: Current unit price in kobo
        stock_quantity: Units available when the product has no size variants
        sizes: [{size, quantity, price?}]; a size price overrides ``price``
        product_type: PHYSICAL products require shipping
        is_available: False once a product is pulled from sale
    """

    store = models.ForeignKey(
        Store,
        on_delete=models.PROTECT,
        related_name="products",
    )

    name = models.CharField(max_length=200)

    price = models.PositiveBigIntegerField(
        help_text="Unit price in kobo",
    )

    stock_quantity = models.PositiveIntegerField(
        default=0,
        help_text="Units in stock when the product has no size variants",
    )

    sizes = models.JSONField(
        default=list,
        blank=True,
        help_text="Size variants: [{size, quantity, price?}]",
    )

    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.PHYSICAL,
    )

    is_available = models.BooleanField(
        default=True,
        help_text="False when the product is no longer sold",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Product"
        verbose_name_plural = "Products"

    def __str__(self) -> str:
        return f"Product({self.name}, {self.price})"

    def get_size(self, size: str) -> dict | None:
        for variant in self.sizes or []:
            if str(variant.get("size")) == str(size):
                return variant
        return None
