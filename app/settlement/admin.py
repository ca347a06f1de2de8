"""
Settlement admin configuration.

State fields are FSM protected, so every admin here shows them read-only;
status changes go through the API views and services. Ledger entries and
withdrawal requests are entirely read-only.
"""

from django.contrib import admin

from settlement.models import (
    FundRelease,
    Order,
    Product,
    Store,
    SubOrder,
    SubOrderItem,
    Wallet,
    WalletTransaction,
    WithdrawalRequest,
)


class ReadOnlyAdminMixin:
    """Disables add, change and delete in the admin."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ["name", "owner", "email", "status", "is_verified", "created_at"]
    list_filter = ["status", "is_verified"]
    search_fields = ["name", "email", "owner__email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "store", "price", "stock_quantity", "product_type", "is_available"]
    list_filter = ["product_type", "is_available"]
    search_fields = ["name", "store__name"]
    readonly_fields = ["id", "created_at", "updated_at"]


class SubOrderInline(admin.TabularInline):
    model = SubOrder
    extra = 0
    can_delete = False
    fields = ["store", "total_amount", "delivery_status", "escrow_held", "escrow_released"]
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Payment status is set only by payment verification.
    """

    list_display = ["id", "buyer", "total_amount", "payment_status", "paid_at", "created_at"]
    list_filter = ["payment_status", "payment_gateway"]
    search_fields = ["id", "idempotency_key", "gateway_transaction_id", "buyer__email"]
    readonly_fields = [
        "id",
        "payment_status",
        "idempotency_key",
        "gateway_transaction_id",
        "paid_at",
        "expire_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [SubOrderInline]


class SubOrderItemInline(admin.TabularInline):
    model = SubOrderItem
    extra = 0
    can_delete = False
    fields = ["product", "quantity", "unit_price", "selected_size"]
    readonly_fields = fields


@admin.register(SubOrder)
class SubOrderAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "store",
        "total_amount",
        "delivery_status",
        "escrow_held",
        "escrow_released",
        "escrow_refunded",
        "return_window",
    ]
    list_filter = ["delivery_status", "escrow_held", "escrow_released", "escrow_refunded"]
    search_fields = ["id", "order__id", "store__name"]
    readonly_fields = [
        "id",
        "order",
        "delivery_status",
        "delivery_date",
        "return_window",
        "escrow_held",
        "escrow_released",
        "escrow_refunded",
        "escrow_released_at",
        "escrow_refunded_at",
        "escrow_refund_reference",
        "escrow_refund_attempted_at",
        "status_history",
        "version",
        "created_at",
        "updated_at",
    ]
    inlines = [SubOrderItemInline]


@admin.register(FundRelease)
class FundReleaseAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "store",
        "settlement_amount",
        "status",
        "trigger",
        "scheduled_release_time",
        "actual_released_at",
        "failure_count",
    ]
    list_filter = ["status", "trigger", "store_verified", "delivery_confirmed"]
    search_fields = ["id", "sub_order__id", "order__id", "store__name"]
    readonly_fields = [
        "id",
        "order",
        "sub_order",
        "store",
        "wallet",
        "item_subtotal",
        "commission",
        "applied_percentage_fee",
        "applied_flat_fee",
        "shipping_price",
        "settlement_amount",
        "status",
        "trigger",
        "scheduled_release_time",
        "actual_released_at",
        "failure_count",
        "last_failed_at",
        "reversed_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "order", "sub_order", "store", "wallet")}),
        (
            "Settlement",
            {
                "fields": (
                    "item_subtotal",
                    "commission",
                    "applied_percentage_fee",
                    "applied_flat_fee",
                    "shipping_price",
                    "settlement_amount",
                ),
            },
        ),
        (
            "Release",
            {
                "fields": (
                    "status",
                    "trigger",
                    "store_verified",
                    "delivery_confirmed",
                    "delivery_confirmed_at",
                    "scheduled_release_time",
                    "actual_released_at",
                    "reversed_at",
                ),
            },
        ),
        (
            "Failures",
            {
                "fields": ("failure_count", "last_failed_at", "admin_notes"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version", "created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Balances change only through the ledger."""

    list_display = ["store", "balance", "pending", "total_earned", "currency", "updated_at"]
    search_fields = ["store__name"]


@admin.register(WalletTransaction)
class WalletTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "wallet",
        "type",
        "source",
        "amount",
        "balance_after",
        "description",
        "created_at",
    ]
    list_filter = ["type", "source"]
    search_fields = ["id", "wallet__store__name", "idempotency_key", "description"]
    ordering = ["-created_at"]


@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Reviews happen through the admin API so wallet postings stay consistent."""

    list_display = [
        "request_number",
        "store",
        "requested_amount",
        "processing_fee",
        "net_amount",
        "status",
        "created_at",
    ]
    list_filter = ["status"]
    search_fields = ["request_number", "store__name", "transaction_reference"]
    ordering = ["-created_at"]
