"""
Serializers for settlement API.

Request serializers validate input shape only; business rules live in the
services. Response serializers render camelCase keys.

Serializer Hierarchy:
    Checkout: CartItemSerializer, CartValidateSerializer,
        CheckoutInitializeSerializer, PaymentVerifyQuerySerializer
    Delivery: DeliveryStatusUpdateSerializer, SubOrderSerializer,
        SubOrderItemSerializer
    Fund releases: FundReleaseSerializer (store view),
        FundReleaseAdminSerializer, FundReleaseDetailSerializer
    Wallet: WalletSerializer, WalletTransactionSerializer
    Withdrawals: WithdrawalCreateSerializer, WithdrawalRequestSerializer,
        WithdrawalAdminSerializer
    Admin actions: AdminNotesSerializer, AdminReasonSerializer,
        WithdrawalApproveSerializer, WithdrawalCompleteSerializer

Design Decisions:
    - Store-facing fund release serializers never expose admin_notes or
      metadata
    - ``version`` is echoed back so clients can send it with admin actions
"""

from __future__ import annotations

from rest_framework import serializers

from settlement.models import (
    FundRelease,
    SubOrder,
    SubOrderItem,
    Wallet,
    WalletTransaction,
    WithdrawalRequest,
)
from settlement.state_machines import DeliveryStatus

# =============================================================================
# Checkout
# =============================================================================


class CartItemSerializer(serializers.Serializer):
    productId = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=0, help_text="Unit price in kobo")
    selectedSize = serializers.CharField(
        max_length=20, required=False, allow_blank=True, allow_null=True
    )


class CartValidateSerializer(serializers.Serializer):
    items = CartItemSerializer(many=True, allow_empty=True)


class CheckoutInitializeSerializer(serializers.Serializer):
    """
    Payment-intent request.

    shippingSelections maps store id to the selected method name; any price
    the client sends is ignored.
    """

    items = CartItemSerializer(many=True, allow_empty=True)
    shippingSelections = serializers.DictField(required=False, default=dict)
    shippingInfo = serializers.DictField()
    idempotencyKey = serializers.CharField(max_length=100)


class PaymentVerifyQuerySerializer(serializers.Serializer):
    transaction_id = serializers.CharField(required=False, allow_blank=True)
    tx_ref = serializers.CharField(required=False, allow_blank=True)


# =============================================================================
# Sub-orders
# =============================================================================


class DeliveryStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DeliveryStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    version = serializers.IntegerField(required=False, min_value=0)


class SubOrderItemSerializer(serializers.ModelSerializer):
    productId = serializers.UUIDField(source="product_id", read_only=True)
    unitPrice = serializers.IntegerField(source="unit_price", read_only=True)
    selectedSize = serializers.CharField(source="selected_size", read_only=True)
    productSnapshot = serializers.JSONField(source="product_snapshot", read_only=True)

    class Meta:
        model = SubOrderItem
        fields = ["id", "productId", "quantity", "unitPrice", "selectedSize", "productSnapshot"]
        read_only_fields = fields


class SubOrderSerializer(serializers.ModelSerializer):
    orderId = serializers.UUIDField(source="order_id", read_only=True)
    storeId = serializers.UUIDField(source="store_id", read_only=True)
    totalAmount = serializers.IntegerField(source="total_amount", read_only=True)
    shippingMethod = serializers.JSONField(source="shipping_method", read_only=True)
    deliveryStatus = serializers.CharField(source="delivery_status", read_only=True)
    deliveryDate = serializers.DateTimeField(source="delivery_date", read_only=True)
    returnWindow = serializers.DateTimeField(source="return_window", read_only=True)
    customerConfirmedDelivery = serializers.SerializerMethodField()
    escrow = serializers.SerializerMethodField()
    statusHistory = serializers.JSONField(source="status_history", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = SubOrder
        fields = [
            "id",
            "orderId",
            "storeId",
            "totalAmount",
            "shippingMethod",
            "deliveryStatus",
            "deliveryDate",
            "returnWindow",
            "customerConfirmedDelivery",
            "escrow",
            "statusHistory",
            "version",
            "createdAt",
        ]
        read_only_fields = fields

    def get_customerConfirmedDelivery(self, obj: SubOrder) -> dict:
        data = obj.customer_confirmed_delivery
        confirmed_at = data["confirmedAt"]
        return {**data, "confirmedAt": confirmed_at.isoformat() if confirmed_at else None}

    def get_escrow(self, obj: SubOrder) -> dict:
        data = obj.escrow
        released_at = data["releasedAt"]
        return {**data, "releasedAt": released_at.isoformat() if released_at else None}


# =============================================================================
# Fund Releases
# =============================================================================


class FundReleaseSerializer(serializers.ModelSerializer):
    """Store view of a fund release (no admin notes or metadata)."""

    orderId = serializers.UUIDField(source="order_id", read_only=True)
    subOrderId = serializers.UUIDField(source="sub_order_id", read_only=True)
    storeId = serializers.UUIDField(source="store_id", read_only=True)
    itemSubtotal = serializers.IntegerField(source="item_subtotal", read_only=True)
    appliedPercentageFee = serializers.IntegerField(
        source="applied_percentage_fee", read_only=True
    )
    appliedFlatFee = serializers.IntegerField(source="applied_flat_fee", read_only=True)
    shippingPrice = serializers.IntegerField(source="shipping_price", read_only=True)
    settlementAmount = serializers.IntegerField(source="settlement_amount", read_only=True)
    storeVerified = serializers.BooleanField(source="store_verified", read_only=True)
    deliveryConfirmed = serializers.BooleanField(source="delivery_confirmed", read_only=True)
    deliveryConfirmedAt = serializers.DateTimeField(
        source="delivery_confirmed_at", read_only=True
    )
    scheduledReleaseTime = serializers.DateTimeField(
        source="scheduled_release_time", read_only=True
    )
    actualReleasedAt = serializers.DateTimeField(source="actual_released_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = FundRelease
        fields = [
            "id",
            "orderId",
            "subOrderId",
            "storeId",
            "itemSubtotal",
            "commission",
            "appliedPercentageFee",
            "appliedFlatFee",
            "shippingPrice",
            "settlementAmount",
            "status",
            "trigger",
            "storeVerified",
            "deliveryConfirmed",
            "deliveryConfirmedAt",
            "scheduledReleaseTime",
            "actualReleasedAt",
            "version",
            "createdAt",
        ]
        read_only_fields = fields


class FundReleaseDetailSerializer(FundReleaseSerializer):
    """Store detail view: adds the sub-order and its items."""

    subOrder = SubOrderSerializer(source="sub_order", read_only=True)
    items = SubOrderItemSerializer(source="sub_order.items", many=True, read_only=True)

    class Meta(FundReleaseSerializer.Meta):
        fields = [*FundReleaseSerializer.Meta.fields, "subOrder", "items"]
        read_only_fields = fields


class FundReleaseAdminSerializer(FundReleaseSerializer):
    failureCount = serializers.IntegerField(source="failure_count", read_only=True)
    lastFailedAt = serializers.DateTimeField(source="last_failed_at", read_only=True)
    reversedAt = serializers.DateTimeField(source="reversed_at", read_only=True)
    adminNotes = serializers.CharField(source="admin_notes", read_only=True)
    storeName = serializers.CharField(source="store.name", read_only=True)

    class Meta(FundReleaseSerializer.Meta):
        fields = [
            *FundReleaseSerializer.Meta.fields,
            "storeName",
            "failureCount",
            "lastFailedAt",
            "reversedAt",
            "adminNotes",
            "metadata",
        ]
        read_only_fields = fields


# =============================================================================
# Wallet
# =============================================================================


class WalletSerializer(serializers.ModelSerializer):
    storeId = serializers.UUIDField(source="store_id", read_only=True)
    totalEarned = serializers.IntegerField(source="total_earned", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Wallet
        fields = ["id", "storeId", "balance", "pending", "totalEarned", "currency", "updatedAt"]
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):
    balanceAfter = serializers.IntegerField(source="balance_after", read_only=True)
    relatedOrderId = serializers.UUIDField(source="related_order_id", read_only=True)
    relatedSubOrderId = serializers.UUIDField(source="related_sub_order_id", read_only=True)
    relatedDocumentType = serializers.CharField(source="related_document_type", read_only=True)
    relatedDocumentId = serializers.UUIDField(source="related_document_id", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = WalletTransaction
        fields = [
            "id",
            "type",
            "source",
            "amount",
            "balanceAfter",
            "relatedOrderId",
            "relatedSubOrderId",
            "relatedDocumentType",
            "relatedDocumentId",
            "description",
            "createdAt",
        ]
        read_only_fields = fields


# =============================================================================
# Withdrawals
# =============================================================================


class WithdrawalCreateSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, help_text="Amount in kobo")
    accountNumber = serializers.CharField(max_length=20)
    description = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )


class WithdrawalRequestSerializer(serializers.ModelSerializer):
    requestNumber = serializers.CharField(source="request_number", read_only=True)
    requestedAmount = serializers.IntegerField(source="requested_amount", read_only=True)
    processingFee = serializers.IntegerField(source="processing_fee", read_only=True)
    netAmount = serializers.IntegerField(source="net_amount", read_only=True)
    bankDetails = serializers.JSONField(source="bank_details", read_only=True)
    statusHistory = serializers.JSONField(source="status_history", read_only=True)
    rejectionReason = serializers.CharField(source="rejection_reason", read_only=True)
    transactionReference = serializers.CharField(
        source="transaction_reference", read_only=True
    )
    processedAt = serializers.DateTimeField(source="processed_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = WithdrawalRequest
        fields = [
            "id",
            "requestNumber",
            "requestedAmount",
            "processingFee",
            "netAmount",
            "bankDetails",
            "description",
            "status",
            "statusHistory",
            "rejectionReason",
            "transactionReference",
            "processedAt",
            "version",
            "createdAt",
        ]
        read_only_fields = fields


class WithdrawalAdminSerializer(WithdrawalRequestSerializer):
    storeId = serializers.UUIDField(source="store_id", read_only=True)
    storeName = serializers.CharField(source="store.name", read_only=True)
    reviewedBy = serializers.CharField(source="reviewed_by_id", read_only=True)
    reviewedAt = serializers.DateTimeField(source="reviewed_at", read_only=True)
    reviewNotes = serializers.CharField(source="review_notes", read_only=True)
    ipAddress = serializers.CharField(source="ip_address", read_only=True)

    class Meta(WithdrawalRequestSerializer.Meta):
        fields = [
            *WithdrawalRequestSerializer.Meta.fields,
            "storeId",
            "storeName",
            "reviewedBy",
            "reviewedAt",
            "reviewNotes",
            "ipAddress",
        ]
        read_only_fields = fields


# =============================================================================
# Admin Actions
# =============================================================================


class AdminNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AdminReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()
    version = serializers.IntegerField(required=False, min_value=0)


class WithdrawalApproveSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    transactionReference = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    version = serializers.IntegerField(required=False, min_value=0)


class WithdrawalCompleteSerializer(serializers.Serializer):
    transactionReference = serializers.CharField(max_length=100)
    version = serializers.IntegerField(required=False, min_value=0)


class VersionSerializer(serializers.Serializer):
    version = serializers.IntegerField(required=False, min_value=0)
