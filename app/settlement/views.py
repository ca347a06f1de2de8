"""
DRF views for settlement API.

This module provides API views for:
- Checkout validation and payment initialization
- Payment verification (checkout-success redirect and gateway webhook)
- Buyer delivery confirmation
- Store sub-order status, fund releases, wallet and withdrawals
- Admin refund queue, delivery confirmation queue, escrow release queue,
  fund release reversal and withdrawal review

Related files:
    - services/: Business logic (views only translate HTTP)
    - serializers.py: Request/response serializers
    - permissions.py: IsStoreOwner, HasAdminPermissions
    - urls.py: URL routing

Security:
    - All endpoints require authentication except the gateway webhook
    - The webhook checks the verif-hash header and re-verifies the
      transaction with the gateway; its payload is never trusted
"""

from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.helpers import get_client_ip

from settlement.adapters import FlutterwaveAdapter
from settlement.models import SubOrder
from settlement.pagination import SettlementPagination, paginated_response
from settlement.permissions import HasAdminPermissions, IsStoreOwner, get_store_for_user
from settlement.serializers import (
    AdminNotesSerializer,
    AdminReasonSerializer,
    CartValidateSerializer,
    CheckoutInitializeSerializer,
    DeliveryStatusUpdateSerializer,
    FundReleaseAdminSerializer,
    FundReleaseDetailSerializer,
    FundReleaseSerializer,
    PaymentVerifyQuerySerializer,
    SubOrderSerializer,
    VersionSerializer,
    WalletSerializer,
    WalletTransactionSerializer,
    WithdrawalAdminSerializer,
    WithdrawalApproveSerializer,
    WithdrawalCompleteSerializer,
    WithdrawalCreateSerializer,
    WithdrawalRequestSerializer,
)
from settlement.services import (
    CartSnapshot,
    CheckoutService,
    EscrowService,
    FundReleaseQueryService,
    FundReleaseService,
    PaymentVerifier,
    WalletService,
    WithdrawalService,
)
from settlement.state_machines import DeliveryStatus

logger = logging.getLogger(__name__)

# Failure codes rendered with something other than 400
NOT_FOUND_CODES = {
    "SUB_ORDER_NOT_FOUND",
    "FUND_RELEASE_NOT_FOUND",
    "WITHDRAWAL_NOT_FOUND",
    "WALLET_NOT_FOUND",
    "ORDER_NOT_FOUND",
    "STORE_NOT_FOUND",
}
CONFLICT_CODES = {
    "STALE_RECORD",
    "INVALID_STATE_TRANSITION",
    "ESCROW_ALREADY_RELEASED",
    "ESCROW_ALREADY_REFUNDED",
    "ESCROW_INVARIANT_VIOLATION",
    "ORDER_ALREADY_FINALIZED",
    "IDEMPOTENCY_KEY_CONFLICT",
    "LOCK_ACQUISITION_FAILED",
}


def failure_response(result) -> Response:
    """Render a failed ServiceResult with a status matching its error code."""
    if result.error_code in NOT_FOUND_CODES:
        http_status = status.HTTP_404_NOT_FOUND
    elif result.error_code in CONFLICT_CODES:
        http_status = status.HTTP_409_CONFLICT
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(result.to_response(), status=http_status)


def listing_filters(request) -> dict:
    """Query parameters as a plain dict of single values."""
    return {key: request.query_params.get(key) for key in request.query_params}


PAGINATION_PARAMETERS = [
    OpenApiParameter(
        name="page",
        type=OpenApiTypes.INT,
        location=OpenApiParameter.QUERY,
        description="Page number (default 1)",
        required=False,
    ),
    OpenApiParameter(
        name="pageSize",
        type=OpenApiTypes.INT,
        location=OpenApiParameter.QUERY,
        description="Items per page (default 20, max 100)",
        required=False,
    ),
]


# =============================================================================
# Checkout
# =============================================================================


class CartValidateView(APIView):
    """
    Re-validate a cart snapshot against the catalog.

    POST /api/v1/settlement/checkout/validate/

    Returns:
        {"isValid": bool, "validationErrors": [...]}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="validate_cart",
        summary="Validate cart",
        request=CartValidateSerializer,
        tags=["Settlement - Checkout"],
    )
    def post(self, request):
        serializer = CartValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cart = CartSnapshot.from_payload(serializer.validated_data["items"])
        result = CheckoutService.validate_cart(cart)
        return Response(result.to_dict())


class CheckoutInitializeView(APIView):
    """
    Create the pending order and a hosted payment link.

    POST /api/v1/settlement/checkout/initialize/

    Returns:
        {"orderId": "...", "txRef": "STL-...", "redirectLink": "https://..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="initialize_checkout",
        summary="Initialize payment",
        request=CheckoutInitializeSerializer,
        responses={
            201: OpenApiResponse(description="Order created and payment link issued"),
            400: OpenApiResponse(description="Cart, shipping or gateway error"),
        },
        tags=["Settlement - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutInitializeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = CheckoutService.prepare_payment(
            buyer=request.user,
            cart=CartSnapshot.from_payload(data["items"]),
            shipping_selections=data.get("shippingSelections") or {},
            shipping_info=data["shippingInfo"],
            idempotency_key=data["idempotencyKey"],
        )
        if not result.success:
            return failure_response(result)
        return Response(result.data, status=status.HTTP_201_CREATED)


class PaymentVerifyView(APIView):
    """
    Checkout-success verification.

    GET /api/v1/settlement/payments/verify/?transaction_id=4975363
    GET /api/v1/settlement/payments/verify/?tx_ref=STL-...

    Only server-verifiable references are accepted; the gateway is asked
    for the real outcome.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify payment",
        parameters=[
            OpenApiParameter(
                name="transaction_id",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Gateway transaction id",
                required=False,
            ),
            OpenApiParameter(
                name="tx_ref",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Order reference, for abandoned checkouts",
                required=False,
            ),
        ],
        responses={
            200: OpenApiResponse(description='{"ok": true, "status": "successful"}'),
            400: OpenApiResponse(description='{"ok": false, "error": "..."}'),
        },
        tags=["Settlement - Checkout"],
    )
    def get(self, request):
        serializer = PaymentVerifyQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        result = PaymentVerifier.verify_checkout(
            transaction_id=serializer.validated_data.get("transaction_id") or None,
            tx_ref=serializer.validated_data.get("tx_ref") or None,
            buyer=request.user,
        )
        http_status = status.HTTP_200_OK if result.ok else status.HTTP_400_BAD_REQUEST
        return Response(result.to_dict(), status=http_status)


class FlutterwaveWebhookView(APIView):
    """
    Flutterwave webhook endpoint.

    POST /api/v1/settlement/payments/webhooks/flutterwave/

    The payload is only used for the transaction id; the outcome comes from
    a fresh gateway verification. Always answers 200 once the signature is
    valid so the gateway stops redelivering.
    """

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = []

    @extend_schema(
        operation_id="flutterwave_webhook",
        summary="Flutterwave webhook",
        request=OpenApiTypes.OBJECT,
        responses={
            200: OpenApiResponse(description="Event processed or ignored"),
            401: OpenApiResponse(description="Invalid signature"),
        },
        tags=["Settlement - Webhooks"],
    )
    def post(self, request):
        signature = request.headers.get("verif-hash")
        if not FlutterwaveAdapter.verify_webhook_signature(signature):
            logger.warning(
                "Webhook rejected: invalid signature",
                extra={"ip_address": get_client_ip(request)},
            )
            return Response({"error": "Invalid signature"}, status=status.HTTP_401_UNAUTHORIZED)

        payload = request.data if isinstance(request.data, dict) else {}
        event = payload.get("event") or payload.get("event.type") or ""
        transaction_id = (payload.get("data") or {}).get("id")

        if not transaction_id:
            logger.info("Webhook ignored: no transaction id", extra={"event": event})
            return Response({"status": "ignored"})

        result = PaymentVerifier.verify_checkout(transaction_id=str(transaction_id))
        logger.info(
            "Webhook processed",
            extra={
                "event": event,
                "transaction_id": str(transaction_id),
                "ok": result.ok,
                "status": result.status,
            },
        )
        return Response({"status": "processed", "verification": result.to_dict()})


# =============================================================================
# Buyer
# =============================================================================


class ConfirmDeliveryView(APIView):
    """
    Buyer confirms receipt of a sub-order.

    POST /api/v1/settlement/sub-orders/{id}/confirm-delivery/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_delivery",
        summary="Confirm delivery",
        request=None,
        responses={200: SubOrderSerializer},
        tags=["Settlement - Buyer"],
    )
    def post(self, request, sub_order_id):
        result = EscrowService.confirm_delivery(request.user, sub_order_id)
        if not result.success:
            return failure_response(result)
        return Response(SubOrderSerializer(result.data).data)


# =============================================================================
# Store
# =============================================================================


class StoreSubOrderListView(generics.ListAPIView):
    """
    The store's sub-orders, newest first.

    GET /api/v1/settlement/store/sub-orders/?deliveryStatus=shipped
    """

    permission_classes = [IsStoreOwner]
    serializer_class = SubOrderSerializer
    pagination_class = SettlementPagination

    def get_queryset(self):
        store = get_store_for_user(self.request.user)
        queryset = SubOrder.objects.filter(store=store).order_by("-created_at")
        delivery_status = self.request.query_params.get("deliveryStatus")
        if delivery_status in DeliveryStatus.values:
            queryset = queryset.filter(delivery_status=delivery_status)
        return queryset

    @extend_schema(
        operation_id="list_store_sub_orders",
        summary="List store sub-orders",
        parameters=[
            OpenApiParameter(
                name="deliveryStatus",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
            ),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Store"],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class SubOrderStatusUpdateView(APIView):
    """
    Store moves a sub-order along the delivery state machine.

    POST /api/v1/settlement/store/sub-orders/{id}/status/

    Request body:
        {"status": "shipped", "notes": "GIG Logistics #1234", "version": 3}
    """

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="update_sub_order_status",
        summary="Update delivery status",
        request=DeliveryStatusUpdateSerializer,
        responses={200: SubOrderSerializer},
        tags=["Settlement - Store"],
    )
    def post(self, request, sub_order_id):
        serializer = DeliveryStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = EscrowService.update_delivery_status(
            store=get_store_for_user(request.user),
            sub_order_id=sub_order_id,
            new_status=data["status"],
            notes=data.get("notes", ""),
            actor=request.user,
            expected_version=data.get("version"),
        )
        if not result.success:
            return failure_response(result)
        return Response(SubOrderSerializer(result.data).data)


class StoreFundReleaseListView(APIView):
    """
    GET /api/v1/settlement/store/fund-releases/

    Query parameters:
        status, orderId, sortBy, sortOrder, page, pageSize
    """

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="list_store_fund_releases",
        summary="List fund releases",
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, required=False),
            OpenApiParameter(name="orderId", type=OpenApiTypes.UUID, required=False),
            OpenApiParameter(
                name="sortBy",
                type=OpenApiTypes.STR,
                required=False,
                enum=["created_at", "scheduled_release_time", "actual_released_at", "amount"],
            ),
            OpenApiParameter(
                name="sortOrder", type=OpenApiTypes.STR, required=False, enum=["asc", "desc"]
            ),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Store"],
    )
    def get(self, request):
        store = get_store_for_user(request.user)
        result = FundReleaseQueryService.get_store_fund_releases(store, listing_filters(request))
        return paginated_response(result, FundReleaseSerializer)


class StoreFundReleaseSummaryView(APIView):
    """GET /api/v1/settlement/store/fund-releases/summary/"""

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="get_store_fund_release_summary",
        summary="Fund release summary",
        tags=["Settlement - Store"],
    )
    def get(self, request):
        store = get_store_for_user(request.user)
        return Response(FundReleaseQueryService.get_store_summary_stats(store))


class StoreFundReleaseDetailView(APIView):
    """GET /api/v1/settlement/store/fund-releases/{id}/"""

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="get_store_fund_release",
        summary="Get fund release",
        responses={200: FundReleaseDetailSerializer},
        tags=["Settlement - Store"],
    )
    def get(self, request, fund_release_id):
        store = get_store_for_user(request.user)
        release = FundReleaseQueryService.get_fund_release_detail(fund_release_id, store=store)
        return Response(FundReleaseDetailSerializer(release).data)


class StoreWalletView(APIView):
    """GET /api/v1/settlement/store/wallet/"""

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="get_store_wallet",
        summary="Get wallet",
        responses={200: WalletSerializer},
        tags=["Settlement - Store"],
    )
    def get(self, request):
        store = get_store_for_user(request.user)
        wallet = WalletService.get_or_create_wallet(store)
        return Response(WalletSerializer(wallet).data)


class StoreWalletTransactionListView(APIView):
    """
    GET /api/v1/settlement/store/wallet/transactions/

    Query parameters:
        type: credit | debit
        source: order | withdrawal | refund | adjustment
        page, pageSize
    """

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="list_wallet_transactions",
        summary="List wallet transactions",
        parameters=[
            OpenApiParameter(name="type", type=OpenApiTypes.STR, required=False),
            OpenApiParameter(name="source", type=OpenApiTypes.STR, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Store"],
    )
    def get(self, request):
        store = get_store_for_user(request.user)
        result = WalletService.transaction_history(store, listing_filters(request))
        return paginated_response(result, WalletTransactionSerializer)


class StoreWithdrawalView(APIView):
    """
    Store withdrawal requests.

    GET  /api/v1/settlement/store/withdrawals/
    POST /api/v1/settlement/store/withdrawals/

    Request body (POST):
        {"amount": 200000, "accountNumber": "0123456789", "description": ""}
    """

    permission_classes = [IsStoreOwner]

    @extend_schema(
        operation_id="list_store_withdrawals",
        summary="List withdrawals",
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Store"],
    )
    def get(self, request):
        store = get_store_for_user(request.user)
        result = WithdrawalService.list_for_store(store, listing_filters(request))
        return paginated_response(result, WithdrawalRequestSerializer)

    @extend_schema(
        operation_id="create_withdrawal",
        summary="Request withdrawal",
        request=WithdrawalCreateSerializer,
        responses={201: WithdrawalRequestSerializer},
        tags=["Settlement - Store"],
    )
    def post(self, request):
        serializer = WithdrawalCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = WithdrawalService.create_request(
            store=get_store_for_user(request.user),
            amount=data["amount"],
            account_number=data["accountNumber"],
            description=data.get("description", ""),
            requested_by=request.user,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent", ""),
        )
        if not result.success:
            return failure_response(result)
        return Response(
            WithdrawalRequestSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


# =============================================================================
# Admin: Refunds
# =============================================================================


class RefundQueueView(APIView):
    """
    Canceled and failed-delivery sub-orders whose escrow is still held.

    GET /api/v1/settlement/admin/refund-queue/?status=canceled&storeId=...
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.view_refund_queue"]

    @extend_schema(
        operation_id="list_refund_queue",
        summary="Refund queue",
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, required=False),
            OpenApiParameter(name="storeId", type=OpenApiTypes.UUID, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Admin"],
    )
    def get(self, request):
        result = EscrowService.refund_queue(listing_filters(request))
        return paginated_response(result, SubOrderSerializer)


class ApproveRefundView(APIView):
    """POST /api/v1/settlement/admin/refund-queue/{id}/approve/"""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.approve_refund"]

    @extend_schema(
        operation_id="approve_refund",
        summary="Approve refund",
        request=AdminNotesSerializer,
        responses={200: SubOrderSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, sub_order_id):
        serializer = AdminNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowService.approve_refund(
            request.settlement_admin, sub_order_id, serializer.validated_data["notes"]
        )
        if not result.success:
            return failure_response(result)
        return Response(SubOrderSerializer(result.data).data)


class ReturnRefundView(APIView):
    """POST /api/v1/settlement/admin/sub-orders/{id}/return-refund/"""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.approve_refund"]

    @extend_schema(
        operation_id="approve_return_refund",
        summary="Refund returned sub-order",
        request=AdminNotesSerializer,
        responses={200: SubOrderSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, sub_order_id):
        serializer = AdminNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowService.approve_return_refund(
            request.settlement_admin, sub_order_id, serializer.validated_data["notes"]
        )
        if not result.success:
            return failure_response(result)
        return Response(SubOrderSerializer(result.data).data)


# =============================================================================
# Admin: Delivery Confirmations
# =============================================================================


class DeliveryConfirmationQueueView(APIView):
    """
    Delivered sub-orders the buyer never confirmed, past the grace period.

    GET /api/v1/settlement/admin/delivery-confirmations/?fromDate=&toDate=&search=
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.confirm_delivery"]

    @extend_schema(
        operation_id="list_delivery_confirmations",
        summary="Delivery confirmation queue",
        parameters=[
            OpenApiParameter(name="fromDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="toDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Admin"],
    )
    def get(self, request):
        result = EscrowService.delivery_confirmation_queue(listing_filters(request))
        return paginated_response(result, SubOrderSerializer)


class AdminConfirmDeliveryView(APIView):
    """POST /api/v1/settlement/admin/delivery-confirmations/{id}/confirm/"""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.confirm_delivery"]

    @extend_schema(
        operation_id="admin_confirm_delivery",
        summary="Confirm delivery for buyer",
        request=AdminNotesSerializer,
        responses={200: SubOrderSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, sub_order_id):
        serializer = AdminNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowService.admin_confirm_delivery(
            request.settlement_admin, sub_order_id, serializer.validated_data["notes"]
        )
        if not result.success:
            return failure_response(result)
        return Response(SubOrderSerializer(result.data).data)


# =============================================================================
# Admin: Escrow Release
# =============================================================================


class EscrowReleaseQueueView(APIView):
    """
    Delivered sub-orders with held escrow and an elapsed return window.

    GET /api/v1/settlement/admin/escrow/release-queue/?fromDate=&toDate=&storeId=&search=
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.release_escrow"]

    @extend_schema(
        operation_id="list_escrow_release_queue",
        summary="Escrow release queue",
        parameters=[
            OpenApiParameter(name="fromDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="toDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="storeId", type=OpenApiTypes.UUID, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Admin"],
    )
    def get(self, request):
        result = EscrowService.release_queue(listing_filters(request))
        return paginated_response(result, SubOrderSerializer)


class EscrowReleaseDetailView(APIView):
    """GET /api/v1/settlement/admin/escrow/release-queue/{id}/"""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.release_escrow"]

    @extend_schema(
        operation_id="retrieve_escrow_release",
        summary="Escrow release queue entry",
        tags=["Settlement - Admin"],
    )
    def get(self, request, sub_order_id):
        result = EscrowService.release_queue_entry(sub_order_id)
        if not result.success:
            return failure_response(result)

        sub_order = result.data
        fund_release = getattr(sub_order, "fund_release", None)
        return Response(
            {
                "subOrder": SubOrderSerializer(sub_order).data,
                "fundRelease": FundReleaseAdminSerializer(fund_release).data
                if fund_release is not None
                else None,
            }
        )


class ReleaseEscrowView(APIView):
    """
    POST /api/v1/settlement/admin/escrow/{id}/release/

    Request body:
        {"notes": "Store confirmed no return was requested"}
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.release_escrow"]

    @extend_schema(
        operation_id="release_escrow",
        summary="Release escrow to store wallet",
        request=AdminNotesSerializer,
        responses={200: FundReleaseAdminSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, sub_order_id):
        serializer = AdminNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = FundReleaseService.release_by_admin(
            request.settlement_admin, sub_order_id, serializer.validated_data["notes"]
        )
        if not result.success:
            return failure_response(result)
        return Response(FundReleaseAdminSerializer(result.data).data)


# =============================================================================
# Admin: Fund Releases
# =============================================================================


class AdminFundReleaseListView(APIView):
    """GET /api/v1/settlement/admin/fund-releases/?storeId=&status=&orderId="""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.view_all_fund_releases"]

    @extend_schema(
        operation_id="list_admin_fund_releases",
        summary="List all fund releases",
        parameters=[
            OpenApiParameter(name="storeId", type=OpenApiTypes.UUID, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, required=False),
            OpenApiParameter(name="orderId", type=OpenApiTypes.UUID, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Admin"],
    )
    def get(self, request):
        result = FundReleaseQueryService.list_for_admin(listing_filters(request))
        return paginated_response(result, FundReleaseAdminSerializer)


class ReverseFundReleaseView(APIView):
    """
    POST /api/v1/settlement/admin/fund-releases/{id}/reverse/

    Request body:
        {"reason": "Chargeback on order ...", "version": 4}
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.reverse_fund_release"]

    @extend_schema(
        operation_id="reverse_fund_release",
        summary="Reverse fund release",
        request=AdminReasonSerializer,
        responses={200: FundReleaseAdminSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, fund_release_id):
        serializer = AdminReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = FundReleaseService.reverse_fund_release(
            fund_release_id,
            request.settlement_admin,
            serializer.validated_data["reason"],
            expected_version=serializer.validated_data.get("version"),
        )
        if not result.success:
            return failure_response(result)
        return Response(FundReleaseAdminSerializer(result.data).data)


# =============================================================================
# Admin: Withdrawals
# =============================================================================


class AdminWithdrawalListView(APIView):
    """GET /api/v1/settlement/admin/withdrawals/?status=&storeId=&fromDate=&toDate=&search="""

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.review_withdrawal"]

    @extend_schema(
        operation_id="list_admin_withdrawals",
        summary="List withdrawal requests",
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, required=False),
            OpenApiParameter(name="storeId", type=OpenApiTypes.UUID, required=False),
            OpenApiParameter(name="fromDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="toDate", type=OpenApiTypes.DATE, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, required=False),
            *PAGINATION_PARAMETERS,
        ],
        tags=["Settlement - Admin"],
    )
    def get(self, request):
        result = WithdrawalService.list_for_admin(listing_filters(request))
        return paginated_response(result, WithdrawalAdminSerializer)


class WithdrawalActionView(APIView):
    """
    Admin withdrawal review actions.

    POST /api/v1/settlement/admin/withdrawals/{id}/review/
    POST /api/v1/settlement/admin/withdrawals/{id}/approve/
    POST /api/v1/settlement/admin/withdrawals/{id}/reject/
    POST /api/v1/settlement/admin/withdrawals/{id}/process/
    POST /api/v1/settlement/admin/withdrawals/{id}/complete/
    POST /api/v1/settlement/admin/withdrawals/{id}/fail/
    """

    permission_classes = [HasAdminPermissions]
    required_admin_permissions = ["settlement.review_withdrawal"]

    # action name -> request serializer
    ACTIONS = {
        "review": VersionSerializer,
        "approve": WithdrawalApproveSerializer,
        "reject": AdminReasonSerializer,
        "process": VersionSerializer,
        "complete": WithdrawalCompleteSerializer,
        "fail": AdminReasonSerializer,
    }

    @extend_schema(
        operation_id="withdrawal_action",
        summary="Review withdrawal",
        request=OpenApiTypes.OBJECT,
        responses={200: WithdrawalAdminSerializer},
        tags=["Settlement - Admin"],
    )
    def post(self, request, withdrawal_id, action):
        serializer_class = self.ACTIONS.get(action)
        if serializer_class is None:
            return Response(
                {"error": f"Unknown action '{action}'", "error_code": "UNKNOWN_ACTION"},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        admin = request.settlement_admin
        version = data.get("version")

        if action == "review":
            result = WithdrawalService.start_review(admin, withdrawal_id, version)
        elif action == "approve":
            result = WithdrawalService.approve(
                admin,
                withdrawal_id,
                notes=data.get("notes", ""),
                transaction_reference=data.get("transactionReference", ""),
                expected_version=version,
            )
        elif action == "reject":
            result = WithdrawalService.reject(admin, withdrawal_id, data["reason"], version)
        elif action == "process":
            result = WithdrawalService.start_processing(admin, withdrawal_id, version)
        elif action == "complete":
            result = WithdrawalService.complete(
                admin, withdrawal_id, data["transactionReference"], version
            )
        else:
            result = WithdrawalService.fail(admin, withdrawal_id, data["reason"], version)

        if not result.success:
            return failure_response(result)
        return Response(WithdrawalAdminSerializer(result.data).data)
