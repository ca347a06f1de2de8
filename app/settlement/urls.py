"""
URL configuration for settlement API.

URL Structure:
    Checkout:
        /checkout/validate/                         POST
        /checkout/initialize/                       POST
        /payments/verify/                           GET
        /payments/webhooks/flutterwave/             POST

    Buyer:
        /sub-orders/{id}/confirm-delivery/          POST

    Store:
        /store/sub-orders/                          GET
        /store/sub-orders/{id}/status/              POST
        /store/fund-releases/                       GET
        /store/fund-releases/summary/               GET
        /store/fund-releases/{id}/                  GET
        /store/wallet/                              GET
        /store/wallet/transactions/                 GET
        /store/withdrawals/                         GET, POST

    Admin:
        /admin/refund-queue/                        GET
        /admin/refund-queue/{id}/approve/           POST
        /admin/sub-orders/{id}/return-refund/       POST
        /admin/delivery-confirmations/              GET
        /admin/delivery-confirmations/{id}/confirm/ POST
        /admin/escrow/release-queue/                GET
        /admin/escrow/release-queue/{id}/           GET
        /admin/escrow/{id}/release/                 POST
        /admin/fund-releases/                       GET
        /admin/fund-releases/{id}/reverse/          POST
        /admin/withdrawals/                         GET
        /admin/withdrawals/{id}/{action}/           POST (review, approve, reject,
                                                    process, complete, fail)

All URLs are prefixed with /api/v1/settlement/ in the main URL configuration.
"""

from django.urls import path

from settlement import views

app_name = "settlement"

urlpatterns = [
    # Checkout
    path("checkout/validate/", views.CartValidateView.as_view(), name="checkout-validate"),
    path(
        "checkout/initialize/",
        views.CheckoutInitializeView.as_view(),
        name="checkout-initialize",
    ),
    path("payments/verify/", views.PaymentVerifyView.as_view(), name="payment-verify"),
    path(
        "payments/webhooks/flutterwave/",
        views.FlutterwaveWebhookView.as_view(),
        name="flutterwave-webhook",
    ),
    # Buyer
    path(
        "sub-orders/<uuid:sub_order_id>/confirm-delivery/",
        views.ConfirmDeliveryView.as_view(),
        name="confirm-delivery",
    ),
    # Store
    path("store/sub-orders/", views.StoreSubOrderListView.as_view(), name="store-sub-orders"),
    path(
        "store/sub-orders/<uuid:sub_order_id>/status/",
        views.SubOrderStatusUpdateView.as_view(),
        name="store-sub-order-status",
    ),
    path(
        "store/fund-releases/",
        views.StoreFundReleaseListView.as_view(),
        name="store-fund-releases",
    ),
    path(
        "store/fund-releases/summary/",
        views.StoreFundReleaseSummaryView.as_view(),
        name="store-fund-release-summary",
    ),
    path(
        "store/fund-releases/<uuid:fund_release_id>/",
        views.StoreFundReleaseDetailView.as_view(),
        name="store-fund-release-detail",
    ),
    path("store/wallet/", views.StoreWalletView.as_view(), name="store-wallet"),
    path(
        "store/wallet/transactions/",
        views.StoreWalletTransactionListView.as_view(),
        name="store-wallet-transactions",
    ),
    path("store/withdrawals/", views.StoreWithdrawalView.as_view(), name="store-withdrawals"),
    # Admin: refunds
    path("admin/refund-queue/", views.RefundQueueView.as_view(), name="admin-refund-queue"),
    path(
        "admin/refund-queue/<uuid:sub_order_id>/approve/",
        views.ApproveRefundView.as_view(),
        name="admin-approve-refund",
    ),
    path(
        "admin/sub-orders/<uuid:sub_order_id>/return-refund/",
        views.ReturnRefundView.as_view(),
        name="admin-return-refund",
    ),
    # Admin: delivery confirmations
    path(
        "admin/delivery-confirmations/",
        views.DeliveryConfirmationQueueView.as_view(),
        name="admin-delivery-confirmations",
    ),
    path(
        "admin/delivery-confirmations/<uuid:sub_order_id>/confirm/",
        views.AdminConfirmDeliveryView.as_view(),
        name="admin-confirm-delivery",
    ),
    # Admin: escrow release
    path(
        "admin/escrow/release-queue/",
        views.EscrowReleaseQueueView.as_view(),
        name="admin-escrow-release-queue",
    ),
    path(
        "admin/escrow/release-queue/<uuid:sub_order_id>/",
        views.EscrowReleaseDetailView.as_view(),
        name="admin-escrow-release-detail",
    ),
    path(
        "admin/escrow/<uuid:sub_order_id>/release/",
        views.ReleaseEscrowView.as_view(),
        name="admin-release-escrow",
    ),
    # Admin: fund releases
    path(
        "admin/fund-releases/",
        views.AdminFundReleaseListView.as_view(),
        name="admin-fund-releases",
    ),
    path(
        "admin/fund-releases/<uuid:fund_release_id>/reverse/",
        views.ReverseFundReleaseView.as_view(),
        name="admin-reverse-fund-release",
    ),
    # Admin: withdrawals
    path(
        "admin/withdrawals/",
        views.AdminWithdrawalListView.as_view(),
        name="admin-withdrawals",
    ),
    path(
        "admin/withdrawals/<uuid:withdrawal_id>/<str:action>/",
        views.WithdrawalActionView.as_view(),
        name="admin-withdrawal-action",
    ),
]
