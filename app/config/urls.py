"""
Root URL configuration.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /api/schema/                   - OpenAPI schema
    /api/v1/settlement/            - Settlement endpoints (see settlement/urls.py)
        checkout/validate/         - Re-validate a cart snapshot
        checkout/initialize/       - Create the pending order and payment link
        payments/verify/           - Checkout-success verification
        payments/webhooks/flutterwave/ - Gateway webhook (POST)
        sub-orders/{id}/confirm-delivery/ - Buyer delivery confirmation
        store/...                  - Store-scoped fund releases, wallet, withdrawals
        admin/...                  - Refund queue, confirmations, reviews
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("settlement/", include("settlement.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Portal"
admin.site.index_title = "Orders, escrow and payouts"
