"""
Pytest fixtures for settlement tests.

Fixtures provide stores, orders and sub-orders in the states the escrow,
fund release and withdrawal flows start from.

Usage:
    def test_release(delivered_sub_order, store_wallet):
        result = FundReleaseService.release_sub_order(delivered_sub_order.id)
        assert result.success
"""

import pytest
from django.contrib.auth.models import Permission
from rest_framework.test import APIClient

from settlement.state_machines import DeliveryStatus, PaymentStatus
from settlement.tests.factories import (
    DeliveredSubOrderFactory,
    OrderFactory,
    ProductFactory,
    StoreFactory,
    SubOrderFactory,
    SubOrderItemFactory,
    UserFactory,
    WalletFactory,
)


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def buyer(db):
    """Create a buyer."""
    return UserFactory()


@pytest.fixture
def store_owner(db):
    return UserFactory()


@pytest.fixture
def admin_user(db):
    """Staff user holding every settlement permission."""
    user = UserFactory(is_staff=True)
    user.user_permissions.set(
        Permission.objects.filter(content_type__app_label="settlement")
    )
    return user


@pytest.fixture
def staff_without_permissions(db):
    return UserFactory(is_staff=True)


# =============================================================================
# Store and Catalog
# =============================================================================


@pytest.fixture
def store(db, store_owner):
    """Active store with Standard (1,500 NGN) and Express shipping."""
    return StoreFactory(owner=store_owner)


@pytest.fixture
def store_wallet(db, store):
    return WalletFactory(store=store)


@pytest.fixture
def product(db, store):
    return ProductFactory(store=store, price=200000, stock_quantity=10)


# =============================================================================
# Orders and Sub-orders
# =============================================================================


@pytest.fixture
def pending_order(db, buyer):
    """Unpaid order of 3,500 NGN."""
    return OrderFactory(buyer=buyer)


@pytest.fixture
def paid_order(db, buyer):
    return OrderFactory(buyer=buyer, payment_status=PaymentStatus.PAID)


@pytest.fixture
def paid_sub_order(db, paid_order, store, product):
    """Pending sub-order of a paid order, escrow held."""
    sub_order = SubOrderFactory(order=paid_order, store=store)
    SubOrderItemFactory(sub_order=sub_order, product=product)
    return sub_order


@pytest.fixture
def delivered_sub_order(db, paid_order, store, store_wallet, product):
    """Delivered ten days ago: the return window has closed."""
    sub_order = DeliveredSubOrderFactory(order=paid_order, store=store)
    SubOrderItemFactory(sub_order=sub_order, product=product)
    return sub_order


@pytest.fixture
def recently_delivered_sub_order(db, paid_order, store, store_wallet, product):
    """Delivered yesterday: still inside the return window."""
    sub_order = DeliveredSubOrderFactory(order=paid_order, store=store, days_ago=1)
    SubOrderItemFactory(sub_order=sub_order, product=product)
    return sub_order


@pytest.fixture
def canceled_sub_order(db, paid_order, store, store_wallet):
    return SubOrderFactory(
        order=paid_order,
        store=store,
        delivery_status=DeliveryStatus.CANCELED,
        escrow_refund_reason="Marked for review: Canceled",
    )


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture
def store_client(store):
    client = APIClient()
    client.force_authenticate(user=store.owner)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# =============================================================================
# Mock Redis Fixture (for lock tests)
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    SET NX succeeds and the release script reports a deleted key.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.eval.return_value = 1

    mocker.patch(
        "settlement.locks.get_redis_connection",
        return_value=mock_client,
    )

    return mock_client
