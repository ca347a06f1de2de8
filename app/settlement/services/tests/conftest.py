"""
Shared settlement fixtures for this test package.

Fixtures are defined in settlement/tests/conftest.py; importing them here
makes them available to the tests below this directory.
"""

from settlement.tests.conftest import (  # noqa: F401
    admin_user,
    buyer,
    canceled_sub_order,
    delivered_sub_order,
    mock_redis,
    paid_order,
    paid_sub_order,
    pending_order,
    product,
    recently_delivered_sub_order,
    store,
    store_owner,
    store_wallet,
)
