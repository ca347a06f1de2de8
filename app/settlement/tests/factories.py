"""
Factory Boy factories for settlement test data.

Usage:
    from settlement.tests.factories import (
        FundReleaseFactory,
        OrderFactory,
        StoreFactory,
        SubOrderFactory,
        WalletFactory,
    )

    # Paid order with one delivered sub-order
    order = OrderFactory(payment_status=PaymentStatus.PAID)
    sub_order = SubOrderFactory(order=order, delivery_status=DeliveryStatus.DELIVERED)

    # Wallet with funds (bypasses the ledger; only for read-side tests)
    wallet = WalletFactory(store=store, balance=500000)

Note:
    FSM fields are protected, so a state can be set on creation only.
    Tests that move a record through states should call the transitions.
"""

import uuid
from datetime import timedelta

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone

from settlement.models import (
    FundRelease,
    Order,
    Product,
    Store,
    SubOrder,
    SubOrderItem,
    Wallet,
    WithdrawalRequest,
)
from settlement.state_machines import StoreStatus


class UserFactory(factory.django.DjangoModelFactory):
    """Factory for buyers, store owners and admins."""

    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    first_name = "Ada"
    last_name = factory.Sequence(lambda n: f"Buyer{n}")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class StoreFactory(factory.django.DjangoModelFactory):
    """
    Factory for an active store with two shipping methods and a payout account.

    Example:
        store = StoreFactory(status=StoreStatus.SUSPENDED)
    """

    class Meta:
        model = Store
        skip_postgeneration_save = True

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Store {n}")
    email = factory.Sequence(lambda n: f"store{n}@example.com")
    status = StoreStatus.ACTIVE
    is_verified = True
    shipping_methods = factory.LazyFunction(
        lambda: [
            {
                "name": "Standard",
                "price": 150000,
                "estimatedDeliveryDays": "3-5",
                "description": "Door delivery",
                "isActive": True,
            },
            {
                "name": "Express",
                "price": 250000,
                "estimatedDeliveryDays": "1-2",
                "isActive": True,
            },
        ]
    )
    payout_accounts = factory.LazyFunction(
        lambda: [
            {
                "bankName": "Test Bank",
                "accountNumber": "0123456789",
                "accountHolderName": "Store Owner",
                "bankCode": "058",
            }
        ]
    )


class ProductFactory(factory.django.DjangoModelFactory):
    """Physical product priced at 2,000 NGN with 10 units in stock."""

    class Meta:
        model = Product
        skip_postgeneration_save = True

    store = factory.SubFactory(StoreFactory)
    name = factory.Sequence(lambda n: f"Product {n}")
    price = 200000
    stock_quantity = 10
    sizes = factory.LazyFunction(list)
    is_available = True


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for Order instances.

    Default creates a PENDING order for 3,500 NGN.
    """

    class Meta:
        model = Order
        skip_postgeneration_save = True

    buyer = factory.SubFactory(UserFactory)
    total_amount = 350000
    idempotency_key = factory.LazyFunction(lambda: f"STL-{uuid.uuid4().hex[:24]}")
    shipping_address = factory.LazyFunction(
        lambda: {
            "firstName": "Ada",
            "lastName": "Buyer",
            "address": "1 Marina Road",
            "phoneNumber": "+2348000000000",
            "cityOfResidence": "Lagos",
            "stateOfResidence": "Lagos",
        }
    )


class SubOrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for SubOrder instances.

    Default creates a PENDING sub-order with escrow held: 2,000 NGN of items
    shipped by the store's Standard method (1,500 NGN).
    """

    class Meta:
        model = SubOrder
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory)
    store = factory.SubFactory(StoreFactory)
    total_amount = 200000
    shipping_method = factory.LazyFunction(
        lambda: {"name": "Standard", "price": 150000, "estimatedDeliveryDays": "3-5"}
    )


class DeliveredSubOrderFactory(SubOrderFactory):
    """Sub-order delivered ``days_ago`` days ago (default 10, so the window has passed)."""

    class Params:
        days_ago = 10

    delivery_status = "delivered"
    delivery_date = factory.LazyAttribute(
        lambda o: timezone.now() - timedelta(days=o.days_ago)
    )
    return_window = factory.LazyAttribute(lambda o: o.delivery_date + timedelta(days=7))


class SubOrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SubOrderItem
        skip_postgeneration_save = True

    sub_order = factory.SubFactory(SubOrderFactory)
    product = factory.SubFactory(
        ProductFactory, store=factory.SelfAttribute("..sub_order.store")
    )
    quantity = 1
    unit_price = 200000
    product_snapshot = factory.LazyAttribute(
        lambda o: {"name": o.product.name, "productType": "physical"}
    )


class WalletFactory(factory.django.DjangoModelFactory):
    """Empty wallet. Pass balance/pending only for read-side tests."""

    class Meta:
        model = Wallet
        skip_postgeneration_save = True

    store = factory.SubFactory(StoreFactory)


class FundReleaseFactory(factory.django.DjangoModelFactory):
    """
    Pending fund release for a sub-order.

    Amounts follow the default sub-order: 200000 of items less a 20000
    commission (5% plus the small-order flat fee) plus 150000 shipping.
    """

    class Meta:
        model = FundRelease
        skip_postgeneration_save = True

    sub_order = factory.SubFactory(DeliveredSubOrderFactory)
    order = factory.SelfAttribute("sub_order.order")
    store = factory.SelfAttribute("sub_order.store")
    wallet = factory.LazyAttribute(
        lambda o: Wallet.objects.get_or_create(store=o.store)[0]
    )
    item_subtotal = 200000
    applied_percentage_fee = 10000
    applied_flat_fee = 10000
    commission = 20000
    shipping_price = 150000
    settlement_amount = 330000
    store_verified = True
    scheduled_release_time = factory.LazyAttribute(
        lambda o: o.sub_order.return_window or timezone.now()
    )


class WithdrawalRequestFactory(factory.django.DjangoModelFactory):
    """PENDING withdrawal of 2,000 NGN (fee 80 NGN)."""

    class Meta:
        model = WithdrawalRequest
        skip_postgeneration_save = True

    store = factory.SubFactory(StoreFactory)
    wallet = factory.LazyAttribute(
        lambda o: Wallet.objects.get_or_create(store=o.store)[0]
    )
    request_number = factory.LazyFunction(lambda: f"WDR-{uuid.uuid4().hex[:8].upper()}")
    requested_amount = 200000
    processing_fee = 8000
    net_amount = 192000
    bank_details = factory.LazyFunction(
        lambda: {
            "bankName": "Test Bank",
            "accountNumber": "0123456789",
            "accountHolderName": "Store Owner",
            "bankCode": "058",
        }
    )
