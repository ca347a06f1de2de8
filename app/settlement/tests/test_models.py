"""
Tests for settlement models.

Covers derived values, escrow flag methods, the append-only ledger and the
version counter shared by all money-moving models.
"""

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from settlement.exceptions import EscrowInvariantError, WalletError
from settlement.models import SubOrder, Wallet, WalletTransaction
from settlement.state_machines import (
    DeliveryStatus,
    StoreStatus,
    TransactionSource,
    TransactionType,
)
from settlement.tests.factories import (
    ProductFactory,
    StoreFactory,
    SubOrderFactory,
    SubOrderItemFactory,
    WalletFactory,
)


class TestStore:
    """Tests for Store helpers."""

    def test_is_active(self, db):
        assert StoreFactory().is_active is True
        assert StoreFactory(status=StoreStatus.SUSPENDED).is_active is False

    def test_inactive_shipping_methods_are_hidden(self, db):
        store = StoreFactory(
            shipping_methods=[
                {"name": "Standard", "price": 150000},
                {"name": "Pickup", "price": 0, "isActive": False},
            ]
        )

        assert [m["name"] for m in store.active_shipping_methods()] == ["Standard"]
        assert store.get_shipping_method("Pickup") is None
        assert store.get_shipping_method("Standard")["price"] == 150000

    def test_get_payout_account(self, db):
        store = StoreFactory()

        assert store.get_payout_account("0123456789")["bankCode"] == "058"
        assert store.get_payout_account("9999999999") is None


class TestProduct:
    def test_get_size_compares_as_string(self, db):
        product = ProductFactory(sizes=[{"size": 42, "quantity": 3}])

        assert product.get_size("42")["quantity"] == 3
        assert product.get_size("43") is None


class TestSubOrder:
    """Tests for SubOrder derived values and escrow methods."""

    def test_shipping_price_from_snapshot(self, db):
        sub_order = SubOrderFactory()
        assert sub_order.shipping_price == 150000

        sub_order.shipping_method = {}
        assert sub_order.shipping_price == 0

    def test_new_sub_order_holds_escrow(self, db):
        sub_order = SubOrderFactory()

        assert sub_order.escrow_state == "held"
        assert sub_order.escrow == {
            "held": True,
            "released": False,
            "refunded": False,
            "releasedAt": None,
            "refundReason": "",
        }

    def test_release_escrow_requires_delivered(self, db):
        sub_order = SubOrderFactory()

        with pytest.raises(EscrowInvariantError) as exc_info:
            sub_order.release_escrow()

        assert exc_info.value.error_code == "ESCROW_INVARIANT_VIOLATION"
        assert sub_order.escrow_held is True

    def test_release_escrow_on_delivered(self, delivered_sub_order):
        released_at = timezone.now()
        delivered_sub_order.release_escrow(released_at=released_at)
        delivered_sub_order.save()

        stored = SubOrder.objects.get(pk=delivered_sub_order.pk)
        assert stored.escrow_state == "released"
        assert stored.escrow_held is False
        assert stored.escrow_released_at == released_at

    def test_cannot_refund_released_escrow(self, delivered_sub_order):
        delivered_sub_order.release_escrow()

        with pytest.raises(EscrowInvariantError):
            delivered_sub_order.refund_escrow(reason="late claim")

    def test_refund_escrow_requires_refundable_status(self, db):
        sub_order = SubOrderFactory(delivery_status=DeliveryStatus.SHIPPED)

        with pytest.raises(EscrowInvariantError):
            sub_order.refund_escrow()

    def test_refund_escrow_on_canceled(self, canceled_sub_order):
        canceled_sub_order.refund_escrow(reason="Store canceled")
        canceled_sub_order.save()

        stored = SubOrder.objects.get(pk=canceled_sub_order.pk)
        assert stored.escrow_state == "refunded"
        assert stored.escrow_refund_reason == "Store canceled"
        assert stored.escrow_refunded_at is not None

    def test_database_rejects_two_terminal_flags(self, db):
        sub_order = SubOrderFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            SubOrder.objects.filter(pk=sub_order.pk).update(
                escrow_held=False, escrow_released=True, escrow_refunded=True
            )

    def test_record_status_appends(self, db):
        sub_order = SubOrderFactory()

        sub_order.record_status(DeliveryStatus.SHIPPED, notes="GIG", actor="store")
        sub_order.record_status(DeliveryStatus.DELIVERED)

        assert [e["status"] for e in sub_order.status_history] == ["shipped", "delivered"]
        assert sub_order.status_history[0]["notes"] == "GIG"

    def test_item_line_total(self, db):
        item = SubOrderItemFactory(quantity=3, unit_price=5000)
        assert item.line_total == 15000


class TestVersionedMixin:
    def test_version_increments_on_update(self, db):
        sub_order = SubOrderFactory()
        assert sub_order.version == 1

        sub_order.escrow_refund_reason = "note"
        sub_order.save()
        assert sub_order.version == 2

        sub_order.save(update_fields=["escrow_refund_reason"])
        assert sub_order.version == 3
        assert SubOrder.objects.get(pk=sub_order.pk).version == 3


class TestWalletTransaction:
    """The ledger is append-only."""

    @pytest.fixture
    def entry(self, db):
        wallet = WalletFactory(balance=1000)
        return WalletTransaction.objects.create(
            wallet=wallet,
            type=TransactionType.CREDIT,
            source=TransactionSource.ADJUSTMENT,
            amount=1000,
            balance_after=1000,
        )

    def test_signed_amount(self, entry):
        assert entry.signed_amount == 1000

        debit = WalletTransaction(type=TransactionType.DEBIT, amount=300)
        assert debit.signed_amount == -300

    def test_update_rejected(self, entry):
        entry.description = "edited"

        with pytest.raises(WalletError) as exc_info:
            entry.save()

        assert exc_info.value.error_code == "LEDGER_IMMUTABLE"

    def test_delete_rejected(self, entry):
        with pytest.raises(WalletError):
            entry.delete()

        assert WalletTransaction.objects.filter(pk=entry.pk).exists()

    def test_wallet_balance_cannot_go_negative(self, db):
        wallet = WalletFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            Wallet.objects.filter(pk=wallet.pk).update(balance=-1)
