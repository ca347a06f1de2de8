"""
Tests for EscrowService: delivery status, confirmation, queues and refunds.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from settlement.exceptions import StaleRecordError
from settlement.models import FundRelease, SubOrder, Wallet
from settlement.services.escrow import EscrowService
from settlement.state_machines import (
    DeliveryStatus,
    FundReleaseStatus,
    FundReleaseTrigger,
    PaymentStatus,
)
from settlement.tests.factories import (
    DeliveredSubOrderFactory,
    FundReleaseFactory,
    OrderFactory,
    StoreFactory,
    SubOrderFactory,
    UserFactory,
)


def reload(sub_order):
    return SubOrder.objects.get(pk=sub_order.pk)


class TestUpdateDeliveryStatus:
    """EscrowService.update_delivery_status"""

    def test_forward_update(self, store, paid_sub_order):
        result = EscrowService.update_delivery_status(
            store, paid_sub_order.id, DeliveryStatus.SHIPPED, notes="Sent with GIG"
        )

        assert result.success
        sub_order = reload(paid_sub_order)
        assert sub_order.delivery_status == DeliveryStatus.SHIPPED
        assert sub_order.status_history[-1]["notes"] == "Sent with GIG"
        assert sub_order.version == 2

    def test_delivered_creates_fund_release(self, store, paid_sub_order):
        result = EscrowService.update_delivery_status(
            store, paid_sub_order.id, DeliveryStatus.DELIVERED
        )

        assert result.success
        sub_order = reload(paid_sub_order)
        assert sub_order.return_window == sub_order.delivery_date + timedelta(days=7)
        assert sub_order.escrow_state == "held"

        release = FundRelease.objects.get(sub_order=sub_order)
        assert release.status == FundReleaseStatus.PENDING
        assert release.settlement_amount == 330000
        assert release.commission == 20000
        assert release.scheduled_release_time == sub_order.return_window
        assert Wallet.objects.get(store=store).pending == 330000

    def test_same_status_is_noop(self, store, paid_sub_order):
        result = EscrowService.update_delivery_status(
            store, paid_sub_order.id, DeliveryStatus.PENDING
        )

        assert result.success
        assert reload(paid_sub_order).version == 1

    def test_back_to_pending_rejected(self, store, paid_order):
        sub_order = SubOrderFactory(
            order=paid_order, store=store, delivery_status=DeliveryStatus.PROCESSING
        )

        result = EscrowService.update_delivery_status(store, sub_order.id, DeliveryStatus.PENDING)

        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_backward_move_rejected(self, store, paid_order):
        sub_order = SubOrderFactory(
            order=paid_order, store=store, delivery_status=DeliveryStatus.SHIPPED
        )

        result = EscrowService.update_delivery_status(
            store, sub_order.id, DeliveryStatus.PROCESSING
        )

        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert reload(sub_order).delivery_status == DeliveryStatus.SHIPPED

    def test_unpaid_order_rejected(self, store, pending_order):
        sub_order = SubOrderFactory(order=pending_order, store=store)

        result = EscrowService.update_delivery_status(store, sub_order.id, DeliveryStatus.SHIPPED)

        assert result.error_code == "PAYMENT_NOT_CONFIRMED"

    def test_other_store_cannot_update(self, paid_sub_order):
        result = EscrowService.update_delivery_status(
            StoreFactory(), paid_sub_order.id, DeliveryStatus.SHIPPED
        )

        assert result.error_code == "SUB_ORDER_NOT_FOUND"

    def test_unknown_status(self, store, paid_sub_order):
        result = EscrowService.update_delivery_status(store, paid_sub_order.id, "lost")

        assert result.error_code == "INVALID_STATUS"

    def test_unknown_sub_order(self, store):
        result = EscrowService.update_delivery_status(store, "nope", DeliveryStatus.SHIPPED)

        assert result.error_code == "SUB_ORDER_NOT_FOUND"

    def test_cancel_uses_notes_as_refund_reason(self, store, paid_sub_order):
        EscrowService.update_delivery_status(
            store, paid_sub_order.id, DeliveryStatus.CANCELED, notes="Out of stock"
        )

        sub_order = reload(paid_sub_order)
        assert sub_order.delivery_status == DeliveryStatus.CANCELED
        assert sub_order.escrow_refund_reason == "Out of stock"
        assert sub_order.escrow_state == "held"

    def test_stale_version_rejected(self, store, paid_sub_order):
        EscrowService.update_delivery_status(store, paid_sub_order.id, DeliveryStatus.PROCESSING)

        with pytest.raises(StaleRecordError) as exc_info:
            EscrowService.update_delivery_status(
                store, paid_sub_order.id, DeliveryStatus.SHIPPED, expected_version=1
            )

        assert exc_info.value.error_code == "STALE_RECORD"

    def test_notifies_buyer_after_commit(
        self, store, paid_sub_order, django_capture_on_commit_callbacks, mocker
    ):
        delay = mocker.patch(
            "settlement.workers.notifications.send_settlement_notification.delay"
        )

        with django_capture_on_commit_callbacks(execute=True):
            EscrowService.update_delivery_status(store, paid_sub_order.id, DeliveryStatus.SHIPPED)

        email_type, recipient, data = delay.call_args[0]
        assert email_type == "order_status_updated"
        assert recipient == paid_sub_order.order.buyer.email
        assert data["status"] == DeliveryStatus.SHIPPED


class TestConfirmDelivery:
    def test_buyer_confirmation_marks_release_ready(self, buyer, delivered_sub_order):
        release = FundReleaseFactory(sub_order=delivered_sub_order)

        result = EscrowService.confirm_delivery(buyer, delivered_sub_order.id)

        assert result.success
        sub_order = reload(delivered_sub_order)
        assert sub_order.customer_confirmed is True
        assert sub_order.escrow_state == "held"

        release = FundRelease.objects.get(pk=release.pk)
        assert release.status == FundReleaseStatus.READY
        assert release.trigger == FundReleaseTrigger.DELIVERY_CONFIRMED

    def test_not_delivered(self, buyer, paid_sub_order):
        result = EscrowService.confirm_delivery(buyer, paid_sub_order.id)

        assert result.error_code == "NOT_DELIVERED"

    def test_other_buyer(self, delivered_sub_order):
        result = EscrowService.confirm_delivery(UserFactory(), delivered_sub_order.id)

        assert result.error_code == "SUB_ORDER_NOT_FOUND"

    def test_repeat_is_noop(self, buyer, delivered_sub_order):
        EscrowService.confirm_delivery(buyer, delivered_sub_order.id)
        confirmed_at = reload(delivered_sub_order).confirmed_at

        result = EscrowService.confirm_delivery(buyer, delivered_sub_order.id)

        assert result.success
        assert reload(delivered_sub_order).confirmed_at == confirmed_at


class TestAdminConfirmDelivery:
    def test_after_grace_period(self, admin_user, delivered_sub_order):
        release = FundReleaseFactory(sub_order=delivered_sub_order)

        result = EscrowService.admin_confirm_delivery(
            admin_user, delivered_sub_order.id, notes="Courier proof"
        )

        assert result.success
        sub_order = reload(delivered_sub_order)
        assert sub_order.auto_confirmed is True
        assert sub_order.customer_confirmed is False
        assert sub_order.status_history[-1]["notes"] == "Courier proof"
        assert FundRelease.objects.get(pk=release.pk).trigger == (
            FundReleaseTrigger.AUTO_CONFIRMED_DELIVERY
        )

    def test_inside_grace_period(self, admin_user, recently_delivered_sub_order):
        result = EscrowService.admin_confirm_delivery(admin_user, recently_delivered_sub_order.id)

        assert result.error_code == "GRACE_PERIOD_NOT_ELAPSED"

    @freeze_time("2026-03-10 15:30:00")
    def test_cutoff_is_start_of_day(self):
        cutoff = EscrowService.confirmation_cutoff()

        assert cutoff.isoformat() == "2026-03-08T00:00:00+00:00"


class TestDeliveryConfirmationQueue:
    def test_lists_unconfirmed_past_grace(self, db):
        old = DeliveredSubOrderFactory(days_ago=5, order=OrderFactory(payment_status="paid"))
        DeliveredSubOrderFactory(days_ago=0)
        DeliveredSubOrderFactory(days_ago=6, customer_confirmed=True)
        older = DeliveredSubOrderFactory(days_ago=9)

        result = EscrowService.delivery_confirmation_queue()

        assert [s.id for s in result["data"]] == [older.id, old.id]
        assert result["pagination"]["total"] == 2

    def test_search_by_buyer(self, db):
        buyer = UserFactory(email="chioma@example.com")
        match = DeliveredSubOrderFactory(days_ago=5, order=OrderFactory(buyer=buyer))
        DeliveredSubOrderFactory(days_ago=5)

        result = EscrowService.delivery_confirmation_queue({"search": "CHIOMA"})

        assert [s.id for s in result["data"]] == [match.id]

    def test_date_range(self, db):
        DeliveredSubOrderFactory(days_ago=10)
        recent = DeliveredSubOrderFactory(days_ago=4)
        from_date = (timezone.now() - timedelta(days=5)).date().isoformat()

        result = EscrowService.delivery_confirmation_queue({"fromDate": from_date})

        assert [s.id for s in result["data"]] == [recent.id]


class TestReleaseQueue:
    def test_lists_held_escrow_past_return_window(self, db):
        later = DeliveredSubOrderFactory(days_ago=8)
        earliest = DeliveredSubOrderFactory(days_ago=12)
        DeliveredSubOrderFactory(days_ago=3)
        DeliveredSubOrderFactory(days_ago=12, escrow_held=False, escrow_released=True)
        SubOrderFactory(delivery_status=DeliveryStatus.SHIPPED)

        result = EscrowService.release_queue()

        assert [s.id for s in result["data"]] == [earliest.id, later.id]
        assert result["pagination"]["total"] == 2

    def test_store_filter_and_search(self, db):
        store = StoreFactory(name="Kano Crafts")
        match = DeliveredSubOrderFactory(store=store)
        DeliveredSubOrderFactory()

        by_store = EscrowService.release_queue({"storeId": str(store.id)})
        by_search = EscrowService.release_queue({"search": "kano"})

        assert [s.id for s in by_store["data"]] == [match.id]
        assert [s.id for s in by_search["data"]] == [match.id]

    def test_order_date_range(self, db):
        with freeze_time(timezone.now() - timedelta(days=30)):
            old_order = OrderFactory(payment_status=PaymentStatus.PAID)
        DeliveredSubOrderFactory(order=old_order)
        recent = DeliveredSubOrderFactory(order=OrderFactory(payment_status=PaymentStatus.PAID))
        from_date = (timezone.now() - timedelta(days=2)).date().isoformat()

        result = EscrowService.release_queue({"fromDate": from_date})

        assert [s.id for s in result["data"]] == [recent.id]

    def test_entry(self, delivered_sub_order):
        result = EscrowService.release_queue_entry(delivered_sub_order.id)

        assert result.success
        assert result.data.id == delivered_sub_order.id

    def test_entry_inside_return_window(self, recently_delivered_sub_order):
        result = EscrowService.release_queue_entry(recently_delivered_sub_order.id)

        assert result.error_code == "SUB_ORDER_NOT_FOUND"


class TestRefundQueue:
    def test_lists_held_canceled_and_failed(self, store, paid_order, canceled_sub_order):
        failed = SubOrderFactory(
            order=paid_order, store=store, delivery_status=DeliveryStatus.FAILED_DELIVERY
        )
        SubOrderFactory(
            order=paid_order,
            store=store,
            delivery_status=DeliveryStatus.CANCELED,
            escrow_held=False,
            escrow_refunded=True,
        )
        SubOrderFactory(order=paid_order, store=store, delivery_status=DeliveryStatus.SHIPPED)

        everything = EscrowService.refund_queue()
        only_failed = EscrowService.refund_queue({"status": "failed_delivery"})

        assert {s.id for s in everything["data"]} == {canceled_sub_order.id, failed.id}
        assert [s.id for s in only_failed["data"]] == [failed.id]

    def test_store_filter(self, canceled_sub_order):
        other = EscrowService.refund_queue({"storeId": str(StoreFactory().id)})
        own = EscrowService.refund_queue({"storeId": str(canceled_sub_order.store_id)})

        assert other["data"] == []
        assert own["pagination"]["total"] == 1


class TestApproveRefund:
    """Refunds never credit the store wallet."""

    def test_refund_canceled_sub_order(
        self, admin_user, canceled_sub_order, django_capture_on_commit_callbacks, mocker
    ):
        refund_task = mocker.patch("settlement.workers.refunds.issue_buyer_refund.delay")
        mocker.patch("settlement.workers.notifications.send_settlement_notification.delay")

        with django_capture_on_commit_callbacks(execute=True):
            result = EscrowService.approve_refund(admin_user, canceled_sub_order.id, notes="OK")

        assert result.success
        sub_order = reload(canceled_sub_order)
        assert sub_order.escrow_state == "refunded"
        assert sub_order.escrow_refund_reason == "OK"
        refund_task.assert_called_once_with(str(sub_order.id))
        assert Wallet.objects.get(store=sub_order.store).balance == 0

    def test_refund_fails_pending_release_and_pending_funds(self, admin_user, store, store_wallet):
        sub_order = DeliveredSubOrderFactory(
            store=store, order=OrderFactory(payment_status=PaymentStatus.PAID), days_ago=1
        )
        release = FundReleaseFactory(sub_order=sub_order)
        Wallet.objects.filter(pk=store_wallet.pk).update(pending=release.settlement_amount)
        sub_order.mark_returned(reason="Damaged")
        sub_order.save()

        result = EscrowService.approve_return_refund(admin_user, sub_order.id)

        assert result.success
        assert FundRelease.objects.get(pk=release.pk).status == FundReleaseStatus.FAILED
        assert Wallet.objects.get(pk=store_wallet.pk).pending == 0
        assert reload(sub_order).escrow_refund_reason == "Damaged"

    def test_return_refund_requires_returned(self, admin_user, canceled_sub_order):
        result = EscrowService.approve_return_refund(admin_user, canceled_sub_order.id)

        assert result.error_code == "NOT_REFUNDABLE"

    def test_refund_queue_entry_must_be_canceled_or_failed(self, admin_user, paid_sub_order):
        result = EscrowService.approve_refund(admin_user, paid_sub_order.id)

        assert result.error_code == "NOT_REFUNDABLE"
        assert reload(paid_sub_order).escrow_state == "held"

    def test_released_escrow_cannot_be_refunded(self, admin_user, delivered_sub_order):
        delivered_sub_order.release_escrow()
        delivered_sub_order.save()

        result = EscrowService.approve_refund(admin_user, delivered_sub_order.id)

        assert result.error_code == "ESCROW_ALREADY_RELEASED"

    def test_repeat_is_noop(self, admin_user, canceled_sub_order):
        EscrowService.approve_refund(admin_user, canceled_sub_order.id)
        refunded_at = reload(canceled_sub_order).escrow_refunded_at

        result = EscrowService.approve_refund(admin_user, canceled_sub_order.id)

        assert result.success
        assert reload(canceled_sub_order).escrow_refunded_at == refunded_at

    def test_unknown_sub_order(self, admin_user):
        assert EscrowService.approve_refund(admin_user, "nope").error_code == (
            "SUB_ORDER_NOT_FOUND"
        )
