"""
Tests for the buyer refund task.
"""

import pytest
from celery.exceptions import Retry

from settlement.adapters.flutterwave_adapter import GatewayRefund, IdempotencyKeyGenerator
from settlement.exceptions import GatewayRequestError, GatewayUnavailableError
from settlement.models import Order, SubOrder
from settlement.workers.refunds import MAX_REFUND_RETRIES, issue_buyer_refund


@pytest.fixture
def refunded_sub_order(canceled_sub_order):
    Order.objects.filter(pk=canceled_sub_order.order_id).update(
        gateway_transaction_id="4975322"
    )
    canceled_sub_order.refund_escrow(reason="Canceled by store")
    canceled_sub_order.save()
    return canceled_sub_order


@pytest.fixture
def mock_refund(mocker):
    return mocker.patch(
        "settlement.workers.refunds.FlutterwaveAdapter.refund_transaction",
        return_value=GatewayRefund(
            id="rf_88213",
            status="completed",
            amount=350000,
            transaction_id="4975322",
        ),
    )


class TestIssueBuyerRefund:
    def test_refunds_items_and_shipping(self, refunded_sub_order, mock_refund, mocker):
        mocker.patch("settlement.workers.notifications.send_settlement_notification.delay")

        result = issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        assert result["status"] == "refunded"
        assert result["amount"] == 350000
        mock_refund.assert_called_once_with(
            "4975322",
            350000,
            idempotency_key=IdempotencyKeyGenerator.generate("refund", refunded_sub_order.id),
        )
        stored = SubOrder.objects.get(pk=refunded_sub_order.pk)
        assert stored.escrow_refund_reference == "rf_88213"
        assert stored.escrow_refund_attempted_at is not None

    def test_notifies_buyer_after_commit(
        self, refunded_sub_order, mock_refund, mocker, django_capture_on_commit_callbacks
    ):
        mock_delay = mocker.patch(
            "settlement.workers.notifications.send_settlement_notification.delay"
        )

        with django_capture_on_commit_callbacks(execute=True):
            issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        email_type, recipient, data = mock_delay.call_args[0]
        assert email_type == "escrow_refund_issued"
        assert recipient == refunded_sub_order.order.buyer.email
        assert data["amount"] == 350000

    def test_already_issued(self, refunded_sub_order, mock_refund):
        SubOrder.objects.filter(pk=refunded_sub_order.pk).update(
            escrow_refund_reference="rf_existing"
        )

        result = issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        assert result["status"] == "already_refunded"
        mock_refund.assert_not_called()

    def test_escrow_not_refunded(self, paid_sub_order, mock_refund):
        result = issue_buyer_refund.apply(args=[str(paid_sub_order.id)]).get()

        assert result["status"] == "not_refunded"
        mock_refund.assert_not_called()

    def test_unknown_sub_order(self, db, mock_refund):
        result = issue_buyer_refund.apply(
            args=["00000000-0000-0000-0000-000000000000"]
        ).get()

        assert result["status"] == "not_found"

    def test_retries_when_gateway_rate_limits(self, refunded_sub_order, mock_refund, mocker):
        mock_refund.side_effect = GatewayUnavailableError("Flutterwave rate limited the request")
        mock_retry = mocker.patch.object(issue_buyer_refund, "retry", side_effect=Retry())

        issue_buyer_refund.apply(args=[str(refunded_sub_order.id)])

        mock_retry.assert_called_once()
        assert mock_retry.call_args.kwargs["countdown"] >= 30
        stored = SubOrder.objects.get(pk=refunded_sub_order.pk)
        assert stored.escrow_refund_reference == ""
        assert stored.escrow_refund_attempted_at is None

    def test_gives_up_after_max_retries(self, refunded_sub_order, mock_refund, mocker):
        mock_refund.side_effect = GatewayUnavailableError("Flutterwave rate limited the request")
        mock_retry = mocker.patch.object(issue_buyer_refund, "retry")

        result = issue_buyer_refund.apply(
            args=[str(refunded_sub_order.id)], retries=MAX_REFUND_RETRIES
        ).get()

        assert result["status"] == "failed"
        assert result["error_code"] == "GATEWAY_UNAVAILABLE"
        mock_retry.assert_not_called()

    def test_rejected_refund_is_not_retried(self, refunded_sub_order, mock_refund, mocker):
        mock_refund.side_effect = GatewayRequestError("Transaction already refunded")
        mock_retry = mocker.patch.object(issue_buyer_refund, "retry")

        result = issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        assert result["status"] == "failed"
        assert result["error_code"] == "GATEWAY_REQUEST_REJECTED"
        mock_retry.assert_not_called()

    def test_unknown_outcome_is_not_retried(self, refunded_sub_order, mock_refund, mocker):
        mock_refund.side_effect = GatewayUnavailableError(
            "Flutterwave timed out", outcome_unknown=True
        )
        mock_retry = mocker.patch.object(issue_buyer_refund, "retry")

        result = issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        assert result["status"] == "unconfirmed"
        mock_retry.assert_not_called()
        stored = SubOrder.objects.get(pk=refunded_sub_order.pk)
        assert stored.escrow_refund_attempted_at is not None

    def test_unconfirmed_attempt_blocks_a_second_refund(self, refunded_sub_order, mock_refund):
        mock_refund.side_effect = GatewayUnavailableError(
            "Flutterwave timed out", outcome_unknown=True
        )
        issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()
        mock_refund.side_effect = None

        result = issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        assert result["status"] == "unconfirmed"
        assert mock_refund.call_count == 1

    def test_rejected_refund_releases_the_claim(self, refunded_sub_order, mock_refund):
        mock_refund.side_effect = GatewayRequestError("Insufficient merchant balance")

        issue_buyer_refund.apply(args=[str(refunded_sub_order.id)]).get()

        stored = SubOrder.objects.get(pk=refunded_sub_order.pk)
        assert stored.escrow_refund_attempted_at is None
