"""
Tests for the Flutterwave adapter.

HTTP is mocked at requests.request; backoff sleeps are patched out.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from settlement.adapters.flutterwave_adapter import (
    FlutterwaveAdapter,
    GatewayTransaction,
    IdempotencyKeyGenerator,
    InitializePaymentParams,
    backoff_delay,
    is_retryable_gateway_error,
    kobo_to_naira,
    naira_to_kobo,
)
from settlement.exceptions import (
    GatewayConfigurationError,
    GatewayRequestError,
    GatewayUnavailableError,
)


def make_response(status_code=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def mock_request(mocker):
    mocker.patch("settlement.adapters.flutterwave_adapter.time.sleep")
    return mocker.patch("settlement.adapters.flutterwave_adapter.requests.request")


@pytest.fixture
def params():
    return InitializePaymentParams(
        tx_ref="STL-abc",
        amount=350000,
        customer_email="ada@example.com",
        customer_name="Ada Buyer",
        order_id="order-1",
    )


class TestAmountConversion:
    def test_kobo_to_naira(self):
        assert kobo_to_naira(350050) == Decimal("3500.50")

    @pytest.mark.parametrize(
        "amount,expected",
        [(3500, 350000), ("3500.5", 350050), (0.1, 10), ("12.345", 1235)],
    )
    def test_naira_to_kobo(self, amount, expected):
        assert naira_to_kobo(amount) == expected


class TestInitializePaymentParams:
    @pytest.mark.parametrize(
        "overrides",
        [{"amount": 0}, {"tx_ref": ""}, {"customer_email": ""}],
    )
    def test_rejects_invalid_params(self, overrides):
        kwargs = {
            "tx_ref": "STL-abc",
            "amount": 1000,
            "customer_email": "ada@example.com",
            "order_id": "order-1",
            **overrides,
        }
        with pytest.raises(ValueError):
            InitializePaymentParams(**kwargs)

    def test_payload_uses_naira_and_echoes_order(self, params, settings):
        settings.FLUTTERWAVE_REDIRECT_URL = "https://shop.test/success"

        payload = params.to_payload()

        assert payload["amount"] == 3500.0
        assert payload["redirect_url"] == "https://shop.test/success"
        assert payload["meta"]["orderId"] == "order-1"
        assert payload["meta"]["idempotencyKey"] == "STL-abc"
        assert payload["customer"]["email"] == "ada@example.com"


class TestGatewayTransaction:
    def test_from_response(self):
        transaction = GatewayTransaction.from_response(
            {
                "id": 4975363,
                "tx_ref": "STL-abc",
                "status": "Successful",
                "amount": 3500,
                "currency": "NGN",
                "meta": {"orderId": "order-1"},
                "customer": {"email": "ada@example.com"},
            }
        )

        assert transaction.id == "4975363"
        assert transaction.amount == 350000
        assert transaction.order_id == "order-1"
        assert transaction.is_successful is True
        assert transaction.is_pending is False

    def test_pending_status(self):
        transaction = GatewayTransaction.from_response({"status": "pending"})

        assert transaction.is_pending is True
        assert transaction.is_successful is False
        assert transaction.order_id is None


class TestHelpers:
    def test_tx_ref_is_stable_per_buyer_and_key(self):
        ref = IdempotencyKeyGenerator.tx_ref(1, "cart-1")

        assert ref == IdempotencyKeyGenerator.tx_ref(1, "cart-1")
        assert ref != IdempotencyKeyGenerator.tx_ref(2, "cart-1")
        assert ref.startswith("STL-")
        assert len(ref) == 28

    def test_generate_format(self):
        key = IdempotencyKeyGenerator.generate("refund", "sub-1", attempt=2)

        operation, entity, attempt, short_hash = key.split(":")
        assert (operation, entity, attempt) == ("refund", "sub-1", "2")
        assert len(short_hash) == 8

    def test_backoff_grows_and_caps(self):
        assert 0.5 <= backoff_delay(0) <= 0.625
        assert 2.0 <= backoff_delay(2) <= 2.5
        assert backoff_delay(10) <= 10.0

    def test_is_retryable_gateway_error(self):
        assert is_retryable_gateway_error(GatewayUnavailableError("down")) is True
        assert is_retryable_gateway_error(GatewayRequestError("bad")) is False
        assert is_retryable_gateway_error(RuntimeError("other")) is False


class TestVerifyTransaction:
    def test_success(self, mock_request):
        mock_request.return_value = make_response(
            body={
                "status": "success",
                "data": {"id": 1, "tx_ref": "STL-abc", "status": "successful", "amount": 100},
            }
        )

        transaction = FlutterwaveAdapter.verify_transaction("1")

        assert transaction.amount == 10000
        method, url = mock_request.call_args[0]
        assert method == "GET"
        assert url.endswith("/transactions/1/verify")
        headers = mock_request.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer FLWSECK_TEST-secret"

    def test_retries_transient_errors(self, mock_request):
        mock_request.side_effect = [
            make_response(status_code=502),
            requests.ConnectionError("reset"),
            make_response(body={"data": {"id": 1, "status": "successful", "amount": 1}}),
        ]

        transaction = FlutterwaveAdapter.verify_transaction("1")

        assert transaction is not None
        assert mock_request.call_count == 3

    def test_returns_none_when_unreachable(self, mock_request):
        mock_request.return_value = make_response(status_code=503)

        assert FlutterwaveAdapter.verify_transaction("1") is None
        assert mock_request.call_count == 3

    def test_returns_none_on_rejection(self, mock_request):
        mock_request.return_value = make_response(
            status_code=400, body={"status": "error", "message": "No transaction was found"}
        )

        assert FlutterwaveAdapter.verify_transaction("1") is None
        assert mock_request.call_count == 1

    def test_returns_none_without_data(self, mock_request):
        mock_request.return_value = make_response(body={"status": "success", "data": None})

        assert FlutterwaveAdapter.verify_transaction("1") is None

    def test_missing_secret_key_raises(self, mock_request, settings):
        settings.FLUTTERWAVE_SECRET_KEY = ""

        with pytest.raises(GatewayConfigurationError):
            FlutterwaveAdapter.verify_transaction("1")

        mock_request.assert_not_called()


class TestInitializePayment:
    def test_returns_link(self, mock_request, params):
        mock_request.return_value = make_response(
            body={"status": "success", "data": {"link": "https://checkout.test/pay/abc"}}
        )

        link = FlutterwaveAdapter.initialize_payment(params)

        assert link.link == "https://checkout.test/pay/abc"
        assert link.tx_ref == "STL-abc"
        assert mock_request.call_args[1]["json"]["amount"] == 3500.0

    def test_missing_link_raises(self, mock_request, params):
        mock_request.return_value = make_response(body={"status": "success", "data": {}})

        with pytest.raises(GatewayRequestError):
            FlutterwaveAdapter.initialize_payment(params)

    def test_non_json_is_unavailable(self, mock_request, params):
        mock_request.return_value = make_response(json_error=True)

        with pytest.raises(GatewayUnavailableError):
            FlutterwaveAdapter.initialize_payment(params)

    def test_rate_limit_is_retried(self, mock_request, params):
        mock_request.side_effect = [
            make_response(status_code=429),
            make_response(body={"data": {"link": "https://checkout.test/pay/abc"}}),
        ]

        assert FlutterwaveAdapter.initialize_payment(params).link


class TestRefundTransaction:
    def test_refund(self, mock_request):
        mock_request.return_value = make_response(
            body={
                "status": "success",
                "data": {"id": 75923, "status": "completed", "amount_refunded": 1500},
            }
        )

        refund = FlutterwaveAdapter.refund_transaction("4975363", 150000)

        assert refund.id == "75923"
        assert refund.amount == 150000
        assert refund.transaction_id == "4975363"
        assert mock_request.call_args[1]["json"] == {"amount": 1500.0}

    def test_sends_idempotency_key(self, mock_request):
        mock_request.return_value = make_response(body={"status": "success", "data": {"id": 1}})

        FlutterwaveAdapter.refund_transaction("4975363", 150000, idempotency_key="refund:so-1:1:ab")

        assert mock_request.call_args[1]["headers"]["X-Idempotency-Key"] == "refund:so-1:1:ab"

    def test_timeout_is_not_resent(self, mock_request):
        mock_request.side_effect = [
            requests.ReadTimeout("read timed out"),
            make_response(body={"status": "success", "data": {"id": 75923}}),
        ]

        with pytest.raises(GatewayUnavailableError) as exc_info:
            FlutterwaveAdapter.refund_transaction("4975363", 330000)

        assert exc_info.value.outcome_unknown is True
        assert mock_request.call_count == 1

    def test_server_error_is_not_resent(self, mock_request):
        mock_request.return_value = make_response(status_code=502)

        with pytest.raises(GatewayUnavailableError) as exc_info:
            FlutterwaveAdapter.refund_transaction("4975363", 330000)

        assert exc_info.value.outcome_unknown is True
        assert mock_request.call_count == 1

    def test_rate_limit_is_retried(self, mock_request):
        mock_request.side_effect = [
            make_response(status_code=429),
            requests.ConnectTimeout("connect timed out"),
            make_response(body={"status": "success", "data": {"id": 75923}}),
        ]

        refund = FlutterwaveAdapter.refund_transaction("4975363", 330000)

        assert refund.id == "75923"
        assert mock_request.call_count == 3

    def test_rejects_non_positive_amount(self, mock_request):
        with pytest.raises(ValueError):
            FlutterwaveAdapter.refund_transaction("1", 0)

        mock_request.assert_not_called()


class TestWebhookSignature:
    def test_matching_hash(self):
        assert FlutterwaveAdapter.verify_webhook_signature("test-webhook-hash") is True

    def test_wrong_or_missing_hash(self):
        assert FlutterwaveAdapter.verify_webhook_signature("nope") is False
        assert FlutterwaveAdapter.verify_webhook_signature(None) is False

    def test_unconfigured_hash_raises(self, settings):
        settings.FLUTTERWAVE_WEBHOOK_HASH = ""

        with pytest.raises(GatewayConfigurationError):
            FlutterwaveAdapter.verify_webhook_signature("anything")
