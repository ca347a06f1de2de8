"""
Tests for WithdrawalService.

Each test starts from a wallet funded through the ledger so that the
reconciliation check holds after every money movement.
"""

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta

import pytest
from django.db import connection
from freezegun import freeze_time

from core.exceptions import NotFoundError

from settlement.models import Wallet, WalletTransaction, WithdrawalRequest
from settlement.services.wallet import WalletService
from settlement.services.withdrawal import (
    WithdrawalService,
    calculate_withdrawal_fee,
    generate_request_number,
)
from settlement.state_machines import TransactionSource, WithdrawalStatus
from settlement.tests.factories import StoreFactory, WithdrawalRequestFactory

ACCOUNT_NUMBER = "0123456789"


@pytest.fixture
def funded_wallet(store_wallet):
    WalletService.credit(
        store_wallet.id,
        500000,
        TransactionSource.ORDER,
        description="Escrow release",
        idempotency_key="test:funding",
        count_as_earned=True,
    )
    return Wallet.objects.get(pk=store_wallet.pk)


@pytest.fixture
def wallet_with_300k(store_wallet):
    WalletService.credit(
        store_wallet.id,
        300000,
        TransactionSource.ORDER,
        idempotency_key="test:funding",
        count_as_earned=True,
    )
    return Wallet.objects.get(pk=store_wallet.pk)


@pytest.fixture
def withdrawal(store, funded_wallet, store_owner):
    result = WithdrawalService.create_request(
        store, 200000, ACCOUNT_NUMBER, requested_by=store_owner
    )
    assert result.success
    return result.data


def wallet_of(store):
    return Wallet.objects.get(store=store)


def assert_ledger_consistent(store):
    assert WalletService.reconcile(wallet_of(store)).is_consistent


class TestFeeCalculation:
    def test_percentage_plus_fixed(self):
        assert calculate_withdrawal_fee(200000) == (8000, 192000)

    def test_rounds_half_up(self):
        # 1.5% of 100100 is 1501.5
        assert calculate_withdrawal_fee(100100) == (6502, 93598)

    def test_request_number_format(self, db):
        assert re.fullmatch(r"WDR-[0-9A-F]{8}", generate_request_number())


class TestCreateRequest:
    """WithdrawalService.create_request"""

    def test_debits_wallet_into_pending(self, withdrawal, store):
        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.processing_fee == 8000
        assert withdrawal.net_amount == 192000
        assert withdrawal.bank_details["bankCode"] == "058"
        assert withdrawal.status_history[0]["status"] == WithdrawalStatus.PENDING

        wallet = wallet_of(store)
        assert wallet.balance == 300000
        assert wallet.pending == 200000

        debit = WalletTransaction.objects.get(idempotency_key=f"withdrawal:{withdrawal.id}:debit")
        assert debit.source == TransactionSource.WITHDRAWAL
        assert debit.amount == 200000
        assert_ledger_consistent(store)

    def test_records_request_metadata(self, store, funded_wallet):
        result = WithdrawalService.create_request(
            store,
            150000,
            ACCOUNT_NUMBER,
            description="Monthly payout",
            ip_address="10.0.0.1",
            user_agent="Mozilla/5.0",
        )

        withdrawal = result.data
        assert withdrawal.description == "Monthly payout"
        assert withdrawal.ip_address == "10.0.0.1"
        assert withdrawal.user_agent == "Mozilla/5.0"

    @pytest.mark.parametrize(
        "amount,error_code",
        [
            (99999, "AMOUNT_BELOW_MINIMUM"),
            (10000001, "AMOUNT_ABOVE_MAXIMUM"),
        ],
    )
    def test_amount_limits(self, store, funded_wallet, amount, error_code):
        result = WithdrawalService.create_request(store, amount, ACCOUNT_NUMBER)

        assert result.error_code == error_code
        assert wallet_of(store).balance == 500000

    def test_unknown_bank_account(self, store, funded_wallet):
        result = WithdrawalService.create_request(store, 200000, "9999999999")

        assert result.error_code == "BANK_ACCOUNT_NOT_FOUND"

    def test_fees_exceed_amount(self, store, funded_wallet, settings):
        settings.WITHDRAWAL_MIN_AMOUNT = 1000

        result = WithdrawalService.create_request(store, 5000, ACCOUNT_NUMBER)

        assert result.error_code == "AMOUNT_TOO_LOW_AFTER_FEES"

    def test_store_without_wallet(self, store):
        result = WithdrawalService.create_request(store, 200000, ACCOUNT_NUMBER)

        assert result.error_code == "WALLET_NOT_FOUND"

    def test_insufficient_balance(self, store, funded_wallet):
        result = WithdrawalService.create_request(store, 600000, ACCOUNT_NUMBER)

        assert result.error_code == "INSUFFICIENT_BALANCE"
        assert WithdrawalRequest.objects.count() == 0
        assert wallet_of(store).balance == 500000


class TestCompetingWithdrawals:
    """Two 200,000 requests against a 300,000 balance: only one can win."""

    def test_second_request_sees_debited_balance(self, store, wallet_with_300k):
        first = WithdrawalService.create_request(store, 200000, ACCOUNT_NUMBER)
        second = WithdrawalService.create_request(store, 200000, ACCOUNT_NUMBER)

        assert first.success
        assert second.error_code == "INSUFFICIENT_BALANCE"
        assert WithdrawalRequest.objects.count() == 1
        wallet = wallet_of(store)
        assert wallet.balance == 100000
        assert wallet.pending == 200000
        assert_ledger_consistent(store)


@pytest.mark.django_db(transaction=True)
class TestCompetingWithdrawalsConcurrent:
    """
    The same race with real transactions on separate connections.

    Needs row locks that block, so it only runs against PostgreSQL.
    """

    def test_only_one_request_debits(self, store, wallet_with_300k):
        if connection.vendor != "postgresql":
            pytest.skip("Row-level locking requires PostgreSQL")

        def request_withdrawal():
            try:
                return WithdrawalService.create_request(store, 200000, ACCOUNT_NUMBER)
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(request_withdrawal) for _ in range(2)]
            results = [future.result() for future in as_completed(futures)]

        assert sorted(r.error_code or "OK" for r in results) == ["INSUFFICIENT_BALANCE", "OK"]
        assert WithdrawalRequest.objects.count() == 1
        assert wallet_of(store).balance == 100000
        assert_ledger_consistent(store)


class TestStoreQueries:
    def test_list_for_store_filters_status(self, withdrawal, store):
        WithdrawalRequestFactory(store=store, status=WithdrawalStatus.COMPLETED)
        WithdrawalRequestFactory()

        everything = WithdrawalService.list_for_store(store)
        pending = WithdrawalService.list_for_store(store, {"status": "pending"})

        assert everything["pagination"]["total"] == 2
        assert [w.id for w in pending["data"]] == [withdrawal.id]

    def test_get_for_store_is_scoped(self, withdrawal, store):
        assert WithdrawalService.get_for_store(store, withdrawal.id).pk == withdrawal.pk

        with pytest.raises(NotFoundError) as exc_info:
            WithdrawalService.get_for_store(StoreFactory(), withdrawal.id)

        assert exc_info.value.error_code == "WITHDRAWAL_NOT_FOUND"

    def test_get_for_store_malformed_id(self, store):
        with pytest.raises(NotFoundError):
            WithdrawalService.get_for_store(store, "not-a-uuid")


class TestAdminActions:
    def test_start_review(self, withdrawal, admin_user):
        result = WithdrawalService.start_review(admin_user, withdrawal.id)

        assert result.data.status == WithdrawalStatus.UNDER_REVIEW
        assert result.data.reviewed_by == admin_user

    def test_approve_clears_pending(self, withdrawal, admin_user, store):
        result = WithdrawalService.approve(
            admin_user, withdrawal.id, notes="Looks good", transaction_reference="TRF-1"
        )

        assert result.success
        stored = WithdrawalRequest.objects.get(pk=withdrawal.pk)
        assert stored.status == WithdrawalStatus.APPROVED
        assert stored.review_notes == "Looks good"
        assert stored.status_history[-1]["status"] == WithdrawalStatus.APPROVED

        wallet = wallet_of(store)
        assert wallet.balance == 300000
        assert wallet.pending == 0
        assert_ledger_consistent(store)

    def test_approve_with_stale_version(self, withdrawal, admin_user):
        WithdrawalService.start_review(admin_user, withdrawal.id)

        result = WithdrawalService.approve(
            admin_user, withdrawal.id, expected_version=withdrawal.version
        )

        assert result.error_code == "STALE_RECORD"
        assert WithdrawalRequest.objects.get(pk=withdrawal.pk).status == (
            WithdrawalStatus.UNDER_REVIEW
        )

    def test_reject_returns_funds(self, withdrawal, admin_user, store):
        result = WithdrawalService.reject(admin_user, withdrawal.id, "Account name mismatch")

        assert result.data.status == WithdrawalStatus.REJECTED
        assert result.data.rejection_reason == "Account name mismatch"

        wallet = wallet_of(store)
        assert wallet.balance == 500000
        assert wallet.pending == 0

        refund = WalletTransaction.objects.get(idempotency_key=f"withdrawal:{withdrawal.id}:reject")
        assert refund.source == TransactionSource.ADJUSTMENT
        assert_ledger_consistent(store)

    def test_reject_requires_reason(self, withdrawal, admin_user):
        result = WithdrawalService.reject(admin_user, withdrawal.id, "")

        assert result.error_code == "REASON_REQUIRED"

    def test_processing_then_complete(self, withdrawal, admin_user, store):
        WithdrawalService.approve(admin_user, withdrawal.id)
        WithdrawalService.start_processing(admin_user, withdrawal.id)

        result = WithdrawalService.complete(admin_user, withdrawal.id, "NIP-000123")

        assert result.data.status == WithdrawalStatus.COMPLETED
        assert result.data.transaction_reference == "NIP-000123"
        assert result.data.processed_at is not None
        assert wallet_of(store).balance == 300000

    def test_complete_requires_reference(self, withdrawal, admin_user):
        WithdrawalService.approve(admin_user, withdrawal.id)

        result = WithdrawalService.complete(admin_user, withdrawal.id, " ")

        assert result.error_code == "TRANSACTION_REFERENCE_REQUIRED"

    def test_fail_returns_funds(self, withdrawal, admin_user, store):
        WithdrawalService.approve(admin_user, withdrawal.id)

        result = WithdrawalService.fail(admin_user, withdrawal.id, "Bank rejected transfer")

        assert result.data.status == WithdrawalStatus.FAILED
        wallet = wallet_of(store)
        assert wallet.balance == 500000
        assert wallet.pending == 0
        assert_ledger_consistent(store)

    def test_invalid_source_state(self, withdrawal, admin_user):
        WithdrawalService.reject(admin_user, withdrawal.id, "Duplicate")

        result = WithdrawalService.approve(admin_user, withdrawal.id)

        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_complete_from_pending_is_invalid(self, withdrawal, admin_user):
        result = WithdrawalService.complete(admin_user, withdrawal.id, "NIP-1")

        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_unknown_withdrawal(self, admin_user):
        result = WithdrawalService.start_review(admin_user, "not-a-uuid")

        assert result.error_code == "WITHDRAWAL_NOT_FOUND"


class TestAdminListing:
    @pytest.fixture
    def requests(self, store):
        other_store = StoreFactory(name="Kano Textiles")
        with freeze_time("2026-03-01 10:00:00"):
            march = WithdrawalRequestFactory(store=store, request_number="WDR-AAAA0001")
        with freeze_time("2026-03-10 22:00:00"):
            later = WithdrawalRequestFactory(
                store=other_store,
                request_number="WDR-BBBB0002",
                status=WithdrawalStatus.APPROVED,
            )
        return march, later

    def test_status_and_store_filters(self, requests, store):
        march, later = requests

        approved = WithdrawalService.list_for_admin({"status": "approved"})
        scoped = WithdrawalService.list_for_admin({"storeId": str(store.id)})

        assert [w.id for w in approved["data"]] == [later.id]
        assert [w.id for w in scoped["data"]] == [march.id]

    def test_date_range_includes_whole_end_day(self, requests):
        march, later = requests

        result = WithdrawalService.list_for_admin({"fromDate": "2026-03-02", "toDate": "2026-03-10"})

        assert [w.id for w in result["data"]] == [later.id]

    def test_search_by_number_or_store_name(self, requests):
        march, later = requests

        by_number = WithdrawalService.list_for_admin({"search": "aaaa0001"})
        by_store = WithdrawalService.list_for_admin({"search": "kano"})

        assert [w.id for w in by_number["data"]] == [march.id]
        assert [w.id for w in by_store["data"]] == [later.id]

    def test_newest_first(self, requests):
        march, later = requests

        result = WithdrawalService.list_for_admin()

        assert [w.id for w in result["data"]] == [later.id, march.id]
        assert result["data"][0].created_at - result["data"][1].created_at > timedelta(days=9)
