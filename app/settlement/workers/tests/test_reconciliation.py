"""
Tests for the wallet reconciliation task.
"""

from settlement.models import Wallet
from settlement.services import WalletService
from settlement.state_machines import TransactionSource
from settlement.tests.factories import WalletFactory
from settlement.workers.reconciliation import reconcile_wallet_balances


class TestReconcileWalletBalances:
    def test_consistent_wallets(self, store_wallet):
        WalletService.credit(store_wallet.id, 330000, TransactionSource.ORDER)
        WalletService.debit(store_wallet.id, 100000, TransactionSource.WITHDRAWAL)
        WalletFactory()

        result = reconcile_wallet_balances.apply().get()

        assert result == {"wallets_checked": 2, "discrepancies": 0, "divergent_wallet_ids": []}

    def test_reports_divergent_wallet(self, store_wallet):
        WalletService.credit(store_wallet.id, 330000, TransactionSource.ORDER)
        Wallet.objects.filter(pk=store_wallet.pk).update(balance=400000)

        result = reconcile_wallet_balances.apply().get()

        assert result["discrepancies"] == 1
        assert result["divergent_wallet_ids"] == [str(store_wallet.id)]

    def test_never_heals_balance(self, store_wallet):
        Wallet.objects.filter(pk=store_wallet.pk).update(balance=5000)

        reconcile_wallet_balances.apply().get()

        assert Wallet.objects.get(pk=store_wallet.pk).balance == 5000

    def test_logs_critical_on_divergence(self, store_wallet, mocker):
        mock_logger = mocker.patch("settlement.workers.reconciliation.logger")
        Wallet.objects.filter(pk=store_wallet.pk).update(balance=5000)

        reconcile_wallet_balances.apply().get()

        mock_logger.critical.assert_called_once()
        assert mock_logger.critical.call_args.kwargs["extra"]["difference"] == 5000
