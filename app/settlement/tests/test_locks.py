"""
Tests for settlement concurrency control.

DistributedLock is exercised against a mocked Redis client; the row-lock
helpers run against the test database.
"""

import uuid

import pytest

from core.exceptions import NotFoundError
from settlement.exceptions import LockAcquisitionError, StaleRecordError
from settlement.locks import DistributedLock, check_version, lock_for_update
from settlement.models import SubOrder, WithdrawalRequest
from settlement.tests.factories import SubOrderFactory, WithdrawalRequestFactory


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire with SET NX EX on the prefixed key."""
        lock = DistributedLock("escrow:release:abc", ttl=60, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True

        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:escrow:release:abc"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 60

    def test_tokens_are_unique(self, mock_redis):
        lock1 = DistributedLock("a", blocking=False)
        lock2 = DistributedLock("b", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("busy", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:busy"
        assert lock.is_held is False

    def test_blocking_waits_and_acquires(self, mock_redis, mocker):
        mocker.patch("settlement.locks.time.sleep")
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("busy", blocking=True, timeout=5.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_timeout(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("busy", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)

    def test_release_runs_ownership_script(self, mock_redis):
        lock = DistributedLock("key", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True

        mock_redis.eval.assert_called_once_with(
            DistributedLock.RELEASE_SCRIPT, 1, "lock:key", token
        )
        assert lock.is_held is False

    def test_release_without_acquire(self, mock_redis):
        assert DistributedLock("key").release() is False
        mock_redis.eval.assert_not_called()

    def test_release_of_expired_lock_reports_false(self, mock_redis):
        mock_redis.eval.return_value = 0
        lock = DistributedLock("key", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_context_manager_releases_on_error(self, mock_redis):
        with pytest.raises(RuntimeError):
            with DistributedLock("key", blocking=False):
                raise RuntimeError("boom")

        mock_redis.eval.assert_called_once()


class TestRowLocks:
    """Tests for check_version and lock_for_update."""

    def test_check_version_returns_current_row(self, db):
        sub_order = SubOrderFactory()

        locked = check_version(SubOrder, sub_order.pk, expected_version=1)

        assert locked.pk == sub_order.pk

    def test_check_version_detects_stale_copy(self, db):
        withdrawal = WithdrawalRequestFactory()
        withdrawal.description = "edited elsewhere"
        withdrawal.save()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(WithdrawalRequest, withdrawal.pk, expected_version=1)

        assert exc_info.value.details["current_version"] == 2
        assert exc_info.value.http_status == 409

    def test_check_version_missing_row(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            check_version(SubOrder, uuid.uuid4(), expected_version=1)

        assert exc_info.value.error_code == "SUBORDER_NOT_FOUND"

    def test_lock_for_update_without_version(self, db):
        sub_order = SubOrderFactory()

        assert lock_for_update(SubOrder, sub_order.pk).pk == sub_order.pk

    def test_lock_for_update_malformed_pk(self, db):
        with pytest.raises(NotFoundError):
            lock_for_update(SubOrder, "not-a-uuid")

    def test_lock_for_update_checks_version_when_given(self, db):
        sub_order = SubOrderFactory()

        with pytest.raises(StaleRecordError):
            lock_for_update(SubOrder, sub_order.pk, expected_version=7)
