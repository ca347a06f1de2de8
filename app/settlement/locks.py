"""
Concurrency control for settlement operations.

Two layers protect money-moving code:

1. **Row locks** (``select_for_update``) inside ``transaction.atomic()`` are
   the source of truth. Every escrow, wallet and withdrawal mutation re-reads
   its rows under lock before writing.

2. **Distributed locks** (DistributedLock) keep Celery workers from
   piling onto the same sub-order. They are coarse and advisory: losing the
   Redis lock never breaks an invariant because the row lock still applies.

Optimistic checks (check_version) cover admin edits made from a copy the
client read earlier.

Usage:
    from settlement.locks import DistributedLock, check_version

    with DistributedLock(f"escrow:release:{sub_order_id}", ttl=60):
        FundReleaseService.release_sub_order(sub_order_id)

    with transaction.atomic():
        withdrawal = check_version(WithdrawalRequest, pk, expected_version=2)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from settlement.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock with a TTL and token-based ownership.

    Acquired with ``SET key token NX EX ttl`` and released with a Lua script
    that deletes the key only if it still holds our token, so a worker whose
    lock expired cannot release someone else's.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until Redis drops the lock on its own
        blocking: If True, acquire() polls until ``timeout``
        timeout: Maximum wait in seconds when blocking

    Raises:
        LockAcquisitionError: From acquire()/__enter__ when the lock is held
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Poll interval while waiting for a blocking acquire
    RETRY_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def acquire(self) -> bool:
        """
        Acquire the lock or raise.

        Returns:
            True once acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if not self.blocking:
            if self._try_acquire(redis):
                return True
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._try_acquire(redis):
                return True
            time.sleep(self.RETRY_INTERVAL)

        self._token = None
        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """
        Release the lock if we still own it. Safe to call more than once.

        Returns:
            True if the key was deleted
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row for update and verify it still has the expected version.

    Must be called inside ``transaction.atomic()``; the row lock is held
    until the outer transaction ends.

    Raises:
        NotFoundError: If the row does not exist
        StaleRecordError: If the version moved on since the caller read it
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        model_name = model_class.__name__
        current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        if current is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current,
            },
        )


def lock_for_update(
    model_class: type[T],
    pk: Any,
    expected_version: int | None = None,
) -> T:
    """
    Lock a row for update, checking its version when the caller sent one.

    Raises:
        NotFoundError: If the row does not exist (or the pk is malformed)
        StaleRecordError: If ``expected_version`` is given and out of date
    """
    if expected_version is not None:
        return check_version(model_class, pk, expected_version)

    model_name = model_class.__name__
    try:
        return model_class.objects.select_for_update().get(pk=pk)
    except (model_class.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(
            f"{model_name} {pk} not found",
            error_code=f"{model_name.upper()}_NOT_FOUND",
            details={"pk": str(pk)},
        )


__all__ = [
    "DistributedLock",
    "check_version",
    "lock_for_update",
]
