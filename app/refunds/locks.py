"""
Per-item locking for refund attempts.

A sale item may only have one refund attempt writing at a time, whether
it comes from a cashier, an operator resume or the reconciliation job.
The lock lives in Redis under ``lock:refund:item:<id>`` and expires on its
own, so a crashed worker never blocks the item for longer than the TTL.

Releasing and extending never raise: the TTL bounds a lock Redis could not
drop, and the refund it protected has already been written.

The lock is advisory. If it is lost (TTL expiry, Redis failover) the
conditional ``refunded`` update and the one-RefundItem-per-sale-item
constraint still reject the second writer.

Usage:
    from refunds.locks import DistributedLock, refund_item_lock_key

    with DistributedLock(refund_item_lock_key(item_id)):
        ...  # TTL and wait time default to the REFUND_LOCK_* settings
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django_redis import get_redis_connection
from redis.exceptions import RedisError

from refunds.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock:"
RETRY_INTERVAL = 0.05

# Both scripts act only while the key still carries our token
RELEASE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

EXPIRE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


def refund_item_lock_key(item_id: Any) -> str:
    """Key shared by every refund attempt on one sale item."""
    return f"refund:item:{item_id}"


class DistributedLock:
    """
    Token-owned Redis lock with a TTL.

    Args:
        key: Lock name, stored as ``lock:<key>``
        ttl: Seconds before Redis drops the lock
            (default: REFUND_LOCK_TTL_SECONDS)
        timeout: Seconds to wait for a busy lock
            (default: REFUND_LOCK_TIMEOUT_SECONDS)
        blocking: When False, a busy lock fails on the first attempt

    Raises:
        LockAcquisitionError: From acquire() or ``with`` when the lock
            stays busy
    """

    def __init__(
        self,
        key: str,
        ttl: int | None = None,
        timeout: float | None = None,
        blocking: bool = True,
    ) -> None:
        self.key = f"{LOCK_PREFIX}{key}"
        self.ttl = ttl if ttl is not None else settings.REFUND_LOCK_TTL_SECONDS
        self.timeout = (
            timeout if timeout is not None else settings.REFUND_LOCK_TIMEOUT_SECONDS
        )
        self.blocking = blocking
        self._token: str | None = None
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_connection("default")
        return self._client

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + (self.timeout if self.blocking else 0)

        while not self.client.set(self.key, token, nx=True, ex=self.ttl):
            if time.monotonic() >= deadline:
                raise self._busy_error()
            time.sleep(RETRY_INTERVAL)

        self._token = token
        return True

    def release(self) -> bool:
        """
        Drop the lock.

        Returns False if it had already expired, was never taken or Redis
        could not be reached.
        """
        released = self._call_if_owner(RELEASE_IF_OWNER)
        self._token = None
        return released

    def extend(self, ttl: int | None = None) -> bool:
        """Restart the TTL (default: the original ttl) while still the owner."""
        return self._call_if_owner(EXPIRE_IF_OWNER, ttl or self.ttl)

    def _call_if_owner(self, script: str, *args: Any) -> bool:
        if self._token is None:
            return False
        try:
            return bool(self.client.eval(script, 1, self.key, self._token, *args))
        except RedisError:
            logger.warning(
                "Redis unavailable for lock %s; it will expire after %ss",
                self.key,
                self.ttl,
                exc_info=True,
            )
            return False

    def _busy_error(self) -> LockAcquisitionError:
        if not self.blocking:
            return LockAcquisitionError(
                f"Lock '{self.key}' is held by another refund attempt",
                details={"key": self.key},
            )
        return LockAcquisitionError(
            f"Timed out after {self.timeout}s waiting for lock '{self.key}'",
            details={"key": self.key, "timeout": self.timeout},
        )

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


__all__ = [
    "DistributedLock",
    "refund_item_lock_key",
]
