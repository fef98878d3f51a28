"""
Cross-process mutual exclusion for payment workers.

Row locks (``select_for_update``) protect a single Payment or Payout inside
one transaction. Batch jobs that span many transactions (webhook replay,
fee backfill, payout retries) additionally take a Redis lock so two
workers never run the same batch at once.

Usage:
    from payments.locks import DistributedLock

    with DistributedLock("payments:backfill", ttl=600, blocking=False):
        ReconciliationService.backfill_breakdown()
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    The lock is a ``SET key token NX EX ttl``; release and extend run as Lua
    scripts that only touch the key while it still holds our token, so an
    expired lock re-acquired by another worker is never released by us.

    Example:
        lock = DistributedLock(f"payout:{payout_id}", ttl=60, blocking=False)
        try:
            with lock:
                PayoutService.retry_payout(payout_id)
        except LockAcquisitionError:
            pass  # another worker is on it

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before Redis drops the lock on its own
        blocking: If True, acquire() polls until ``timeout``
        timeout: Maximum wait in seconds (blocking mode only)
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

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

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Raises:
            LockAcquisitionError: Lock held elsewhere (non-blocking), or not
                freed within ``timeout`` (blocking)
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.monotonic() + self.timeout
            while time.monotonic() < end_time:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                time.sleep(0.05)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Release the lock if we still own it.

        Returns:
            True if the key was deleted. Safe to call more than once.
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """Reset the TTL (to ``additional_ttl`` or the original) while held."""
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        result = self._get_redis().eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb: Any) -> bool:
        self.release()
        return False


__all__ = [
    "DistributedLock",
]
