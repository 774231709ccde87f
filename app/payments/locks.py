"""
Redis distributed lock for webhook and settlement processing.

Wallet rows are serialized by SELECT ... FOR UPDATE; this lock sits one
level above and keeps two workers from processing the same webhook event
at the same time (for example a retry sweep racing a slow first attempt).

Usage:
    from payments.locks import DistributedLock

    # Non-blocking: fail fast if another worker holds the event
    with DistributedLock(f"webhook:{event.id}", ttl=60, blocking=False):
        dispatch_webhook(event)

Note:
    The TTL must be longer than the expected processing time. A crashed
    worker's lock expires on its own.
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
    Redis-based mutual exclusion with a TTL and an ownership token.

    Only the holder of the token may release or extend the lock; both are
    done atomically with Lua scripts.

    Example:
        lock = DistributedLock("webhook:6f1c...", ttl=60, blocking=False)
        try:
            with lock:
                process()
        except LockAcquisitionError:
            # Another worker is on it
            reschedule()

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until the lock expires on its own
        blocking: If True, acquire() polls until timeout
        timeout: Maximum wait in seconds when blocking
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Reset TTL only if we still own the key
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

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
        Take the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock is held elsewhere (non-blocking)
                or was not freed within timeout (blocking)
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
            time.sleep(self.POLL_INTERVAL)

        self._token = None
        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """
        Release the lock if this instance holds it.

        Returns:
            True if the key was deleted; safe to call more than once
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """
        Reset the lock TTL (not added to the remaining time).

        Returns:
            True if the lock is still ours and was extended
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(
            self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl
        )
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


__all__ = [
    "DistributedLock",
]
