"""
Concurrency control for settlement operations.

Two mechanisms, one per kind of contention:

1. **Recompute lock** (DistributedLock)
   - Redis SET NX EX, shared by every worker process
   - Keeps two workers from minting the same plan version for a trip
   - TTL frees the lock if a worker dies mid-computation

2. **Plan row lock** (lock_current_plan)
   - SELECT ... FOR UPDATE on the trip's current SettlementPlan row
   - Serializes confirm, finalize and invalidate for one trip, so the
     "everyone confirmed" check always reads a consistent snapshot

Usage:

    from settlements.locks import DistributedLock, lock_current_plan

    with DistributedLock(f"settlement:trip:{trip_id}"):
        recompute_plan(trip_id)

    with transaction.atomic():
        plan = lock_current_plan(trip_id)
        plan.invalidate(reason="expense:exp_9")
        plan.save()
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django.conf import settings

from django_redis import get_redis_connection

from settlements.exceptions import LockAcquisitionError, PlanNotFound
from settlements.models import SettlementPlan

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)


def trip_lock_key(trip_id: str) -> str:
    return f"settlement:trip:{trip_id}"


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - TTL releases the lock if the holder crashes
        - Token ownership: only the holder can release or extend
        - Blocking (with timeout) and non-blocking acquisition
        - Context manager support

    Example:
        with DistributedLock("settlement:trip:42"):
            SettlementService.compute_plan(...)

        lock = DistributedLock("settlement:trip:42", blocking=False)
        try:
            with lock:
                ...
        except LockAcquisitionError:
            # Another worker is recomputing this trip
            ...

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until Redis drops the lock; SETTLEMENT_LOCK_TTL_SECONDS
            when omitted
        blocking: Wait for the lock instead of failing immediately
        timeout: Seconds to wait in blocking mode;
            SETTLEMENT_LOCK_TIMEOUT_SECONDS when omitted
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Reset the TTL only if we still own the key
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    RETRY_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int | None = None,
        blocking: bool = True,
        timeout: float | None = None,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl if ttl is not None else settings.SETTLEMENT_LOCK_TTL_SECONDS
        self.blocking = blocking
        self.timeout = (
            timeout if timeout is not None else settings.SETTLEMENT_LOCK_TIMEOUT_SECONDS
        )
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: Lock held elsewhere (non-blocking) or not
                obtained within ``timeout`` (blocking)
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while True:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                if time.monotonic() >= deadline:
                    break
                time.sleep(self.RETRY_INTERVAL)

            logger.warning(
                f"Timed out waiting for lock {self.key}",
                extra={"lock_key": self.key, "timeout": self.timeout},
            )
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
        Release the lock if we hold it. Safe to call more than once.

        Returns:
            True if the key was deleted, False if we no longer owned it
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        if not result:
            logger.warning(
                f"Lock {self.key} expired before release",
                extra={"lock_key": self.key, "ttl": self.ttl},
            )
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the TTL (to ``ttl`` or the original TTL) if we still hold the lock."""
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


def lock_current_plan(trip_id: str) -> SettlementPlan:
    """
    Lock and return the trip's current plan row.

    Must run inside ``transaction.atomic()``; the row stays locked until the
    transaction ends.

    Raises:
        PlanNotFound: The trip has no plan yet
    """
    plan = (
        SettlementPlan.objects.select_for_update()
        .for_trip(trip_id)
        .order_by("-version")
        .first()
    )
    if plan is None:
        raise PlanNotFound(
            f"No settlement plan for trip {trip_id}",
            details={"trip_id": str(trip_id)},
        )
    return plan


__all__ = [
    "DistributedLock",
    "lock_current_plan",
    "trip_lock_key",
]
