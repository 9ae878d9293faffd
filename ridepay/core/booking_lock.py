"""
Named mutexes for work that must not overlap across workers.

The reconciliation sweep runs one at a time, and cancellation, seat
reduction and payout creation take a per-booking lock. Redis holds the
lock when it is configured and reachable. Otherwise a process-local table
is used, which still serializes threads of a single instance.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional
import uuid

from redis import Redis
from redis.exceptions import RedisError

from ridepay.core.config import settings
from ridepay.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

RECONCILIATION_SWEEP_LOCK = "reconciliation:sweep"

# Delete only when the stored token is still ours.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

_redis: Optional[Redis] = None
_redis_guard = threading.Lock()

_local_guard = threading.Lock()
_local_locks: Dict[str, tuple[str, float]] = {}


def _booking_key(booking_id: str) -> str:
    return f"booking:{booking_id}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_redis() -> Optional[Redis]:
    global _redis
    if _redis is not None or not settings.redis_url:
        return _redis
    with _redis_guard:
        if _redis is None:
            try:
                client = Redis.from_url(settings.redis_url, decode_responses=True)
                client.ping()
            except RedisError as exc:
                logger.warning("Lock backend unavailable, using local locks: %s", exc)
                return None
            _redis = client
    return _redis


def _acquire_local(key: str, token: str, ttl_s: int) -> bool:
    now = time.monotonic()
    with _local_guard:
        held = _local_locks.get(key)
        if held is not None and held[1] > now:
            return False
        _local_locks[key] = (token, now + ttl_s)
        return True


def _release_local(key: str, token: str) -> bool:
    with _local_guard:
        held = _local_locks.get(key)
        if held is None or held[0] != token:
            return False
        del _local_locks[key]
        return True


def acquire_lock_sync(key: str, token: str, ttl_s: int = 90) -> bool:
    client = _get_redis()
    if client is None:
        acquired = _acquire_local(key, token, ttl_s)
        prometheus_metrics.record_booking_lock("acquire", "local" if acquired else "blocked")
        return acquired
    try:
        acquired = bool(client.set(_namespaced_key(key), token, nx=True, ex=ttl_s))
    except RedisError as exc:
        logger.warning("Lock acquire for %s fell back to local lock: %s", key, exc)
        prometheus_metrics.record_booking_lock("acquire", "error")
        return _acquire_local(key, token, ttl_s)
    prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
    return acquired


def release_lock_sync(key: str, token: str) -> None:
    # A Redis failure may have pushed the acquire onto the local table.
    if _release_local(key, token):
        prometheus_metrics.record_booking_lock("release", "local")
        return
    client = _get_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("release", "not_found")
        return
    try:
        deleted = client.eval(_RELEASE_SCRIPT, 1, _namespaced_key(key), token)
    except RedisError as exc:
        # The TTL clears it.
        logger.warning("Lock release for %s failed: %s", key, exc)
        prometheus_metrics.record_booking_lock("release", "error")
        return
    prometheus_metrics.record_booking_lock("release", "success" if deleted else "expired")


@contextmanager
def named_lock_sync(key: str, ttl_s: int = 90) -> Iterator[bool]:
    """
    Yield True when the lock is held, False when someone else holds it.

    Callers decide what "busy" means: the sweep skips, payout creation
    reports the payout as already in progress.
    """
    token = uuid.uuid4().hex
    acquired = acquire_lock_sync(key, token, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_lock_sync(key, token)


@contextmanager
def booking_lock_sync(booking_id: str, ttl_s: int = 90) -> Iterator[bool]:
    """Serialize cancellation, seat reduction and payout for one booking."""
    with named_lock_sync(_booking_key(booking_id), ttl_s=ttl_s) as acquired:
        yield acquired
