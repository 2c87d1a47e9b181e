"""
Run locks: at most one sync per (user, platform).

A process-local lock covers threads of one worker; when Redis locks are
enabled the same key is also taken in Redis so runs on other Celery
workers are excluded too.
"""
import logging
import threading
from typing import Dict, Optional, Tuple

import redis
from redis.lock import Lock as RedisLock

from app.core.config import settings

logger = logging.getLogger(__name__)

_local_locks: Dict[Tuple[str, str], threading.Lock] = {}
_local_guard = threading.Lock()
_redis_client: Optional[redis.Redis] = None


def _local_lock(user_id: str, platform: str) -> threading.Lock:
    with _local_guard:
        return _local_locks.setdefault((user_id, platform), threading.Lock())


def get_redis_client() -> Optional[redis.Redis]:
    """Shared Redis client for distributed locks, or None when disabled."""
    global _redis_client
    if not settings.sync_redis_locks:
        return None
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(settings.celery_broker_url, decode_responses=True)
    return _redis_client


class RunLock:
    """
    Non-blocking lock on the key sync:{platform}:{user_id}.

    Redis failures degrade to the local lock only; the SyncStatus
    in_progress check still guards against concurrent runs.
    """

    def __init__(self, user_id: str, platform: str, redis_client: Optional[redis.Redis] = None):
        self.key = f"sync:{platform}:{user_id}"
        self._local = _local_lock(user_id, platform)
        self._redis_client = redis_client if redis_client is not None else get_redis_client()
        self._redis_lock: Optional[RedisLock] = None

    def acquire(self) -> bool:
        if not self._local.acquire(blocking=False):
            return False
        if self._redis_client is None:
            return True

        lock = RedisLock(self._redis_client, self.key, timeout=settings.sync_lock_timeout)
        try:
            acquired = lock.acquire(blocking=False)
        except redis.RedisError as e:
            logger.warning(f"Redis lock unavailable for {self.key}: {e}. Using local lock only")
            return True
        if not acquired:
            self._local.release()
            return False
        self._redis_lock = lock
        return True

    def release(self) -> None:
        if self._redis_lock is not None:
            try:
                self._redis_lock.release()
            except redis.RedisError as e:
                # The key expires on its own after sync_lock_timeout
                logger.warning(f"Could not release Redis lock {self.key}: {e}")
            self._redis_lock = None
        self._local.release()
