"""
Verified-identity records: the durable "is this identity verified" flag.

Default storage lives for the process lifetime. Setting VERIFIED_BACKEND=redis
keeps the flags in a Redis set so they survive restarts; sessions themselves
are never persisted.
"""
import threading
from typing import Set

from credverify.settings import settings
from credverify.store.redis_conn import get_redis


class InMemoryVerifiedRecords:
    def __init__(self):
        self._verified: Set[str] = set()
        self._lock = threading.Lock()

    def is_verified(self, identity: str) -> bool:
        with self._lock:
            return identity in self._verified

    def set_verified(self, identity: str) -> None:
        with self._lock:
            self._verified.add(identity)

    def clear(self, identity: str) -> bool:
        """Returns True if the identity was verified."""
        with self._lock:
            if identity in self._verified:
                self._verified.discard(identity)
                return True
            return False


class RedisVerifiedRecords:
    def __init__(self, key: str = None, redis=None):
        self.key = key or settings.VERIFIED_KEY
        self._redis = redis

    def _r(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def is_verified(self, identity: str) -> bool:
        return bool(self._r().sismember(self.key, identity))

    def set_verified(self, identity: str) -> None:
        self._r().sadd(self.key, identity)

    def clear(self, identity: str) -> bool:
        return int(self._r().srem(self.key, identity) or 0) > 0


def build_records():
    backend = (getattr(settings, "VERIFIED_BACKEND", "memory") or "memory").lower()
    if backend == "redis":
        return RedisVerifiedRecords()
    if backend != "memory":
        raise ValueError(f"unknown VERIFIED_BACKEND: {backend!r}")
    return InMemoryVerifiedRecords()
