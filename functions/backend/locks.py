"""
Session locks keyed by target entity.

Supports an in-memory implementation for tests/local runs and a
Redis-backed implementation shared across processes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

import redis

# Deletes the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SessionLock(Protocol):
    """Minimal lock interface: token-owned keys with a TTL."""

    def acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        ...

    def release(self, key: str, token: str) -> bool:
        ...


@dataclass
class InMemorySessionLock:
    """Process-local lock table for testing/dev."""

    clock: Callable[[], float] = time.time
    held: dict = field(default_factory=dict)  # key -> (token, expires_at)

    def __post_init__(self):
        self._mutex = threading.Lock()

    def acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        now = self.clock()
        with self._mutex:
            current = self.held.get(key)
            if current and current[1] > now and current[0] != token:
                return False
            self.held[key] = (token, now + ttl_seconds)
            return True

    def release(self, key: str, token: str) -> bool:
        with self._mutex:
            current = self.held.get(key)
            if not current or current[0] != token:
                return False
            del self.held[key]
            return True


@dataclass
class RedisSessionLock:
    """Redis-backed lock using SET NX PX and a token-checked delete."""

    url: str
    key_prefix: str = "famileezy:lock:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)
        self._release = self.client.register_script(_RELEASE_SCRIPT)

    def acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        acquired = self.client.set(
            self.key_prefix + key,
            token,
            nx=True,
            px=max(1, int(ttl_seconds * 1000)),
        )
        return bool(acquired)

    def release(self, key: str, token: str) -> bool:
        return bool(self._release(keys=[self.key_prefix + key], args=[token]))
