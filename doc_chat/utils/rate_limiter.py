"""
Per-user request throttling.

RateLimiter keeps its windows in process memory (reset on restart);
RedisRateLimiter shares them between worker processes. Both are
best-effort: they bound request rates, they are not an audit trail.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cachetools import TTLCache

from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.hashing_for_redis import hash_str


@dataclass
class RateWindow:
    count: int
    window_start: float


class RateLimiter:
    """
    At most `max_requests` per user per `window_seconds`.

    A user's window opens on their first request and is replaced by a new
    one (count=1) once more than `window_seconds` have passed since it
    opened. Rejected requests do not count. The read-modify-write of a
    window happens under one lock.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 60.0,
        max_tracked_users: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._lock = threading.Lock()
        # windows idle for two full periods are dropped to bound memory
        self._windows: TTLCache = TTLCache(
            maxsize=max_tracked_users, ttl=window_seconds * 2, timer=clock
        )

    def allow(self, user_id: str) -> bool:
        now = self.clock()
        with self._lock:
            window: Optional[RateWindow] = self._windows.get(user_id)

            if window is None or now - window.window_start > self.window_seconds:
                self._windows[user_id] = RateWindow(count=1, window_start=now)
                return True

            if window.count >= self.max_requests:
                log.warning(
                    "Rate limit exceeded | user_id=%s | count=%d", user_id, window.count
                )
                return False

            window.count += 1
            return True

    def current(self, user_id: str) -> Optional[RateWindow]:
        with self._lock:
            return self._windows.get(user_id)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimiter:
    """
    Fixed window shared through Redis. Each hit runs INCR and EXPIRE NX in
    one MULTI/EXEC transaction: the TTL is set by the first hit of a window
    and never extended, and a key can never be left without one. If Redis
    is unreachable the request is admitted. Needs Redis >= 7.0 for NX.
    """

    def __init__(
        self,
        redis_client,
        max_requests: int = 5,
        window_seconds: int = 60,
        prefix: str = "ratelimit",
    ):
        self.redis = redis_client
        self.max_requests = max_requests
        self.window_seconds = int(window_seconds)
        self.prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self.prefix}:{hash_str(user_id)}"

    def allow(self, user_id: str) -> bool:
        key = self._key(user_id)
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, self.window_seconds, nx=True)
            count, _ = pipe.execute()
            count = int(count)
        except Exception as e:
            log.warning("Rate limiter store unavailable, admitting request | error=%s", str(e))
            return True

        if count > self.max_requests:
            log.warning("Rate limit exceeded | user_id=%s | count=%d", user_id, count)
            return False
        return True


def build_rate_limiter(config: dict, redis_client=None):
    backend = config.get("backend", "memory")
    max_requests = int(config.get("max_requests", 5))
    window_seconds = config.get("window_seconds", 60)

    if backend == "redis":
        if redis_client is None:
            raise ValueError("redis backend selected but no redis client given")
        log.info("Rate limiter backend: redis | max_requests=%d", max_requests)
        return RedisRateLimiter(
            redis_client, max_requests=max_requests, window_seconds=window_seconds
        )

    if backend != "memory":
        raise ValueError(f"Unsupported rate limit backend {backend}")

    log.info("Rate limiter backend: memory | max_requests=%d", max_requests)
    return RateLimiter(
        max_requests=max_requests,
        window_seconds=float(window_seconds),
        max_tracked_users=int(config.get("max_tracked_users", 10000)),
    )
