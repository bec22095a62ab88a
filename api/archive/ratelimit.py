# api/archive/ratelimit.py
"""
Sliding-window attempt counters.

``MemoryRateLimiter`` keeps timestamps in process memory (single instance,
tests). ``RedisRateLimiter`` keeps them in a Redis sorted set so every
instance sees the same counts. ``build_limiter`` picks one from settings.
"""
import logging
import secrets
import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

import redis

from .config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Counts events per key over the last ``window_seconds``."""

    def __init__(self, max_attempts: int, window_seconds: float, prefix: str = "rl"):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.prefix = prefix

    def hit(self, key: str) -> int:
        """Record one event, return the count inside the window (including it)."""
        raise NotImplementedError

    def count(self, key: str) -> int:
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError

    def is_limited(self, key: str) -> bool:
        return self.count(key) >= self.max_attempts


class MemoryRateLimiter(RateLimiter):
    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        prefix: str = "rl",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(max_attempts, window_seconds, prefix)
        self._clock = clock
        self._events: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        events = self._events[key]
        cutoff = now - self.window_seconds
        while events and events[0] <= cutoff:
            events.popleft()
        if not events:
            del self._events[key]
            return deque()
        return events

    def hit(self, key: str) -> int:
        with self._lock:
            now = self._clock()
            events = self._prune(key, now)
            events.append(now)
            self._events[key] = events
            return len(events)

    def count(self, key: str) -> int:
        with self._lock:
            return len(self._prune(key, self._clock()))

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class RedisRateLimiter(RateLimiter):
    def __init__(
        self,
        client,
        max_attempts: int,
        window_seconds: float,
        prefix: str = "rl",
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_attempts, window_seconds, prefix)
        self._redis = client
        # wall clock: scores are shared between processes
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def hit(self, key: str) -> int:
        now = self._clock()
        k = self._key(key)
        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(k, 0, now - self.window_seconds)
        # unique member so two hits in the same instant both count
        pipe.zadd(k, {f"{now}:{secrets.token_hex(4)}": now})
        pipe.zcard(k)
        pipe.expire(k, int(self.window_seconds) + 1)
        _, _, count, _ = pipe.execute()
        return int(count)

    def count(self, key: str) -> int:
        now = self._clock()
        k = self._key(key)
        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(k, 0, now - self.window_seconds)
        pipe.zcard(k)
        _, count = pipe.execute()
        return int(count)

    def reset(self, key: str) -> None:
        self._redis.delete(self._key(key))


def build_limiter(max_attempts: int, window_seconds: float, prefix: str, redis_url: Optional[str] = None) -> RateLimiter:
    url = redis_url if redis_url is not None else settings.REDIS_URL
    if url:
        logger.info("rate limiter %s backed by redis", prefix)
        return RedisRateLimiter(redis.Redis.from_url(url, decode_responses=True), max_attempts, window_seconds, prefix)
    logger.info("rate limiter %s kept in process memory", prefix)
    return MemoryRateLimiter(max_attempts, window_seconds, prefix)


_login_limiter: Optional[RateLimiter] = None


def get_login_limiter() -> RateLimiter:
    """FastAPI dependency: the shared failed-login counter."""
    global _login_limiter
    if _login_limiter is None:
        _login_limiter = build_limiter(
            settings.LOGIN_MAX_ATTEMPTS,
            settings.LOGIN_WINDOW_MINUTES * 60,
            prefix="rl:login",
        )
    return _login_limiter
