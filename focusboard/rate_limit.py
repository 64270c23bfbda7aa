from __future__ import annotations

import logging
import time
from threading import Lock
from typing import NamedTuple

import redis

from focusboard.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "fb:rl:"
# Expired in-memory windows are swept once this many keys are tracked.
PRUNE_THRESHOLD = 1024


class Decision(NamedTuple):
  allowed: bool
  retry_after: int


class RateLimiter:
  """
  Counts auth attempts per key in fixed windows.

  Counters live in Redis when `redis_url` is set, so every API worker shares
  one budget per IP or email. A Redis error falls back to this process's own
  windows until Redis answers again.
  """

  def __init__(self, redis_url: str | None = None, *, client: redis.Redis | None = None) -> None:
    self._lock = Lock()
    self._windows: dict[str, tuple[float, int]] = {}
    self._redis = client
    if self._redis is None and redis_url:
      self._redis = redis.Redis.from_url(redis_url, decode_responses=True)

  def hit(self, key: str, *, limit: int, window_seconds: int) -> Decision:
    if self._redis is not None:
      try:
        return self._hit_redis(key, limit, window_seconds)
      except redis.RedisError as exc:
        logger.warning("redis rate limiter unavailable, counting %s in memory: %r", key, exc)
    return self._hit_memory(key, limit, window_seconds)

  def _hit_redis(self, key: str, limit: int, window_seconds: int) -> Decision:
    rk = f"{KEY_PREFIX}{key}"
    with self._redis.pipeline(transaction=True) as pipe:
      # NX keeps the first expiry, so the window never slides.
      pipe.set(rk, 0, ex=window_seconds, nx=True)
      pipe.incr(rk)
      pipe.ttl(rk)
      _, count, ttl = pipe.execute()
    if int(count) <= limit:
      return Decision(True, 0)
    return Decision(False, int(ttl) if int(ttl) > 0 else window_seconds)

  def _hit_memory(self, key: str, limit: int, window_seconds: int) -> Decision:
    now = time.monotonic()
    with self._lock:
      if len(self._windows) >= PRUNE_THRESHOLD:
        self._windows = {k: w for k, w in self._windows.items() if w[0] > now}
      reset_at, count = self._windows.get(key, (0.0, 0))
      if now >= reset_at:
        reset_at, count = now + window_seconds, 0
      if count >= limit:
        return Decision(False, max(1, int(reset_at - now)))
      self._windows[key] = (reset_at, count + 1)
      return Decision(True, 0)

  def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      self._windows = {k: w for k, w in self._windows.items() if not k.startswith(prefix)}
    if self._redis is None:
      return
    try:
      keys = list(self._redis.scan_iter(match=f"{KEY_PREFIX}{prefix}*"))
      if keys:
        self._redis.delete(*keys)
    except redis.RedisError as exc:
      logger.warning("redis rate limiter unavailable while resetting %r: %r", prefix, exc)


limiter = RateLimiter(settings.redis_url)
