from __future__ import annotations

import fakeredis
import pytest

from focusboard.rate_limit import RateLimiter


@pytest.mark.anyio
async def test_memory_window_blocks_after_limit() -> None:
  rl = RateLimiter()
  assert [rl.hit("login:ip:1", limit=2, window_seconds=60).allowed for _ in range(3)] == [True, True, False]
  assert rl.hit("login:ip:1", limit=2, window_seconds=60).retry_after >= 1
  assert rl.hit("login:ip:2", limit=2, window_seconds=60).allowed

  rl.reset_prefix("login:ip:1")
  assert rl.hit("login:ip:1", limit=2, window_seconds=60).allowed


@pytest.mark.anyio
async def test_workers_share_the_redis_budget() -> None:
  server = fakeredis.FakeServer()
  worker_a = RateLimiter(client=fakeredis.FakeRedis(server=server, decode_responses=True))
  worker_b = RateLimiter(client=fakeredis.FakeRedis(server=server, decode_responses=True))

  assert worker_a.hit("login:email:a@x", limit=2, window_seconds=60).allowed
  assert worker_b.hit("login:email:a@x", limit=2, window_seconds=60).allowed
  denied = worker_a.hit("login:email:a@x", limit=2, window_seconds=60)
  assert not denied.allowed
  assert 0 < denied.retry_after <= 60

  worker_b.reset_prefix("login:email:")
  assert worker_a.hit("login:email:a@x", limit=2, window_seconds=60).allowed


@pytest.mark.anyio
async def test_redis_outage_falls_back_to_memory() -> None:
  server = fakeredis.FakeServer()
  server.connected = False
  rl = RateLimiter(client=fakeredis.FakeRedis(server=server, decode_responses=True))
  assert [rl.hit("register:ip:1", limit=1, window_seconds=60).allowed for _ in range(2)] == [True, False]
