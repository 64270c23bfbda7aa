from __future__ import annotations

import asyncio

import fakeredis
import pytest

from conftest import drain
from focusboard.broadcast import BroadcastHub


def _worker_hub(server: fakeredis.FakeServer) -> BroadcastHub:
  return BroadcastHub(queue_size=10, client=fakeredis.FakeAsyncRedis(server=server, decode_responses=True))


@pytest.mark.anyio
async def test_hubs_sharing_redis_reach_each_others_subscribers() -> None:
  server = fakeredis.FakeServer()
  worker_a, worker_b = _worker_hub(server), _worker_hub(server)
  await worker_a.start()
  await worker_b.start()
  try:
    assert worker_a.relaying and worker_b.relaying
    on_a = worker_a.subscribe("visualization:v1")
    on_b = worker_b.subscribe("visualization:v1")
    other_board = worker_b.subscribe("visualization:v2")

    await worker_a.publish_visualization("v1", "grouping.created", {"id": "g1"})

    got_b = await asyncio.wait_for(on_b.get(), timeout=2)
    got_a = await asyncio.wait_for(on_a.get(), timeout=2)
    assert got_b["type"] == got_a["type"] == "grouping.created"
    assert got_b["data"] == {"id": "g1"}
    assert drain(other_board) == []
  finally:
    await worker_a.stop()
    await worker_b.stop()
  assert not worker_a.relaying


@pytest.mark.anyio
async def test_hub_delivers_locally_when_redis_is_down() -> None:
  server = fakeredis.FakeServer()
  server.connected = False
  h = _worker_hub(server)
  await h.start()
  try:
    assert not h.relaying
    q = h.subscribe("visualization:v1")
    assert await h.publish_visualization("v1", "issue.updated", {"id": "i1"}) == 1
    assert drain(q)[0]["data"] == {"id": "i1"}
  finally:
    await h.stop()


@pytest.mark.anyio
async def test_hub_without_start_stays_in_process() -> None:
  h = _worker_hub(fakeredis.FakeServer())
  q = h.subscribe("visualization:v1")
  assert await h.publish_visualization("v1", "issue.created", {"id": "i1"}) == 1
  assert drain(q)[0]["type"] == "issue.created"
