from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from contextlib import suppress
from typing import Any

import redis
from fastapi.encoders import jsonable_encoder
from redis.asyncio import Redis, from_url as redis_from_url

from focusboard.config import settings
from focusboard.models import utcnow

logger = logging.getLogger(__name__)

MESSAGE_TYPES = (
  "grouping.created",
  "grouping.updated",
  "grouping.removed",
  "groupings.reordered",
  "allocation.moved",
  "issue.created",
  "issue.updated",
  "issue.removed",
  "visualization.updated",
  "visualization.favorite_labels",
)

REDIS_CHANNEL_PREFIX = "fb:bc:"


def visualization_channel(visualization_id: str) -> str:
  return f"visualization:{visualization_id}"


def make_message(message_type: str, data: Any) -> dict[str, Any]:
  return {"type": message_type, "data": jsonable_encoder(data), "timestamp": utcnow().isoformat()}


class BroadcastHub:
  """
  Fan-out of board events to WebSocket subscribers.

  Each subscriber owns a bounded queue; a subscriber that falls behind loses
  messages instead of slowing down the publisher.

  With a Redis client the hub publishes through Redis pub/sub and a relay
  task feeds every process's local queues, so sockets held by other workers
  see the same events. Until the relay is running, or when Redis errors,
  messages are delivered in-process only.
  """

  def __init__(self, queue_size: int = 100, redis_url: str | None = None, *, client: Redis | None = None) -> None:
    self._queue_size = max(1, int(queue_size))
    self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
    self._redis: Redis | None = client
    if self._redis is None and redis_url:
      self._redis = redis_from_url(redis_url, encoding="utf-8", decode_responses=True)
    self._pubsub = None
    self._relay_task: asyncio.Task | None = None

  @property
  def relaying(self) -> bool:
    return self._relay_task is not None

  async def start(self) -> None:
    if self._redis is None or self._relay_task is not None:
      return
    pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
    try:
      await pubsub.psubscribe(f"{REDIS_CHANNEL_PREFIX}*")
    except redis.RedisError as exc:
      logger.warning("redis broadcast unavailable, delivering in-process only: %r", exc)
      await pubsub.aclose()
      return
    self._pubsub = pubsub
    self._relay_task = asyncio.create_task(self._relay(pubsub))
    logger.info("broadcast relay subscribed to %s*", REDIS_CHANNEL_PREFIX)

  async def stop(self) -> None:
    task = self._relay_task
    if task is not None:
      task.cancel()
      with suppress(asyncio.CancelledError):
        await task
    if self._pubsub is not None:
      await self._pubsub.aclose()
      self._pubsub = None

  async def _relay(self, pubsub) -> None:
    try:
      async for raw in pubsub.listen():
        if raw.get("type") != "pmessage":
          continue
        channel = str(raw["channel"])[len(REDIS_CHANNEL_PREFIX):]
        self._deliver(channel, json.loads(raw["data"]))
    except redis.RedisError as exc:
      logger.warning("broadcast relay stopped, delivering in-process only: %r", exc)
    finally:
      self._relay_task = None

  def subscribe(self, channel: str) -> asyncio.Queue:
    q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
    self._subscribers[channel].add(q)
    return q

  def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
    subs = self._subscribers.get(channel)
    if not subs:
      return
    subs.discard(queue)
    if not subs:
      del self._subscribers[channel]

  def subscriber_count(self, channel: str) -> int:
    return len(self._subscribers.get(channel, ()))

  def _deliver(self, channel: str, message: dict[str, Any]) -> int:
    delivered = 0
    for q in list(self._subscribers.get(channel, ())):
      try:
        q.put_nowait(message)
        delivered += 1
      except asyncio.QueueFull:
        logger.warning("dropping %s for slow subscriber on %s", message.get("type"), channel)
    return delivered

  async def publish(self, channel: str, message_type: str, data: Any) -> int:
    """Returns local queues reached, or relaying processes reached when going through Redis."""
    if message_type not in MESSAGE_TYPES:
      raise ValueError(f"Unknown message type: {message_type}")
    message = make_message(message_type, data)
    if self._redis is not None and self._relay_task is not None:
      try:
        return int(await self._redis.publish(f"{REDIS_CHANNEL_PREFIX}{channel}", json.dumps(message)))
      except redis.RedisError as exc:
        logger.warning("redis publish failed for %s, delivering in-process: %r", channel, exc)
    return self._deliver(channel, message)

  async def publish_visualization(self, visualization_id: str, message_type: str, data: Any) -> int:
    return await self.publish(visualization_channel(visualization_id), message_type, data)


hub = BroadcastHub(settings.broadcast_queue_size, settings.redis_url)
