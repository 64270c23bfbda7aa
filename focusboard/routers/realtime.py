from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from focusboard.broadcast import hub, visualization_channel
from focusboard.db import SessionLocal
from focusboard.deps import load_session_user
from focusboard.models import utcnow
from focusboard.policies import load_visualization
from focusboard.security import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404


def _close_code(exc: HTTPException) -> int:
  if exc.status_code == status.HTTP_404_NOT_FOUND:
    return CLOSE_NOT_FOUND
  if exc.status_code == status.HTTP_403_FORBIDDEN and exc.detail in {"No project access", "Insufficient role"}:
    return CLOSE_FORBIDDEN
  return CLOSE_UNAUTHENTICATED


async def _authorize(websocket: WebSocket, visualization_id: str) -> str:
  """Return the user id allowed to watch the visualization, or raise HTTPException."""
  async with SessionLocal() as db:
    user = await load_session_user(db, websocket.cookies.get(SESSION_COOKIE_NAME))
    await load_visualization(visualization_id, "viewer", user, db)
    return user.id


async def _receive_loop(websocket: WebSocket) -> None:
  while True:
    msg = await websocket.receive_json()
    if isinstance(msg, dict) and msg.get("type") == "ping":
      await websocket.send_json({"type": "pong", "timestamp": utcnow().isoformat()})


async def _forward_loop(websocket: WebSocket, queue: asyncio.Queue) -> None:
  while True:
    message = await queue.get()
    await websocket.send_json(message)


@router.websocket("/ws/visualizations/{visualization_id}")
async def visualization_stream(websocket: WebSocket, visualization_id: str) -> None:
  await websocket.accept()
  try:
    user_id = await _authorize(websocket, visualization_id)
  except HTTPException as exc:
    code = _close_code(exc)
    logger.info("ws rejected visualization=%s code=%d reason=%s", visualization_id, code, exc.detail)
    await websocket.close(code=code, reason=str(exc.detail))
    return

  channel = visualization_channel(visualization_id)
  queue = hub.subscribe(channel)
  logger.info("ws connected visualization=%s user=%s subscribers=%d", visualization_id, user_id, hub.subscriber_count(channel))
  tasks = [
    asyncio.create_task(_receive_loop(websocket)),
    asyncio.create_task(_forward_loop(websocket, queue)),
  ]
  try:
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for t in pending:
      t.cancel()
    for t in done:
      exc = t.exception()
      if exc and not isinstance(exc, WebSocketDisconnect):
        logger.warning("ws stream error visualization=%s user=%s: %r", visualization_id, user_id, exc)
  finally:
    for t in tasks:
      t.cancel()
    hub.unsubscribe(channel, queue)
    logger.info("ws disconnected visualization=%s user=%s", visualization_id, user_id)
