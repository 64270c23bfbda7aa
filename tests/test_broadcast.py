from __future__ import annotations

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, create_project, default_board, drain, login
from focusboard.broadcast import BroadcastHub, make_message, visualization_channel
from focusboard.routers.realtime import _close_code


@pytest.mark.anyio
async def test_hub_delivers_to_channel_subscribers_only() -> None:
  h = BroadcastHub(queue_size=10)
  a = h.subscribe("visualization:a")
  b = h.subscribe("visualization:b")

  assert await h.publish("visualization:a", "grouping.created", {"id": "g1"}) == 1
  assert drain(a)[0]["data"] == {"id": "g1"}
  assert drain(b) == []


@pytest.mark.anyio
async def test_hub_drops_messages_for_full_queues() -> None:
  h = BroadcastHub(queue_size=2)
  q = h.subscribe("visualization:x")
  delivered = [await h.publish("visualization:x", "issue.updated", {"n": n}) for n in range(4)]
  assert delivered == [1, 1, 0, 0]
  assert [m["data"]["n"] for m in drain(q)] == [0, 1]


@pytest.mark.anyio
async def test_hub_rejects_unknown_message_types() -> None:
  h = BroadcastHub()
  with pytest.raises(ValueError):
    await h.publish("visualization:x", "board.exploded", {})


@pytest.mark.anyio
async def test_unsubscribe_forgets_empty_channels() -> None:
  h = BroadcastHub()
  q = h.subscribe(visualization_channel("v1"))
  assert h.subscriber_count("visualization:v1") == 1
  h.unsubscribe("visualization:v1", q)
  assert h.subscriber_count("visualization:v1") == 0
  assert await h.publish_visualization("v1", "issue.created", {}) == 0


@pytest.mark.anyio
async def test_message_envelope() -> None:
  msg = make_message("issue.removed", {"id": "i1"})
  assert set(msg.keys()) == {"type", "data", "timestamp"}
  assert msg["type"] == "issue.removed"


@pytest.mark.anyio
async def test_board_writes_publish_after_commit(client: AsyncClient, subscribe) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  board = await default_board(client, project["id"])
  viz_id = board["visualization"]["id"]
  todo, done = board["columns"][0]["grouping"], board["columns"][2]["grouping"]
  q = subscribe(viz_id)

  created = await client.post(f"/visualizations/{viz_id}/groupings", json={"title": "Later"})
  messages = drain(q)
  assert [m["type"] for m in messages] == ["grouping.created"]
  assert messages[0]["data"]["id"] == created.json()["id"]

  card = (await client.post(f"/visualizations/{viz_id}/issues", json={"title": "Live", "groupingId": todo["id"]})).json()
  assert [m["type"] for m in drain(q)] == ["issue.created", "allocation.moved"]

  await client.post(f"/visualizations/{viz_id}/allocations/move", json={"issueId": card["id"], "groupingId": done["id"], "position": 0})
  moved = drain(q)
  assert [m["type"] for m in moved] == ["allocation.moved", "issue.updated"]
  assert moved[0]["data"]["fromGroupingId"] == todo["id"]
  assert moved[0]["data"]["groupingId"] == done["id"]

  await client.post(f"/visualizations/{viz_id}/groupings/move", json={"groupingId": done["id"], "position": 0})
  reordered = drain(q)
  assert reordered[0]["type"] == "groupings.reordered"
  assert reordered[0]["data"]["groupingIds"][0] == done["id"]

  await client.put(f"/issues/{card['id']}/archive")
  await client.delete(f"/issues/{card['id']}")
  tail = drain(q)
  assert [m["type"] for m in tail] == ["issue.updated", "issue.removed"]
  assert tail[-1]["data"] == {"id": card["id"], "projectId": project["id"]}


@pytest.mark.anyio
async def test_visualization_updates_are_published(client: AsyncClient, subscribe) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  viz_id = (await default_board(client, project["id"]))["visualization"]["id"]
  q = subscribe(viz_id)

  await client.patch(f"/visualizations/{viz_id}", json={"favoriteIssueLabels": ["bug"]})
  assert [m["type"] for m in drain(q)] == ["visualization.favorite_labels"]

  await client.patch(f"/visualizations/{viz_id}", json={"groupBy": "status", "autoGenerateGroups": True})
  updated = drain(q)
  assert [m["type"] for m in updated] == ["visualization.updated"]
  assert updated[0]["data"]["groupBy"] == "status"

  await client.post(f"/projects/{project['id']}/issue-statuses", json={"name": "QA", "color": "#333333"})
  assert [m["type"] for m in drain(q)] == ["visualization.updated"]


@pytest.mark.anyio
async def test_failed_write_publishes_nothing(client: AsyncClient, subscribe) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  viz_id = (await default_board(client, project["id"]))["visualization"]["id"]
  q = subscribe(viz_id)

  res = await client.post(f"/visualizations/{viz_id}/issues", json={"title": "x", "groupingId": "00000000-0000-0000-0000-000000000000"})
  assert res.status_code == 404
  assert drain(q) == []


@pytest.mark.anyio
async def test_websocket_close_codes() -> None:
  assert _close_code(HTTPException(status_code=401, detail="Not authenticated")) == 4401
  assert _close_code(HTTPException(status_code=403, detail="User disabled")) == 4401
  assert _close_code(HTTPException(status_code=403, detail="No project access")) == 4403
  assert _close_code(HTTPException(status_code=404, detail="Visualization not found")) == 4404
