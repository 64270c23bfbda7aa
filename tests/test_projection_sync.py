from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, MEMBER_EMAIL, add_member, create_project, default_board, login, seeded_user_id


async def _project_board(client: AsyncClient, **project_kwargs) -> tuple[str, str]:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client, **project_kwargs)
  board = await default_board(client, project["id"])
  return project["id"], board["visualization"]["id"]


async def _group_by(client: AsyncClient, viz_id: str, group_by: str) -> dict:
  res = await client.patch(f"/visualizations/{viz_id}", json={"groupBy": group_by, "autoGenerateGroups": True})
  assert res.status_code == 200, res.text
  board = await client.get(f"/visualizations/{viz_id}")
  return board.json()


def _columns(board: dict) -> list[tuple[str, int, bool]]:
  return [(c["grouping"]["title"], c["grouping"]["position"], c["grouping"]["autoGenerated"]) for c in board["columns"]]


@pytest.mark.anyio
async def test_group_by_status_generates_columns_in_status_order(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  board = await _group_by(client, viz_id, "status")

  assert board["visualization"]["projectionMode"] is True
  assert _columns(board) == [("To Do", 0, True), ("In Progress", 1, True), ("Done", 2, True)]
  keys = [c["grouping"]["projectionKey"] for c in board["columns"]]
  statuses = (await client.get(f"/projects/{pid}/issue-statuses")).json()
  assert keys == [f"status_{s['id']}" for s in statuses]


@pytest.mark.anyio
async def test_status_changes_resync_columns(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  await _group_by(client, viz_id, "status")

  created = (await client.post(f"/projects/{pid}/issue-statuses", json={"name": "QA", "color": "#222222"})).json()
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert [c["grouping"]["title"] for c in board["columns"]] == ["To Do", "In Progress", "Done", "QA"]

  await client.patch(f"/issue-statuses/{created['id']}", json={"name": "Quality"})
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert board["columns"][-1]["grouping"]["title"] == "Quality"

  await client.delete(f"/issue-statuses/{created['id']}")
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert [c["grouping"]["title"] for c in board["columns"]] == ["To Do", "In Progress", "Done"]


@pytest.mark.anyio
async def test_projected_issues_follow_status(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  board = await _group_by(client, viz_id, "status")
  statuses = (await client.get(f"/projects/{pid}/issue-statuses")).json()

  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Moves with status"})).json()
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert [i["title"] for i in board["columns"][0]["issues"]] == ["Moves with status"]

  await client.patch(f"/issues/{issue['id']}", json={"issueStatusId": statuses[2]["id"]})
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert board["columns"][0]["issues"] == []
  assert [i["title"] for i in board["columns"][2]["issues"]] == ["Moves with status"]


@pytest.mark.anyio
async def test_moving_card_applies_projection(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  board = await _group_by(client, viz_id, "status")
  done_col = board["columns"][2]["grouping"]
  statuses = (await client.get(f"/projects/{pid}/issue-statuses")).json()
  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Ship it"})).json()

  res = await client.post(f"/visualizations/{viz_id}/allocations/move", json={"issueId": issue["id"], "groupingId": done_col["id"], "position": 0})
  assert res.status_code == 200, res.text
  assert (await client.get(f"/issues/{issue['id']}")).json()["issueStatusId"] == statuses[2]["id"]


@pytest.mark.anyio
async def test_group_by_assignee_adds_unassigned_column(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  await add_member(client, pid, MEMBER_EMAIL, "editor")
  member_id = await seeded_user_id(MEMBER_EMAIL)
  await client.post(f"/projects/{pid}/issues", json={"title": "Member work", "assignedUserId": member_id})
  await client.post(f"/projects/{pid}/issues", json={"title": "Nobody's work"})

  board = await _group_by(client, viz_id, "assignee")
  assert [c["grouping"]["title"] for c in board["columns"]] == ["Admin", "Member", "Unassigned"]
  assert [i["title"] for i in board["columns"][1]["issues"]] == ["Member work"]
  assert [i["title"] for i in board["columns"][2]["issues"]] == ["Nobody's work"]

  unassigned = board["columns"][2]["grouping"]
  assert unassigned["projectionKey"] == "assignee_unassigned"
  member_issue = board["columns"][1]["issues"][0]
  res = await client.post(f"/visualizations/{viz_id}/allocations/move", json={"issueId": member_issue["id"], "groupingId": unassigned["id"]})
  assert res.status_code == 200, res.text
  assert (await client.get(f"/issues/{member_issue['id']}")).json()["assignedUserId"] is None


@pytest.mark.anyio
async def test_member_removal_drops_assignee_column(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  member = await add_member(client, pid, MEMBER_EMAIL, "editor")
  await _group_by(client, viz_id, "assignee")

  await client.delete(f"/projects/{pid}/members/{member['id']}")
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert [c["grouping"]["title"] for c in board["columns"]] == ["Admin", "Unassigned"]


@pytest.mark.anyio
async def test_group_by_type_uses_icon_titles(client: AsyncClient) -> None:
  _, viz_id = await _project_board(client)
  board = await _group_by(client, viz_id, "type")
  assert [c["grouping"]["title"] for c in board["columns"]] == ["📋 Task", "🐛 Bug", "✨ Feature"]


@pytest.mark.anyio
async def test_group_by_label_and_move_adds_label(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  await client.post(f"/projects/{pid}/labels", json={"title": "frontend"})
  board = await _group_by(client, viz_id, "label")
  assert [c["grouping"]["title"] for c in board["columns"]] == ["frontend"]

  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Button", "labels": ["backend"]})).json()
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  assert [c["grouping"]["title"] for c in board["columns"]] == ["frontend", "backend"]

  frontend = board["columns"][0]["grouping"]
  await client.post(f"/visualizations/{viz_id}/allocations/move", json={"issueId": issue["id"], "groupingId": frontend["id"]})
  labels = [l["title"] for l in (await client.get(f"/issues/{issue['id']}")).json()["labels"]]
  assert labels == ["backend", "frontend"]


@pytest.mark.anyio
async def test_manual_groupings_keep_their_order_after_projected_ones(client: AsyncClient) -> None:
  _, viz_id = await _project_board(client)
  await _group_by(client, viz_id, "status")

  switched = await client.patch(f"/visualizations/{viz_id}", json={"groupBy": "manual"})
  assert switched.json()["projectionMode"] is False
  board = (await client.get(f"/visualizations/{viz_id}")).json()
  titles = [c["grouping"]["title"] for c in board["columns"]]
  # projected status columns first, then the template's manual columns
  assert titles == ["To Do", "In Progress", "Done", "To Do", "In Progress", "Done"]
  assert [c["grouping"]["autoGenerated"] for c in board["columns"]] == [True, True, True, False, False, False]
  assert [c["grouping"]["position"] for c in board["columns"]] == list(range(6))


@pytest.mark.anyio
async def test_explicit_sync_rejects_manual_board(client: AsyncClient) -> None:
  _, viz_id = await _project_board(client)
  res = await client.post(f"/visualizations/{viz_id}/sync")
  assert res.status_code == 400

  await client.patch(f"/visualizations/{viz_id}", json={"groupBy": "status"})
  res = await client.post(f"/visualizations/{viz_id}/sync")
  assert res.status_code == 200, res.text
  assert len(res.json()["columns"]) == 3


@pytest.mark.anyio
async def test_grouped_issues_and_grid(client: AsyncClient) -> None:
  pid, viz_id = await _project_board(client)
  await client.post(f"/projects/{pid}/issues", json={"title": "Visible"})
  hidden = (await client.post(f"/projects/{pid}/issues", json={"title": "Archived"})).json()
  await client.put(f"/issues/{hidden['id']}/archive")

  manual = await client.get(f"/visualizations/{viz_id}/grouped-issues")
  assert manual.json() == []

  await client.patch(f"/visualizations/{viz_id}", json={"groupBy": "status"})
  grouped = (await client.get(f"/visualizations/{viz_id}/grouped-issues")).json()
  assert [g["title"] for g in grouped] == ["To Do", "In Progress", "Done"]
  assert [i["title"] for i in grouped[0]["issues"]] == ["Visible"]

  grid = (await client.get(f"/visualizations/{viz_id}/grid")).json()
  assert [i["title"] for i in grid["issues"]] == ["Visible"]
  assert len(grid["statuses"]) == 3


@pytest.mark.anyio
async def test_favorite_labels_are_cleaned(client: AsyncClient) -> None:
  _, viz_id = await _project_board(client)
  res = await client.patch(f"/visualizations/{viz_id}", json={"favoriteIssueLabels": ["bug", " Bug ", "", "ui"]})
  assert res.status_code == 200
  assert res.json()["favoriteIssueLabels"] == ["bug", "ui"]
