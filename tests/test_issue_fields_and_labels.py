from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, create_project, login


@pytest.mark.anyio
async def test_status_create_appends_and_default_is_exclusive(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]

  res = await client.post(f"/projects/{pid}/issue-statuses", json={"name": "Review", "color": "#abcdef", "isDefault": True})
  assert res.status_code == 200, res.text
  review = res.json()
  assert review["position"] == 4
  assert review["color"] == "#ABCDEF"

  statuses = (await client.get(f"/projects/{pid}/issue-statuses")).json()
  assert [s["name"] for s in statuses if s["isDefault"]] == ["Review"]

  dup = await client.post(f"/projects/{pid}/issue-statuses", json={"name": "review", "color": "#000000"})
  assert dup.status_code == 409
  bad_color = await client.post(f"/projects/{pid}/issue-statuses", json={"name": "Odd", "color": "blue"})
  assert bad_color.status_code == 422


@pytest.mark.anyio
async def test_first_status_in_empty_project_starts_at_one(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client, template="empty")
  res = await client.post(f"/projects/{project['id']}/issue-statuses", json={"name": "Open", "color": "#111111"})
  assert res.json()["position"] == 1


@pytest.mark.anyio
async def test_first_status_and_type_become_project_defaults(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  pid = (await create_project(client, template="empty"))["id"]

  open_status = (await client.post(f"/projects/{pid}/issue-statuses", json={"name": "Open", "color": "#111111"})).json()
  closed = (await client.post(f"/projects/{pid}/issue-statuses", json={"name": "Closed", "color": "#222222"})).json()
  task = (await client.post(f"/projects/{pid}/issue-types", json={"name": "Task", "icon": "📋", "color": "#333333"})).json()
  bug = (await client.post(f"/projects/{pid}/issue-types", json={"name": "Bug", "icon": "🐛", "color": "#444444"})).json()
  assert [open_status["isDefault"], closed["isDefault"]] == [True, False]
  assert [task["isDefault"], bug["isDefault"]] == [True, False]

  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Picks defaults"})).json()
  assert issue["issueStatusId"] == open_status["id"]
  assert issue["issueTypeId"] == task["id"]


@pytest.mark.anyio
async def test_status_reorder_requires_every_id(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]
  statuses = (await client.get(f"/projects/{pid}/issue-statuses")).json()
  ids = [s["id"] for s in statuses]

  partial = await client.post(f"/projects/{pid}/issue-statuses/reorder", json={"ids": ids[:2]})
  assert partial.status_code == 400

  res = await client.post(f"/projects/{pid}/issue-statuses/reorder", json={"ids": list(reversed(ids))})
  assert res.status_code == 200
  reordered = (await client.get(f"/projects/{pid}/issue-statuses")).json()
  assert [s["name"] for s in reordered] == ["Done", "In Progress", "To Do"]
  assert [s["position"] for s in reordered] == [1, 2, 3]


@pytest.mark.anyio
async def test_deleting_status_clears_issue_reference(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]
  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Uses default"})).json()
  assert issue["issueStatusId"]

  res = await client.delete(f"/issue-statuses/{issue['issueStatusId']}")
  assert res.status_code == 200
  assert (await client.get(f"/issues/{issue['id']}")).json()["issueStatusId"] is None


@pytest.mark.anyio
async def test_issue_types_crud(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]

  res = await client.post(f"/projects/{pid}/issue-types", json={"name": "Chore", "icon": "🧹", "color": "#123456"})
  assert res.status_code == 200, res.text
  chore = res.json()
  assert chore["position"] == 4

  updated = await client.patch(f"/issue-types/{chore['id']}", json={"isDefault": True, "icon": "🔧"})
  assert updated.status_code == 200
  types = (await client.get(f"/projects/{pid}/issue-types")).json()
  assert [t["name"] for t in types if t["isDefault"]] == ["Chore"]
  assert types[-1]["icon"] == "🔧"

  clash = await client.patch(f"/issue-types/{chore['id']}", json={"name": "bug"})
  assert clash.status_code == 409
  assert (await client.delete(f"/issue-types/{chore['id']}")).status_code == 200
  assert len((await client.get(f"/projects/{pid}/issue-types")).json()) == 3


@pytest.mark.anyio
async def test_labels_are_unique_per_project_ignoring_case(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]

  res = await client.post(f"/projects/{pid}/labels", json={"title": "  Backend ", "hexColor": "#00ff00"})
  assert res.status_code == 200, res.text
  label = res.json()
  assert label["title"] == "Backend"
  assert label["hexColor"] == "#00FF00"

  dup = await client.post(f"/projects/{pid}/labels", json={"title": "backend"})
  assert dup.status_code == 409

  renamed = await client.patch(f"/labels/{label['id']}", json={"title": "API"})
  assert renamed.status_code == 200
  assert renamed.json()["title"] == "API"


@pytest.mark.anyio
async def test_deleting_label_detaches_it_from_issues(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]
  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Tagged", "labels": ["ui"]})).json()
  label_id = issue["labels"][0]["id"]

  assert (await client.delete(f"/labels/{label_id}")).status_code == 200
  assert (await client.get(f"/issues/{issue['id']}")).json()["labels"] == []
  assert (await client.get(f"/projects/{pid}/labels")).json() == []
