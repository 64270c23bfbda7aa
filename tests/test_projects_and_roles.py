from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, MEMBER_EMAIL, add_member, create_project, default_board, login, seeded_user_id


@pytest.mark.anyio
async def test_create_project_from_template(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client, "Apollo")
  assert project["role"] == "owner"
  assert project["archived"] is False

  statuses = (await client.get(f"/projects/{project['id']}/issue-statuses")).json()
  assert [(s["name"], s["position"]) for s in statuses] == [("To Do", 1), ("In Progress", 2), ("Done", 3)]
  assert [s["isDefault"] for s in statuses] == [True, False, False]
  assert statuses[2]["isClosed"] is True

  types = (await client.get(f"/projects/{project['id']}/issue-types")).json()
  assert [t["name"] for t in types] == ["Task", "Bug", "Feature"]

  board = await default_board(client, project["id"])
  assert board["visualization"]["groupBy"] == "manual"
  assert [(c["grouping"]["title"], c["grouping"]["position"]) for c in board["columns"]] == [
    ("To Do", 0),
    ("In Progress", 1),
    ("Done", 2),
  ]

  members = (await client.get(f"/projects/{project['id']}/members")).json()
  assert [(m["email"], m["role"], m["isOwner"]) for m in members] == [(ADMIN_EMAIL, "owner", True)]


@pytest.mark.anyio
async def test_empty_template_and_unknown_template(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client, "Bare", template="empty")
  assert (await client.get(f"/projects/{project['id']}/issue-statuses")).json() == []
  board = await default_board(client, project["id"])
  assert board["columns"] == []

  res = await client.post("/projects", json={"name": "X", "template": "scrum_deluxe"})
  assert res.status_code == 400


@pytest.mark.anyio
async def test_outsider_has_no_access(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)

  await login(client, MEMBER_EMAIL, "member1234")
  assert (await client.get("/projects")).json() == []
  res = await client.get(f"/projects/{project['id']}")
  assert res.status_code == 403
  assert res.json()["detail"] == "No project access"
  assert (await client.get("/projects/not-a-uuid")).status_code == 404


@pytest.mark.anyio
async def test_viewer_can_read_but_not_write(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  await add_member(client, project["id"], MEMBER_EMAIL, "viewer")

  await login(client, MEMBER_EMAIL, "member1234")
  listed = (await client.get("/projects")).json()
  assert [(p["name"], p["role"]) for p in listed] == [("Apollo", "viewer")]
  assert (await client.get(f"/projects/{project['id']}/issues")).status_code == 200

  res = await client.post(f"/projects/{project['id']}/issues", json={"title": "Nope"})
  assert res.status_code == 403
  assert res.json()["detail"] == "Insufficient role"
  assert (await client.patch(f"/projects/{project['id']}", json={"name": "Renamed"})).status_code == 403


@pytest.mark.anyio
async def test_editor_can_write_but_not_manage_members(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  await add_member(client, project["id"], MEMBER_EMAIL, "editor")

  await login(client, MEMBER_EMAIL, "member1234")
  res = await client.post(f"/projects/{project['id']}/issues", json={"title": "Editor issue"})
  assert res.status_code == 200, res.text
  renamed = await client.patch(f"/projects/{project['id']}", json={"name": "Apollo 2"})
  assert renamed.status_code == 200
  assert renamed.json()["name"] == "Apollo 2"

  res = await client.post(f"/projects/{project['id']}/members", json={"email": ADMIN_EMAIL, "role": "viewer"})
  assert res.status_code == 403
  assert res.json()["detail"] == "Only the project owner can do this"


@pytest.mark.anyio
async def test_member_management_rules(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]

  missing = await client.post(f"/projects/{pid}/members", json={"email": "ghost@example.com", "role": "viewer"})
  assert missing.status_code == 404
  member = await add_member(client, pid, MEMBER_EMAIL, "viewer")
  dup = await client.post(f"/projects/{pid}/members", json={"email": MEMBER_EMAIL, "role": "editor"})
  assert dup.status_code == 409

  promoted = await client.patch(f"/projects/{pid}/members/{member['id']}", json={"role": "editor"})
  assert promoted.status_code == 200
  assert promoted.json()["role"] == "editor"

  members = (await client.get(f"/projects/{pid}/members")).json()
  owner_membership = next(m for m in members if m["isOwner"])
  demote = await client.patch(f"/projects/{pid}/members/{owner_membership['id']}", json={"role": "viewer"})
  assert demote.status_code == 400
  remove_owner = await client.delete(f"/projects/{pid}/members/{owner_membership['id']}")
  assert remove_owner.status_code == 400


@pytest.mark.anyio
async def test_removing_member_unassigns_their_issues(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]
  member = await add_member(client, pid, MEMBER_EMAIL, "editor")
  member_id = await seeded_user_id(MEMBER_EMAIL)

  issue = (await client.post(f"/projects/{pid}/issues", json={"title": "Mine", "assignedUserId": member_id})).json()
  assert issue["assignedUserId"] == member_id

  res = await client.delete(f"/projects/{pid}/members/{member['id']}")
  assert res.status_code == 200, res.text
  refreshed = (await client.get(f"/issues/{issue['id']}")).json()
  assert refreshed["assignedUserId"] is None


@pytest.mark.anyio
async def test_project_delete_requires_archive_and_owner(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  pid = project["id"]
  await add_member(client, pid, MEMBER_EMAIL, "editor")
  await client.post(f"/projects/{pid}/issues", json={"title": "Some work", "labels": ["bug"]})

  res = await client.delete(f"/projects/{pid}")
  assert res.status_code == 409

  await login(client, MEMBER_EMAIL, "member1234")
  archived = await client.put(f"/projects/{pid}/archive")
  assert archived.status_code == 200
  assert archived.json()["archived"] is True
  assert (await client.delete(f"/projects/{pid}")).status_code == 403

  await login(client, ADMIN_EMAIL, "admin1234")
  assert (await client.delete(f"/projects/{pid}")).status_code == 200
  assert (await client.get(f"/projects/{pid}")).status_code == 404


@pytest.mark.anyio
async def test_project_list_puts_archived_last(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  a = await create_project(client, "Alpha", template="empty")
  await create_project(client, "Beta", template="empty")
  await client.put(f"/projects/{a['id']}/archive")

  names = [p["name"] for p in (await client.get("/projects")).json()]
  assert names == ["Beta", "Alpha"]
  active = [p["name"] for p in (await client.get("/projects", params={"archived": "false"})).json()]
  assert active == ["Beta"]


@pytest.mark.anyio
async def test_audit_feed_is_scoped_to_project(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  project = await create_project(client)
  res = await client.get("/audit", params={"projectId": project["id"]})
  assert res.status_code == 200
  assert "project.created" in [e["eventType"] for e in res.json()]

  await login(client, MEMBER_EMAIL, "member1234")
  assert (await client.get("/audit", params={"projectId": project["id"]})).status_code == 403


@pytest.mark.anyio
async def test_audit_feed_hides_own_events_after_losing_access(client: AsyncClient) -> None:
  await login(client, ADMIN_EMAIL, "admin1234")
  pid = (await create_project(client))["id"]
  membership = await add_member(client, pid, MEMBER_EMAIL, "editor")

  await login(client, MEMBER_EMAIL, "member1234")
  issue = await client.post(f"/projects/{pid}/issues", json={"title": "Made by member"})
  assert issue.status_code == 200
  own = [e for e in (await client.get("/audit")).json() if e["projectId"] == pid]
  assert "issue.created" in [e["eventType"] for e in own]

  await login(client, ADMIN_EMAIL, "admin1234")
  assert (await client.delete(f"/projects/{pid}/members/{membership['id']}")).status_code == 200

  await login(client, MEMBER_EMAIL, "member1234")
  feed = (await client.get("/audit")).json()
  assert [e for e in feed if e["projectId"] == pid] == []
  assert "auth.login.success" in [e["eventType"] for e in feed]
