from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, MEMBER_EMAIL, default_board, login
from focusboard.seed import DEMO_PROJECT_NAME, seed


@pytest.mark.anyio
async def test_seed_demo_project_is_idempotent(client: AsyncClient, monkeypatch, tmp_path) -> None:
  monkeypatch.setenv("SEED_DEMO_PROJECT", "1")
  monkeypatch.setenv("BOOTSTRAP_CREDENTIALS_DIR", str(tmp_path))
  await seed()
  await seed()

  # Users already exist, so no credentials file is written.
  assert not (tmp_path / "bootstrap_credentials.txt").exists()

  await login(client, ADMIN_EMAIL, "admin1234")
  projects = (await client.get("/projects")).json()
  demo = [p for p in projects if p["name"] == DEMO_PROJECT_NAME]
  assert len(demo) == 1

  issues = (await client.get(f"/projects/{demo[0]['id']}/issues")).json()
  assert issues["count"] == 3

  board = await default_board(client, demo[0]["id"])
  assert [c["grouping"]["title"] for c in board["columns"]] == ["To Do", "In Progress", "Done"]
  assert [len(c["issues"]) for c in board["columns"]] == [1, 1, 1]

  await client.post("/auth/logout")
  await login(client, MEMBER_EMAIL, "member1234")
  member_projects = (await client.get("/projects")).json()
  assert [p["role"] for p in member_projects if p["name"] == DEMO_PROJECT_NAME] == ["editor"]
