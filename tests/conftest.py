from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./focusboard_test.db")

from focusboard.broadcast import hub
from focusboard.config import settings
from focusboard.db import SessionLocal, engine
from focusboard.main import app
from focusboard.models import Base, User
from focusboard.rate_limit import limiter
from focusboard.security import hash_password

ADMIN_EMAIL = "admin@focusboard.local"
MEMBER_EMAIL = "member@focusboard.local"

_password_hashes: dict[str, str] = {}


def _hashed(password: str) -> str:
  # bcrypt is slow on purpose; hash each seed password once per run.
  if password not in _password_hashes:
    _password_hashes[password] = hash_password(password)
  return _password_hashes[password]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    db.add(User(email=ADMIN_EMAIL, name="Admin", role="admin", password_hash=_hashed("admin1234"), locale="en", timezone="UTC"))
    db.add(User(email=MEMBER_EMAIL, name="Member", role="member", password_hash=_hashed("member1234"), locale="en", timezone="UTC"))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. focusboard_test)."
    )
  await _reset_db()
  yield
  await engine.dispose()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, email: str, password: str, *, rememberMe: bool = False) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password, "rememberMe": rememberMe})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "fb_session=" in cookie
  return res.json()


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id


async def create_project(client: AsyncClient, name: str = "Apollo", *, template: str | None = "basic_kanban") -> dict:
  res = await client.post("/projects", json={"name": name, "template": template})
  assert res.status_code == 200, res.text
  return res.json()


async def default_board(client: AsyncClient, project_id: str) -> dict:
  res = await client.get(f"/projects/{project_id}/visualization")
  assert res.status_code == 200, res.text
  board = await client.get(f"/visualizations/{res.json()['id']}")
  assert board.status_code == 200, board.text
  return board.json()


async def add_member(client: AsyncClient, project_id: str, email: str, role: str) -> dict:
  res = await client.post(f"/projects/{project_id}/members", json={"email": email, "role": role})
  assert res.status_code == 200, res.text
  return res.json()


def drain(queue) -> list[dict]:
  out = []
  while not queue.empty():
    out.append(queue.get_nowait())
  return out


@pytest.fixture
def subscribe():
  """Subscribe to a visualization channel for the duration of a test."""
  subscriptions = []

  def _subscribe(visualization_id: str):
    channel = f"visualization:{visualization_id}"
    q = hub.subscribe(channel)
    subscriptions.append((channel, q))
    return q

  yield _subscribe
  for channel, q in subscriptions:
    hub.unsubscribe(channel, q)
