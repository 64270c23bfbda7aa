from __future__ import annotations

import asyncio
import logging
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select

from focusboard.boards import default_visualization
from focusboard.config import settings
from focusboard.db import SessionLocal
from focusboard.issue_records import create_issue_record
from focusboard.models import Issue, Project, ProjectMembership, User
from focusboard.positioning import allocate_last, visualization_groupings
from focusboard.security import hash_password
from focusboard.templates import apply_template

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@focusboard.local"
MEMBER_EMAIL = "member@focusboard.local"
DEMO_PROJECT_NAME = "Focusboard Demo"


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


def _truthy(value: str | None) -> bool:
  return (value or "").strip().lower() in ("1", "true", "yes", "y")


async def _ensure_user(db, email: str, name: str, role: str, password: str) -> tuple[User, bool]:
  res = await db.execute(select(User).where(User.email == email))
  user = res.scalar_one_or_none()
  if user:
    return user, False
  user = User(
    email=email,
    name=name,
    role=role,
    password_hash=hash_password(password),
    locale=settings.default_locale,
    timezone=settings.default_timezone,
  )
  db.add(user)
  await db.flush()
  return user, True


async def _seed_demo_project(db, admin: User, member: User) -> None:
  # Idempotent by name + owner.
  res = await db.execute(select(Project).where(Project.name == DEMO_PROJECT_NAME, Project.owner_id == admin.id))
  project = res.scalar_one_or_none()
  if not project:
    project = Project(name=DEMO_PROJECT_NAME, owner_id=admin.id)
    db.add(project)
    await db.flush()
    db.add(ProjectMembership(project_id=project.id, user_id=admin.id, role="owner"))
    db.add(ProjectMembership(project_id=project.id, user_id=member.id, role="editor"))
    viz = await default_visualization(db, project.id)
    await apply_template(db, project, viz, "basic_kanban")

  ires = await db.execute(select(Issue.id).where(Issue.project_id == project.id).limit(1))
  if ires.scalar_one_or_none():
    return

  viz = await default_visualization(db, project.id)
  groupings = await visualization_groupings(db, viz.id)
  samples = [
    ("Welcome to Focusboard", "Drag cards between columns or switch the board to group by status.", member.id, ["welcome", "demo"]),
    ("Try grouping by assignee", "Open the board settings and pick Assignee with auto-generated groups.", None, ["demo"]),
    ("Archive finished work", "Archived issues disappear from boards but stay searchable.", admin.id, ["demo"]),
  ]
  for idx, (title, description, assignee_id, labels) in enumerate(samples):
    issue = await create_issue_record(
      db,
      project_id=project.id,
      creator=admin,
      title=title,
      description=description,
      assigned_user_id=assignee_id,
      labels=labels,
    )
    if groupings:
      await allocate_last(db, groupings[min(idx, len(groupings) - 1)], issue.id)


async def seed() -> None:
  async with SessionLocal() as db:
    admin_password, admin_generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    member_password, member_generated = _bootstrap_password("SEED_MEMBER_PASSWORD")
    boot_lines: list[str] = []

    admin, created = await _ensure_user(db, ADMIN_EMAIL, "Admin", "admin", admin_password)
    if created:
      boot_lines.append(f"{ADMIN_EMAIL}={admin_password} (generated={str(admin_generated).lower()})")
    member, created = await _ensure_user(db, MEMBER_EMAIL, "Member", "member", member_password)
    if created:
      boot_lines.append(f"{MEMBER_EMAIL}={member_password} (generated={str(member_generated).lower()})")

    if _truthy(os.getenv("SEED_DEMO_PROJECT")):
      await _seed_demo_project(db, admin, member)

    await db.commit()
    if boot_lines:
      out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
      out_dir.mkdir(parents=True, exist_ok=True)
      out_file = out_dir / "bootstrap_credentials.txt"
      stamp = datetime.now(timezone.utc).isoformat()
      out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
      print("Focusboard seed credentials created:")
      for ln in boot_lines:
        print(f"  {ln}")
      print(f"Saved to {out_file}")
    else:
      logger.info("seed users already present")


def main() -> None:
  logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
  asyncio.run(seed())


if __name__ == "__main__":
  main()
