from __future__ import annotations

from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.labeling import set_labels_list
from focusboard.models import Issue, IssueStatus, IssueType, ProjectMembership, User, is_uuid


def bad_id(name: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {name}")


async def check_assignee(db: AsyncSession, project_id: str, user_id: str) -> None:
  if not is_uuid(user_id):
    raise bad_id("assignedUserId")
  res = await db.execute(
    select(ProjectMembership.id).where(ProjectMembership.project_id == project_id, ProjectMembership.user_id == user_id)
  )
  if not res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee must be a project member")


async def check_status(db: AsyncSession, project_id: str, status_id: str) -> None:
  if not is_uuid(status_id):
    raise bad_id("issueStatusId")
  s = await db.get(IssueStatus, status_id)
  if not s or s.project_id != project_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Status does not belong to this project")


async def check_type(db: AsyncSession, project_id: str, type_id: str) -> None:
  if not is_uuid(type_id):
    raise bad_id("issueTypeId")
  t = await db.get(IssueType, type_id)
  if not t or t.project_id != project_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Type does not belong to this project")


async def default_status_id(db: AsyncSession, project_id: str) -> str | None:
  res = await db.execute(
    select(IssueStatus.id).where(IssueStatus.project_id == project_id, IssueStatus.is_default.is_(True)).order_by(IssueStatus.position.asc())
  )
  return res.scalars().first()


async def default_type_id(db: AsyncSession, project_id: str) -> str | None:
  res = await db.execute(
    select(IssueType.id).where(IssueType.project_id == project_id, IssueType.is_default.is_(True)).order_by(IssueType.position.asc())
  )
  return res.scalars().first()


async def create_issue_record(
  db: AsyncSession,
  *,
  project_id: str,
  creator: User,
  title: str,
  description: str | None = None,
  due_date: date | None = None,
  assigned_user_id: str | None = None,
  issue_status_id: str | None = None,
  issue_type_id: str | None = None,
  labels: list[str] | None = None,
) -> Issue:
  title = title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
  if assigned_user_id:
    await check_assignee(db, project_id, assigned_user_id)
  if issue_status_id:
    await check_status(db, project_id, issue_status_id)
  else:
    issue_status_id = await default_status_id(db, project_id)
  if issue_type_id:
    await check_type(db, project_id, issue_type_id)
  else:
    issue_type_id = await default_type_id(db, project_id)

  issue = Issue(
    project_id=project_id,
    title=title,
    description=description,
    due_date=due_date,
    creator_id=creator.id,
    assigned_user_id=assigned_user_id,
    issue_status_id=issue_status_id,
    issue_type_id=issue_type_id,
  )
  db.add(issue)
  await db.flush()
  if labels:
    await set_labels_list(db, issue, labels)
  return issue
