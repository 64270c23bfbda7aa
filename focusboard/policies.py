from __future__ import annotations

from typing import Any, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.models import (
  Grouping,
  Issue,
  IssueComment,
  IssueLabel,
  IssueStatus,
  IssueType,
  Project,
  ProjectMembership,
  User,
  Visualization,
  is_uuid,
)

ModelT = TypeVar("ModelT")

# role order: viewer < editor < owner
ROLE_ORDER = {"viewer": 0, "editor": 1, "owner": 2}


async def get_or_404(db: AsyncSession, model: type[ModelT], obj_id: str, detail: str) -> ModelT:
  if not is_uuid(obj_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
  res = await db.execute(select(model).where(model.id == obj_id))  # type: ignore[attr-defined]
  obj = res.scalar_one_or_none()
  if not obj:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
  return obj


async def project_role(db: AsyncSession, project: Project, user: User) -> str | None:
  """Effective role of `user` in `project`, or None without access."""
  if project.owner_id == user.id:
    return "owner"
  res = await db.execute(
    select(ProjectMembership.role).where(ProjectMembership.project_id == project.id, ProjectMembership.user_id == user.id)
  )
  return res.scalar_one_or_none()


def accessible_project_ids(user: User) -> Any:
  member_of = select(ProjectMembership.project_id).where(ProjectMembership.user_id == user.id)
  return select(Project.id).where(or_(Project.owner_id == user.id, Project.id.in_(member_of)))


async def require_project_role(project: Project, min_role: str, user: User, db: AsyncSession) -> str:
  role = await project_role(db, project, user)
  if role is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No project access")
  if ROLE_ORDER.get(role, -1) < ROLE_ORDER.get(min_role, 0):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
  return role


def require_project_owner(project: Project, user: User) -> None:
  # Ownership is the project's owner_id; an "owner" membership role does not count.
  if project.owner_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the project owner can do this")


async def load_project(project_id: str, min_role: str, user: User, db: AsyncSession) -> Project:
  project = await get_or_404(db, Project, project_id, "Project not found")
  await require_project_role(project, min_role, user, db)
  return project


async def load_issue(issue_id: str, min_role: str, user: User, db: AsyncSession) -> Issue:
  issue = await get_or_404(db, Issue, issue_id, "Issue not found")
  project = await get_or_404(db, Project, issue.project_id, "Project not found")
  await require_project_role(project, min_role, user, db)
  return issue


async def load_visualization(visualization_id: str, min_role: str, user: User, db: AsyncSession) -> Visualization:
  viz = await get_or_404(db, Visualization, visualization_id, "Visualization not found")
  project = await get_or_404(db, Project, viz.project_id, "Project not found")
  await require_project_role(project, min_role, user, db)
  return viz


async def load_grouping(grouping_id: str, min_role: str, user: User, db: AsyncSession) -> tuple[Grouping, Visualization]:
  g = await get_or_404(db, Grouping, grouping_id, "Grouping not found")
  viz = await load_visualization(g.visualization_id, min_role, user, db)
  return g, viz


async def load_status(status_id: str, min_role: str, user: User, db: AsyncSession) -> IssueStatus:
  s = await get_or_404(db, IssueStatus, status_id, "Status not found")
  await load_project(s.project_id, min_role, user, db)
  return s


async def load_type(type_id: str, min_role: str, user: User, db: AsyncSession) -> IssueType:
  t = await get_or_404(db, IssueType, type_id, "Type not found")
  await load_project(t.project_id, min_role, user, db)
  return t


async def load_label(label_id: str, min_role: str, user: User, db: AsyncSession) -> IssueLabel:
  label = await get_or_404(db, IssueLabel, label_id, "Label not found")
  await load_project(label.project_id, min_role, user, db)
  return label


async def load_comment(comment_id: str, min_role: str, user: User, db: AsyncSession) -> tuple[IssueComment, Issue]:
  c = await get_or_404(db, IssueComment, comment_id, "Comment not found")
  issue = await load_issue(c.issue_id, min_role, user, db)
  return c, issue
