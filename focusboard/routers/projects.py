from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.boards import default_visualization
from focusboard.broadcast import hub
from focusboard.deps import get_current_user, get_db
from focusboard.errors import MustBeArchivedError
from focusboard.models import (
  AuditEvent,
  Grouping,
  GroupingIssueAllocation,
  Issue,
  IssueComment,
  IssueLabel,
  IssueLabelLink,
  IssueStatus,
  IssueType,
  Project,
  ProjectMembership,
  User,
  Visualization,
  utcnow,
)
from focusboard.policies import accessible_project_ids, load_project, project_role, require_project_owner
from focusboard.presenters import visualization_out
from focusboard.projection import sync_project_projections
from focusboard.schemas import MemberAddIn, MemberOut, MemberUpdateIn, ProjectCreateIn, ProjectOut, ProjectUpdateIn
from focusboard.templates import AVAILABLE_TEMPLATES, apply_template

router = APIRouter(prefix="/projects", tags=["projects"])


def _project_out(p: Project, role: str | None) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    name=p.name,
    ownerId=p.owner_id,
    role=role,
    timeTrackingEnabled=bool(p.time_tracking_enabled),
    archived=p.archived_at is not None,
    archivedAt=p.archived_at,
    createdAt=p.created_at,
    updatedAt=p.updated_at,
  )


def _member_out(p: Project, m: ProjectMembership, u: User) -> MemberOut:
  return MemberOut(
    id=m.id,
    projectId=m.project_id,
    userId=u.id,
    email=u.email,
    displayName=u.display_name(),
    initials=u.initials(),
    role=m.role,
    isOwner=p.owner_id == u.id,
  )


async def _publish_synced(synced: list[Visualization]) -> None:
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))


async def _delete_project_everything(db: AsyncSession, *, project_id: str) -> None:
  viz_ids = select(Visualization.id).where(Visualization.project_id == project_id)
  grouping_ids = select(Grouping.id).where(Grouping.visualization_id.in_(viz_ids))
  issue_ids = select(Issue.id).where(Issue.project_id == project_id)
  await db.execute(delete(GroupingIssueAllocation).where(GroupingIssueAllocation.grouping_id.in_(grouping_ids)))
  await db.execute(delete(Grouping).where(Grouping.visualization_id.in_(viz_ids)))
  await db.execute(delete(Visualization).where(Visualization.project_id == project_id))
  await db.execute(delete(IssueLabelLink).where(IssueLabelLink.issue_id.in_(issue_ids)))
  await db.execute(delete(IssueComment).where(IssueComment.issue_id.in_(issue_ids)))
  await db.execute(delete(Issue).where(Issue.project_id == project_id))
  await db.execute(delete(IssueLabel).where(IssueLabel.project_id == project_id))
  await db.execute(delete(IssueStatus).where(IssueStatus.project_id == project_id))
  await db.execute(delete(IssueType).where(IssueType.project_id == project_id))
  await db.execute(delete(ProjectMembership).where(ProjectMembership.project_id == project_id))
  await db.execute(delete(AuditEvent).where(AuditEvent.project_id == project_id))
  await db.execute(delete(Project).where(Project.id == project_id))


@router.get("", response_model=list[ProjectOut])
async def list_projects(
  archived: bool | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[ProjectOut]:
  q = select(Project).where(Project.id.in_(accessible_project_ids(user)))
  if archived is True:
    q = q.where(Project.archived_at.is_not(None))
  elif archived is False:
    q = q.where(Project.archived_at.is_(None))
  res = await db.execute(q.order_by(Project.archived_at.is_not(None).asc(), Project.name.asc()))
  projects = res.scalars().all()

  mres = await db.execute(
    select(ProjectMembership.project_id, ProjectMembership.role).where(ProjectMembership.user_id == user.id)
  )
  roles = {pid: role for pid, role in mres.all()}
  return [_project_out(p, "owner" if p.owner_id == user.id else roles.get(p.id)) for p in projects]


@router.post("", response_model=ProjectOut)
async def create_project(payload: ProjectCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  name = payload.name.strip()
  if not name:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
  template = (payload.template or "").strip() or None
  if template and template not in AVAILABLE_TEMPLATES:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown template")

  p = Project(name=name, owner_id=user.id, time_tracking_enabled=payload.timeTrackingEnabled)
  db.add(p)
  await db.flush()
  db.add(ProjectMembership(project_id=p.id, user_id=user.id, role="owner"))
  viz = await default_visualization(db, p.id)
  if template:
    await apply_template(db, p, viz, template)

  await write_audit(
    db,
    event_type="project.created",
    entity_type="Project",
    entity_id=p.id,
    project_id=p.id,
    actor_id=user.id,
    payload={"name": p.name, "template": template},
  )
  await db.commit()
  return _project_out(p, "owner")


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  p = await load_project(project_id, "viewer", user, db)
  return _project_out(p, await project_role(db, p, user))


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
  project_id: str,
  payload: ProjectUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ProjectOut:
  p = await load_project(project_id, "editor", user, db)
  if payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
    p.name = name
  if payload.timeTrackingEnabled is not None:
    p.time_tracking_enabled = payload.timeTrackingEnabled
  await write_audit(
    db,
    event_type="project.updated",
    entity_type="Project",
    entity_id=p.id,
    project_id=p.id,
    actor_id=user.id,
    payload={"name": p.name, "timeTrackingEnabled": p.time_tracking_enabled},
  )
  await db.commit()
  return _project_out(p, await project_role(db, p, user))


@router.put("/{project_id}/archive", response_model=ProjectOut)
async def archive_project(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  p = await load_project(project_id, "editor", user, db)
  if p.archived_at is None:
    p.archived_at = utcnow()
  await write_audit(db, event_type="project.archived", entity_type="Project", entity_id=p.id, project_id=p.id, actor_id=user.id, payload={})
  await db.commit()
  return _project_out(p, await project_role(db, p, user))


@router.put("/{project_id}/unarchive", response_model=ProjectOut)
async def unarchive_project(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ProjectOut:
  p = await load_project(project_id, "editor", user, db)
  p.archived_at = None
  await write_audit(db, event_type="project.unarchived", entity_type="Project", entity_id=p.id, project_id=p.id, actor_id=user.id, payload={})
  await db.commit()
  return _project_out(p, await project_role(db, p, user))


@router.delete("/{project_id}")
async def delete_project(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  p = await load_project(project_id, "viewer", user, db)
  require_project_owner(p, user)
  if p.archived_at is None:
    raise MustBeArchivedError("Project must be archived before it can be deleted")

  await _delete_project_everything(db, project_id=p.id)
  await write_audit(
    db,
    event_type="project.deleted",
    entity_type="Project",
    entity_id=project_id,
    project_id=None,
    actor_id=user.id,
    payload={"name": p.name},
  )
  await db.commit()
  return {"ok": True}


@router.get("/{project_id}/members", response_model=list[MemberOut])
async def list_members(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  p = await load_project(project_id, "viewer", user, db)
  res = await db.execute(
    select(ProjectMembership, User)
    .join(User, User.id == ProjectMembership.user_id)
    .where(ProjectMembership.project_id == p.id)
    .order_by(ProjectMembership.created_at.asc(), User.email.asc())
  )
  return [_member_out(p, m, u) for m, u in res.all()]


@router.post("/{project_id}/members", response_model=MemberOut)
async def add_member(
  project_id: str,
  payload: MemberAddIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberOut:
  p = await load_project(project_id, "viewer", user, db)
  require_project_owner(p, user)
  email = payload.email.strip().lower()
  ures = await db.execute(select(User).where(User.email == email))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  existing = await db.execute(select(ProjectMembership.id).where(ProjectMembership.project_id == p.id, ProjectMembership.user_id == u.id))
  if existing.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member of this project")

  m = ProjectMembership(project_id=p.id, user_id=u.id, role=payload.role)
  db.add(m)
  await db.flush()
  synced = await sync_project_projections(db, p.id, {"assignee"})
  await write_audit(
    db,
    event_type="project.member.added",
    entity_type="ProjectMembership",
    entity_id=m.id,
    project_id=p.id,
    actor_id=user.id,
    payload={"email": email, "role": payload.role},
  )
  await db.commit()
  await _publish_synced(synced)
  return _member_out(p, m, u)


async def _load_membership(db: AsyncSession, project: Project, membership_id: str) -> tuple[ProjectMembership, User]:
  res = await db.execute(
    select(ProjectMembership, User)
    .join(User, User.id == ProjectMembership.user_id)
    .where(ProjectMembership.id == membership_id, ProjectMembership.project_id == project.id)
  )
  row = res.first()
  if not row:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Membership not found")
  return row[0], row[1]


@router.patch("/{project_id}/members/{membership_id}", response_model=MemberOut)
async def update_member(
  project_id: str,
  membership_id: str,
  payload: MemberUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberOut:
  p = await load_project(project_id, "viewer", user, db)
  require_project_owner(p, user)
  m, u = await _load_membership(db, p, membership_id)
  if u.id == p.owner_id and payload.role != "owner":
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The project owner cannot be demoted")
  m.role = payload.role
  await write_audit(
    db,
    event_type="project.member.updated",
    entity_type="ProjectMembership",
    entity_id=m.id,
    project_id=p.id,
    actor_id=user.id,
    payload={"userId": u.id, "role": m.role},
  )
  await db.commit()
  return _member_out(p, m, u)


@router.delete("/{project_id}/members/{membership_id}")
async def remove_member(
  project_id: str,
  membership_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  p = await load_project(project_id, "viewer", user, db)
  require_project_owner(p, user)
  m, u = await _load_membership(db, p, membership_id)
  if u.id == p.owner_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The project owner cannot be removed")

  await db.execute(
    update(Issue).where(Issue.project_id == p.id, Issue.assigned_user_id == u.id).values(assigned_user_id=None)
  )
  await db.delete(m)
  await db.flush()
  synced = await sync_project_projections(db, p.id, {"assignee"})
  await write_audit(
    db,
    event_type="project.member.removed",
    entity_type="ProjectMembership",
    entity_id=membership_id,
    project_id=p.id,
    actor_id=user.id,
    payload={"userId": u.id, "email": u.email},
  )
  await db.commit()
  await _publish_synced(synced)
  return {"ok": True}
