from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.broadcast import hub
from focusboard.deps import get_current_user, get_db
from focusboard.models import Issue, IssueStatus, IssueType, User, Visualization
from focusboard.policies import load_project, load_status, load_type
from focusboard.positioning import next_position
from focusboard.presenters import status_out, type_out, visualization_out
from focusboard.projection import ordered_statuses, ordered_types, sync_project_projections
from focusboard.schemas import (
  IssueStatusCreateIn,
  IssueStatusOut,
  IssueStatusUpdateIn,
  IssueTypeCreateIn,
  IssueTypeOut,
  IssueTypeUpdateIn,
  ReorderIn,
)

router = APIRouter(tags=["issue-fields"])


async def _publish_synced(synced: list[Visualization]) -> None:
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))


async def _ensure_unique_name(db: AsyncSession, model: type[IssueStatus] | type[IssueType], project_id: str, name: str, exclude_id: str | None = None) -> None:
  q = select(model.id).where(model.project_id == project_id, func.lower(model.name) == name.lower())
  if exclude_id:
    q = q.where(model.id != exclude_id)
  res = await db.execute(q)
  if res.scalars().first():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Name already exists in this project")


async def _clear_other_defaults(db: AsyncSession, model: type[IssueStatus] | type[IssueType], project_id: str, keep_id: str) -> None:
  await db.execute(update(model).where(model.project_id == project_id, model.id != keep_id).values(is_default=False))


async def _has_default(db: AsyncSession, model: type[IssueStatus] | type[IssueType], project_id: str) -> bool:
  res = await db.execute(select(model.id).where(model.project_id == project_id, model.is_default.is_(True)).limit(1))
  return res.scalar_one_or_none() is not None


@router.get("/projects/{project_id}/issue-statuses", response_model=list[IssueStatusOut])
async def list_statuses(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[IssueStatusOut]:
  await load_project(project_id, "viewer", user, db)
  return [status_out(s) for s in await ordered_statuses(db, project_id)]


@router.post("/projects/{project_id}/issue-statuses", response_model=IssueStatusOut)
async def create_status(
  project_id: str,
  payload: IssueStatusCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueStatusOut:
  await load_project(project_id, "editor", user, db)
  name = payload.name.strip()
  await _ensure_unique_name(db, IssueStatus, project_id, name)
  # Status positions follow max + 1 and start at 1.
  pos = max(1, await next_position(db, IssueStatus.position, IssueStatus.project_id == project_id))
  s = IssueStatus(
    project_id=project_id,
    name=name,
    color=payload.color,
    position=pos,
    is_default=payload.isDefault or not await _has_default(db, IssueStatus, project_id),
    is_closed=payload.isClosed,
  )
  db.add(s)
  await db.flush()
  if s.is_default:
    await _clear_other_defaults(db, IssueStatus, project_id, s.id)
  synced = await sync_project_projections(db, project_id, {"status"})
  await write_audit(
    db,
    event_type="issue_status.created",
    entity_type="IssueStatus",
    entity_id=s.id,
    project_id=project_id,
    actor_id=user.id,
    payload={"name": s.name, "position": s.position},
  )
  await db.commit()
  await _publish_synced(synced)
  return status_out(s)


@router.patch("/issue-statuses/{status_id}", response_model=IssueStatusOut)
async def update_status(
  status_id: str,
  payload: IssueStatusUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueStatusOut:
  s = await load_status(status_id, "editor", user, db)
  if payload.name is not None:
    name = payload.name.strip()
    await _ensure_unique_name(db, IssueStatus, s.project_id, name, exclude_id=s.id)
    s.name = name
  if payload.color is not None:
    s.color = payload.color
  if payload.isClosed is not None:
    s.is_closed = payload.isClosed
  if payload.isDefault is not None:
    s.is_default = payload.isDefault
    if payload.isDefault:
      await _clear_other_defaults(db, IssueStatus, s.project_id, s.id)
  synced = await sync_project_projections(db, s.project_id, {"status"})
  await write_audit(
    db,
    event_type="issue_status.updated",
    entity_type="IssueStatus",
    entity_id=s.id,
    project_id=s.project_id,
    actor_id=user.id,
    payload={"name": s.name, "isDefault": s.is_default, "isClosed": s.is_closed},
  )
  await db.commit()
  await _publish_synced(synced)
  return status_out(s)


@router.delete("/issue-statuses/{status_id}")
async def delete_status(status_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  s = await load_status(status_id, "editor", user, db)
  project_id = s.project_id
  await db.execute(update(Issue).where(Issue.issue_status_id == s.id).values(issue_status_id=None))
  await db.delete(s)
  await db.flush()
  synced = await sync_project_projections(db, project_id, {"status"})
  await write_audit(
    db,
    event_type="issue_status.deleted",
    entity_type="IssueStatus",
    entity_id=status_id,
    project_id=project_id,
    actor_id=user.id,
    payload={"name": s.name},
  )
  await db.commit()
  await _publish_synced(synced)
  return {"ok": True}


@router.post("/projects/{project_id}/issue-statuses/reorder")
async def reorder_statuses(
  project_id: str,
  payload: ReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await load_project(project_id, "editor", user, db)
  statuses = {s.id: s for s in await ordered_statuses(db, project_id)}
  if len(payload.ids) != len(statuses) or set(payload.ids) != set(statuses.keys()):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ids must include all statuses")
  for idx, sid in enumerate(payload.ids, start=1):
    statuses[sid].position = idx
  synced = await sync_project_projections(db, project_id, {"status"})
  await write_audit(
    db,
    event_type="issue_statuses.reordered",
    entity_type="Project",
    entity_id=project_id,
    project_id=project_id,
    actor_id=user.id,
    payload={"ids": payload.ids},
  )
  await db.commit()
  await _publish_synced(synced)
  return {"ok": True}


@router.get("/projects/{project_id}/issue-types", response_model=list[IssueTypeOut])
async def list_types(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[IssueTypeOut]:
  await load_project(project_id, "viewer", user, db)
  return [type_out(t) for t in await ordered_types(db, project_id)]


@router.post("/projects/{project_id}/issue-types", response_model=IssueTypeOut)
async def create_type(
  project_id: str,
  payload: IssueTypeCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueTypeOut:
  await load_project(project_id, "editor", user, db)
  name = payload.name.strip()
  await _ensure_unique_name(db, IssueType, project_id, name)
  pos = max(1, await next_position(db, IssueType.position, IssueType.project_id == project_id))
  t = IssueType(
    project_id=project_id,
    name=name,
    icon=payload.icon.strip(),
    color=payload.color,
    position=pos,
    is_default=payload.isDefault or not await _has_default(db, IssueType, project_id),
  )
  db.add(t)
  await db.flush()
  if t.is_default:
    await _clear_other_defaults(db, IssueType, project_id, t.id)
  synced = await sync_project_projections(db, project_id, {"type"})
  await write_audit(
    db,
    event_type="issue_type.created",
    entity_type="IssueType",
    entity_id=t.id,
    project_id=project_id,
    actor_id=user.id,
    payload={"name": t.name, "icon": t.icon, "position": t.position},
  )
  await db.commit()
  await _publish_synced(synced)
  return type_out(t)


@router.patch("/issue-types/{type_id}", response_model=IssueTypeOut)
async def update_type(
  type_id: str,
  payload: IssueTypeUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueTypeOut:
  t = await load_type(type_id, "editor", user, db)
  if payload.name is not None:
    name = payload.name.strip()
    await _ensure_unique_name(db, IssueType, t.project_id, name, exclude_id=t.id)
    t.name = name
  if payload.icon is not None:
    t.icon = payload.icon.strip()
  if payload.color is not None:
    t.color = payload.color
  if payload.isDefault is not None:
    t.is_default = payload.isDefault
    if payload.isDefault:
      await _clear_other_defaults(db, IssueType, t.project_id, t.id)
  synced = await sync_project_projections(db, t.project_id, {"type"})
  await write_audit(
    db,
    event_type="issue_type.updated",
    entity_type="IssueType",
    entity_id=t.id,
    project_id=t.project_id,
    actor_id=user.id,
    payload={"name": t.name, "icon": t.icon, "isDefault": t.is_default},
  )
  await db.commit()
  await _publish_synced(synced)
  return type_out(t)


@router.delete("/issue-types/{type_id}")
async def delete_type(type_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  t = await load_type(type_id, "editor", user, db)
  project_id = t.project_id
  await db.execute(update(Issue).where(Issue.issue_type_id == t.id).values(issue_type_id=None))
  await db.delete(t)
  await db.flush()
  synced = await sync_project_projections(db, project_id, {"type"})
  await write_audit(
    db,
    event_type="issue_type.deleted",
    entity_type="IssueType",
    entity_id=type_id,
    project_id=project_id,
    actor_id=user.id,
    payload={"name": t.name},
  )
  await db.commit()
  await _publish_synced(synced)
  return {"ok": True}


@router.post("/projects/{project_id}/issue-types/reorder")
async def reorder_types(
  project_id: str,
  payload: ReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await load_project(project_id, "editor", user, db)
  types = {t.id: t for t in await ordered_types(db, project_id)}
  if len(payload.ids) != len(types) or set(payload.ids) != set(types.keys()):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ids must include all types")
  for idx, tid in enumerate(payload.ids, start=1):
    types[tid].position = idx
  synced = await sync_project_projections(db, project_id, {"type"})
  await write_audit(
    db,
    event_type="issue_types.reordered",
    entity_type="Project",
    entity_id=project_id,
    project_id=project_id,
    actor_id=user.id,
    payload={"ids": payload.ids},
  )
  await db.commit()
  await _publish_synced(synced)
  return {"ok": True}
