from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.broadcast import hub
from focusboard.deps import get_current_user, get_db
from focusboard.labeling import label_with_title, normalize_title
from focusboard.models import IssueLabel, IssueLabelLink, User
from focusboard.policies import load_label, load_project
from focusboard.presenters import label_out, visualization_out
from focusboard.projection import ordered_labels, sync_project_projections
from focusboard.schemas import LabelCreateIn, LabelOut, LabelUpdateIn

router = APIRouter(tags=["labels"])


@router.get("/projects/{project_id}/labels", response_model=list[LabelOut])
async def list_labels(project_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[LabelOut]:
  await load_project(project_id, "viewer", user, db)
  return [label_out(l) for l in await ordered_labels(db, project_id)]


@router.post("/projects/{project_id}/labels", response_model=LabelOut)
async def create_label(
  project_id: str,
  payload: LabelCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  await load_project(project_id, "editor", user, db)
  title = normalize_title(payload.title)
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
  if await label_with_title(db, project_id, title):
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Label already exists")
  label = IssueLabel(project_id=project_id, title=title, hex_color=payload.hexColor)
  db.add(label)
  await db.flush()
  synced = await sync_project_projections(db, project_id, {"label"})
  await write_audit(
    db,
    event_type="label.created",
    entity_type="IssueLabel",
    entity_id=label.id,
    project_id=project_id,
    actor_id=user.id,
    payload={"title": label.title},
  )
  await db.commit()
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return label_out(label)


@router.patch("/labels/{label_id}", response_model=LabelOut)
async def update_label(
  label_id: str,
  payload: LabelUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  label = await load_label(label_id, "editor", user, db)
  if payload.title is not None:
    title = normalize_title(payload.title)
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    other = await label_with_title(db, label.project_id, title)
    if other and other.id != label.id:
      raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Label already exists")
    label.title = title
  if "hexColor" in payload.model_fields_set:
    label.hex_color = payload.hexColor
  synced = await sync_project_projections(db, label.project_id, {"label"})
  await write_audit(
    db,
    event_type="label.updated",
    entity_type="IssueLabel",
    entity_id=label.id,
    project_id=label.project_id,
    actor_id=user.id,
    payload={"title": label.title, "hexColor": label.hex_color},
  )
  await db.commit()
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return label_out(label)


@router.delete("/labels/{label_id}")
async def delete_label(label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  label = await load_label(label_id, "editor", user, db)
  project_id = label.project_id
  await db.execute(delete(IssueLabelLink).where(IssueLabelLink.issue_label_id == label.id))
  await db.delete(label)
  await db.flush()
  synced = await sync_project_projections(db, project_id, {"label"})
  await write_audit(
    db,
    event_type="label.deleted",
    entity_type="IssueLabel",
    entity_id=label_id,
    project_id=project_id,
    actor_id=user.id,
    payload={"title": label.title},
  )
  await db.commit()
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return {"ok": True}
