from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.boards import default_visualization, issue_payload, issues_out
from focusboard.broadcast import hub
from focusboard.config import settings
from focusboard.deps import get_current_user, get_db
from focusboard.errors import MustBeArchivedError
from focusboard.issue_query import IssueFilters, paginate_issues
from focusboard.issue_records import bad_id, check_assignee, check_status, check_type, create_issue_record
from focusboard.labeling import attach_label, detach_label, find_or_create_label, label_with_title, normalize_title, set_labels_list
from focusboard.models import Grouping, Issue, IssueComment, IssueLabelLink, User, is_uuid, utcnow
from focusboard.policies import load_comment, load_issue, load_project
from focusboard.positioning import allocate_last, drop_issue_allocations, issue_allocation, release_allocation
from focusboard.presenters import grouping_out, user_brief_out, visualization_out
from focusboard.projection import sync_project_projections
from focusboard.schemas import (
  CommentIn,
  CommentOut,
  IssueAssigneeIn,
  IssueCreateIn,
  IssueDescriptionIn,
  IssueGroupingIn,
  IssueLabelIn,
  IssueOut,
  IssuePageOut,
  IssueUpdateIn,
)

router = APIRouter(tags=["issues"])


async def _publish_issue(db: AsyncSession, issue: Issue, message_type: str) -> None:
  """Commit, then push the issue to its project's default board."""
  viz = await default_visualization(db, issue.project_id)
  await db.commit()
  if message_type == "issue.removed":
    await hub.publish_visualization(viz.id, message_type, {"id": issue.id, "projectId": issue.project_id})
    return
  await hub.publish_visualization(viz.id, message_type, await issue_payload(db, issue))


@router.get("/projects/{project_id}/issues", response_model=IssuePageOut)
async def list_issues(
  project_id: str,
  q: str | None = None,
  archivingStatus: str = Query(default="active", pattern="^(all|active|archived|finished)$"),
  labels: list[str] = Query(default=[]),
  assignedUserId: str | None = None,
  creatorId: str | None = None,
  unassigned: bool = False,
  statusId: str | None = None,
  typeId: str | None = None,
  dueFrom: date | None = None,
  dueTo: date | None = None,
  sort: str | None = None,
  page: int = Query(default=1, ge=1),
  perPage: int | None = Query(default=None, ge=1, le=100),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssuePageOut:
  await load_project(project_id, "viewer", user, db)
  for name, value in (("assignedUserId", assignedUserId), ("creatorId", creatorId), ("statusId", statusId), ("typeId", typeId)):
    if value is not None and not is_uuid(value):
      raise bad_id(name)

  # Accept both repeated `labels=a&labels=b` and a comma separated list.
  titles = [t.strip() for raw in labels for t in raw.split(",") if t.strip()]
  filters = IssueFilters(
    q=q,
    archiving_status=archivingStatus,
    labels=titles,
    assigned_user_id=assignedUserId,
    creator_id=creatorId,
    unassigned=unassigned,
    status_id=statusId,
    type_id=typeId,
    due_from=dueFrom,
    due_to=dueTo,
  )
  try:
    result = await paginate_issues(
      db,
      project_id,
      filters,
      sort=sort,
      page=page,
      per_page=perPage or settings.issues_per_page,
    )
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
  return IssuePageOut(
    items=await issues_out(db, result.items),
    page=result.page,
    perPage=result.per_page,
    count=result.count,
    pages=result.pages,
  )


@router.post("/projects/{project_id}/issues", response_model=IssueOut)
async def create_issue(
  project_id: str,
  payload: IssueCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  await load_project(project_id, "editor", user, db)
  issue = await create_issue_record(
    db,
    project_id=project_id,
    creator=user,
    title=payload.title,
    description=payload.description,
    due_date=payload.dueDate,
    assigned_user_id=payload.assignedUserId,
    issue_status_id=payload.issueStatusId,
    issue_type_id=payload.issueTypeId,
    labels=payload.labels,
  )
  synced = await sync_project_projections(db, project_id, {"label"}) if payload.labels else []
  await write_audit(
    db,
    event_type="issue.created",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={"title": issue.title},
  )
  await _publish_issue(db, issue, "issue.created")
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return await issue_payload(db, issue)


@router.get("/issues/{issue_id}", response_model=IssueOut)
async def get_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> IssueOut:
  issue = await load_issue(issue_id, "viewer", user, db)
  return await issue_payload(db, issue)


@router.patch("/issues/{issue_id}", response_model=IssueOut)
async def update_issue(
  issue_id: str,
  payload: IssueUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  fields_set = payload.model_fields_set
  synced = []

  if "title" in fields_set:
    title = (payload.title or "").strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    issue.title = title
  if "description" in fields_set:
    issue.description = payload.description
  if "dueDate" in fields_set:
    issue.due_date = payload.dueDate
  if "assignedUserId" in fields_set:
    if payload.assignedUserId:
      await check_assignee(db, issue.project_id, payload.assignedUserId)
    issue.assigned_user_id = payload.assignedUserId
  if "issueStatusId" in fields_set:
    if payload.issueStatusId:
      await check_status(db, issue.project_id, payload.issueStatusId)
    issue.issue_status_id = payload.issueStatusId
  if "issueTypeId" in fields_set:
    if payload.issueTypeId:
      await check_type(db, issue.project_id, payload.issueTypeId)
    issue.issue_type_id = payload.issueTypeId
  if payload.labels:
    await set_labels_list(db, issue, payload.labels)
    synced = await sync_project_projections(db, issue.project_id, {"label"})
  issue.updated_at = utcnow()

  await write_audit(
    db,
    event_type="issue.updated",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={"fields": sorted(fields_set)},
  )
  await _publish_issue(db, issue, "issue.updated")
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return await issue_payload(db, issue)


@router.patch("/issues/{issue_id}/description", response_model=IssueOut)
async def update_description(
  issue_id: str,
  payload: IssueDescriptionIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  issue.description = payload.description
  issue.updated_at = utcnow()
  await write_audit(
    db,
    event_type="issue.description.updated",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={},
  )
  await _publish_issue(db, issue, "issue.updated")
  return await issue_payload(db, issue)


async def _set_state(db: AsyncSession, issue_id: str, user: User, *, event_type: str, field: str, value: object) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  setattr(issue, field, value)
  issue.updated_at = utcnow()
  await write_audit(
    db,
    event_type=event_type,
    entity_type="Issue",
    entity_id=issue.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={},
  )
  await _publish_issue(db, issue, "issue.updated")
  return await issue_payload(db, issue)


@router.put("/issues/{issue_id}/archive", response_model=IssueOut)
async def archive_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> IssueOut:
  return await _set_state(db, issue_id, user, event_type="issue.archived", field="archived_at", value=utcnow())


@router.put("/issues/{issue_id}/unarchive", response_model=IssueOut)
async def unarchive_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> IssueOut:
  return await _set_state(db, issue_id, user, event_type="issue.unarchived", field="archived_at", value=None)


@router.put("/issues/{issue_id}/finish", response_model=IssueOut)
async def finish_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> IssueOut:
  return await _set_state(db, issue_id, user, event_type="issue.finished", field="finished_at", value=utcnow())


@router.put("/issues/{issue_id}/unfinish", response_model=IssueOut)
async def unfinish_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> IssueOut:
  return await _set_state(db, issue_id, user, event_type="issue.unfinished", field="finished_at", value=None)


@router.delete("/issues/{issue_id}")
async def delete_issue(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  issue = await load_issue(issue_id, "editor", user, db)
  if not issue.is_archived():
    raise MustBeArchivedError("Issue must be archived before it can be deleted")

  await drop_issue_allocations(db, issue.id)
  await db.execute(delete(IssueLabelLink).where(IssueLabelLink.issue_id == issue.id))
  await db.execute(delete(IssueComment).where(IssueComment.issue_id == issue.id))
  await db.delete(issue)
  await write_audit(
    db,
    event_type="issue.deleted",
    entity_type="Issue",
    entity_id=issue_id,
    project_id=issue.project_id,
    issue_id=issue_id,
    actor_id=user.id,
    payload={"title": issue.title},
  )
  await _publish_issue(db, issue, "issue.removed")
  return {"ok": True}


@router.put("/issues/{issue_id}/assignee", response_model=IssueOut)
async def set_assignee(
  issue_id: str,
  payload: IssueAssigneeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  if payload.userId:
    await check_assignee(db, issue.project_id, payload.userId)
  previous = issue.assigned_user_id
  issue.assigned_user_id = payload.userId
  issue.updated_at = utcnow()
  await write_audit(
    db,
    event_type="issue.assigned" if payload.userId else "issue.unassigned",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={"from": previous, "to": payload.userId},
  )
  await _publish_issue(db, issue, "issue.updated")
  return await issue_payload(db, issue)


@router.post("/issues/{issue_id}/labels", response_model=IssueOut)
async def add_label(
  issue_id: str,
  payload: IssueLabelIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  if not normalize_title(payload.title):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
  label, created = await find_or_create_label(db, issue.project_id, payload.title, payload.hexColor)
  attached = await attach_label(db, issue, label)
  synced = await sync_project_projections(db, issue.project_id, {"label"}) if created else []
  if attached:
    issue.updated_at = utcnow()
    await write_audit(
      db,
      event_type="issue.label.added",
      entity_type="Issue",
      entity_id=issue.id,
      project_id=issue.project_id,
      issue_id=issue.id,
      actor_id=user.id,
      payload={"title": label.title, "created": created},
    )
  await _publish_issue(db, issue, "issue.updated")
  for viz in synced:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return await issue_payload(db, issue)


@router.delete("/issues/{issue_id}/labels", response_model=IssueOut)
async def remove_label(
  issue_id: str,
  title: str = Query(min_length=1),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  label = await label_with_title(db, issue.project_id, title)
  # Missing labels are a no-op so repeated clicks stay harmless.
  if label and await detach_label(db, issue, label):
    issue.updated_at = utcnow()
    await write_audit(
      db,
      event_type="issue.label.removed",
      entity_type="Issue",
      entity_id=issue.id,
      project_id=issue.project_id,
      issue_id=issue.id,
      actor_id=user.id,
      payload={"title": label.title},
    )
    await _publish_issue(db, issue, "issue.updated")
  return await issue_payload(db, issue)


@router.patch("/issues/{issue_id}/grouping", response_model=IssueOut)
async def pick_grouping(
  issue_id: str,
  payload: IssueGroupingIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  issue = await load_issue(issue_id, "editor", user, db)
  viz = await default_visualization(db, issue.project_id)
  grouping = None
  if payload.groupingId and is_uuid(payload.groupingId):
    gres = await db.execute(select(Grouping).where(Grouping.id == payload.groupingId, Grouping.visualization_id == viz.id))
    grouping = gres.scalar_one_or_none()

  if grouping:
    allocation = await allocate_last(db, grouping, issue.id)
    moved = {"issueId": issue.id, "groupingId": grouping.id, "position": allocation.position}
  else:
    existing = await issue_allocation(db, viz.id, issue.id)
    if existing:
      await release_allocation(db, existing)
    moved = {"issueId": issue.id, "groupingId": None, "position": None}

  await write_audit(
    db,
    event_type="issue.grouping.picked",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload=moved,
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "allocation.moved", moved)
  if grouping:
    await hub.publish_visualization(viz.id, "grouping.updated", grouping_out(grouping))
  await hub.publish_visualization(viz.id, "issue.updated", await issue_payload(db, issue))
  return await issue_payload(db, issue)


def _comment_out(c: IssueComment, author: User | None) -> CommentOut:
  return CommentOut(
    id=c.id,
    issueId=c.issue_id,
    authorId=c.author_id,
    author=user_brief_out(author) if author else None,
    content=c.content,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


@router.get("/issues/{issue_id}/comments", response_model=list[CommentOut])
async def list_comments(issue_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  issue = await load_issue(issue_id, "viewer", user, db)
  res = await db.execute(
    select(IssueComment, User)
    .outerjoin(User, User.id == IssueComment.author_id)
    .where(IssueComment.issue_id == issue.id)
    .order_by(IssueComment.created_at.asc())
  )
  return [_comment_out(c, u) for c, u in res.all()]


@router.post("/issues/{issue_id}/comments", response_model=CommentOut)
async def add_comment(
  issue_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  issue = await load_issue(issue_id, "viewer", user, db)
  content = payload.content.strip()
  if not content:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="content is required")
  c = IssueComment(issue_id=issue.id, author_id=user.id, content=content)
  db.add(c)
  issue.comments_count = int(issue.comments_count or 0) + 1
  await db.flush()
  await write_audit(
    db,
    event_type="comment.created",
    entity_type="IssueComment",
    entity_id=c.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={},
  )
  await _publish_issue(db, issue, "issue.updated")
  return _comment_out(c, user)


@router.patch("/comments/{comment_id}", response_model=CommentOut)
async def update_comment(
  comment_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  c, issue = await load_comment(comment_id, "viewer", user, db)
  if c.author_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can edit this comment")
  content = payload.content.strip()
  if not content:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="content is required")
  c.content = content
  c.updated_at = utcnow()
  await write_audit(
    db,
    event_type="comment.updated",
    entity_type="IssueComment",
    entity_id=c.id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={},
  )
  await db.commit()
  return _comment_out(c, user)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  c, issue = await load_comment(comment_id, "viewer", user, db)
  if c.author_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can delete this comment")
  await db.delete(c)
  issue.comments_count = max(0, int(issue.comments_count or 0) - 1)
  await write_audit(
    db,
    event_type="comment.deleted",
    entity_type="IssueComment",
    entity_id=comment_id,
    project_id=issue.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={},
  )
  await _publish_issue(db, issue, "issue.updated")
  return {"ok": True}
