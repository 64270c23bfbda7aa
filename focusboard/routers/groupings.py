from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.boards import column_issues, issue_payload, issues_out
from focusboard.broadcast import hub
from focusboard.deps import get_current_user, get_db
from focusboard.issue_records import create_issue_record
from focusboard.models import Grouping, GroupingIssueAllocation, Issue, User, Visualization, is_uuid, utcnow
from focusboard.policies import load_grouping, load_visualization
from focusboard.positioning import (
  allocate_last,
  drop_grouping,
  grouping_allocations,
  issue_allocation,
  move_allocation,
  place,
  repack,
  visualization_groupings,
)
from focusboard.presenters import grouping_out
from focusboard.projection import apply_projection
from focusboard.schemas import (
  AllocationMoveIn,
  AllocationOut,
  GroupingCreateIn,
  GroupingMoveAllIn,
  GroupingMoveIn,
  GroupingOut,
  GroupingUpdateIn,
  IssueOut,
  VisualizationIssueCreateIn,
)

router = APIRouter(tags=["groupings"])


def _allocation_out(a: GroupingIssueAllocation) -> AllocationOut:
  return AllocationOut(id=a.id, groupingId=a.grouping_id, issueId=a.issue_id, position=a.position)


async def _grouping_in(db: AsyncSession, viz: Visualization, grouping_id: str) -> Grouping:
  if is_uuid(grouping_id):
    res = await db.execute(select(Grouping).where(Grouping.id == grouping_id, Grouping.visualization_id == viz.id))
    g = res.scalar_one_or_none()
    if g:
      return g
  raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grouping not found")


@router.post("/visualizations/{visualization_id}/groupings", response_model=GroupingOut)
async def create_grouping(
  visualization_id: str,
  payload: GroupingCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> GroupingOut:
  viz = await load_visualization(visualization_id, "editor", user, db)
  title = payload.title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
  existing = await visualization_groupings(db, viz.id)
  g = Grouping(visualization_id=viz.id, title=title, position=len(existing))
  db.add(g)
  await db.flush()
  repack(existing + [g])
  await write_audit(
    db,
    event_type="grouping.created",
    entity_type="Grouping",
    entity_id=g.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"title": g.title, "position": g.position},
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "grouping.created", grouping_out(g))
  return grouping_out(g)


@router.patch("/groupings/{grouping_id}", response_model=GroupingOut)
async def update_grouping(
  grouping_id: str,
  payload: GroupingUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> GroupingOut:
  g, viz = await load_grouping(grouping_id, "editor", user, db)
  if payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    g.title = title
  if payload.hidden is not None:
    g.hidden = payload.hidden
  await write_audit(
    db,
    event_type="grouping.updated",
    entity_type="Grouping",
    entity_id=g.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"title": g.title, "hidden": g.hidden},
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "grouping.updated", grouping_out(g))
  return grouping_out(g)


@router.delete("/groupings/{grouping_id}")
async def delete_grouping(grouping_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  g, viz = await load_grouping(grouping_id, "editor", user, db)
  title = g.title
  await drop_grouping(db, g)
  repack(await visualization_groupings(db, viz.id))
  await write_audit(
    db,
    event_type="grouping.deleted",
    entity_type="Grouping",
    entity_id=grouping_id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"title": title},
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "grouping.removed", {"id": grouping_id, "visualizationId": viz.id})
  return {"ok": True}


@router.post("/visualizations/{visualization_id}/groupings/move", response_model=list[GroupingOut])
async def move_grouping(
  visualization_id: str,
  payload: GroupingMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[GroupingOut]:
  viz = await load_visualization(visualization_id, "editor", user, db)
  g = await _grouping_in(db, viz, payload.groupingId)
  ordered = place(await visualization_groupings(db, viz.id), g, payload.position)
  await write_audit(
    db,
    event_type="groupings.reordered",
    entity_type="Visualization",
    entity_id=viz.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"groupingId": g.id, "position": g.position},
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "groupings.reordered", {"visualizationId": viz.id, "groupingIds": [x.id for x in ordered]})
  return [grouping_out(x) for x in ordered]


@router.post("/groupings/{grouping_id}/move-all-issues", response_model=list[AllocationOut])
async def move_all_issues(
  grouping_id: str,
  payload: GroupingMoveAllIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AllocationOut]:
  source, viz = await load_grouping(grouping_id, "editor", user, db)
  target = await _grouping_in(db, viz, payload.toGroupingId)
  if target.id == source.id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="toGroupingId must be different")

  moving = await grouping_allocations(db, source.id)
  target_arr = await grouping_allocations(db, target.id)
  for a in moving:
    a.grouping_id = target.id
  repack(target_arr + moving)
  await write_audit(
    db,
    event_type="grouping.issues.moved",
    entity_type="Grouping",
    entity_id=source.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"toGroupingId": target.id, "count": len(moving)},
  )
  await db.commit()
  for a in moving:
    await hub.publish_visualization(viz.id, "allocation.moved", {"issueId": a.issue_id, "groupingId": target.id, "position": a.position})
  return [_allocation_out(a) for a in target_arr + moving]


@router.post("/groupings/{grouping_id}/archive-all-issues", response_model=list[IssueOut])
async def archive_all_issues(grouping_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[IssueOut]:
  g, viz = await load_grouping(grouping_id, "editor", user, db)
  issues = await column_issues(db, g, viz)
  now = utcnow()
  for issue in issues:
    issue.archived_at = now
    await write_audit(
      db,
      event_type="issue.archived",
      entity_type="Issue",
      entity_id=issue.id,
      project_id=issue.project_id,
      issue_id=issue.id,
      actor_id=user.id,
      payload={"groupingId": g.id},
    )
  await db.commit()
  out = await issues_out(db, issues)
  for item in out:
    await hub.publish_visualization(viz.id, "issue.updated", item)
  await hub.publish_visualization(viz.id, "grouping.updated", grouping_out(g))
  return out


@router.post("/visualizations/{visualization_id}/issues", response_model=IssueOut)
async def create_visualization_issue(
  visualization_id: str,
  payload: VisualizationIssueCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> IssueOut:
  viz = await load_visualization(visualization_id, "editor", user, db)
  g = await _grouping_in(db, viz, payload.groupingId)
  issue = await create_issue_record(
    db,
    project_id=viz.project_id,
    creator=user,
    title=payload.title,
    description=payload.description,
    due_date=payload.dueDate,
  )
  allocation = await allocate_last(db, g, issue.id)
  await apply_projection(db, issue, g, viz)
  await write_audit(
    db,
    event_type="issue.created",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=viz.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={"title": issue.title, "groupingId": g.id},
  )
  await db.commit()
  out = await issue_payload(db, issue)
  await hub.publish_visualization(viz.id, "issue.created", out)
  await hub.publish_visualization(viz.id, "allocation.moved", {"issueId": issue.id, "groupingId": g.id, "position": allocation.position})
  return out


@router.post("/visualizations/{visualization_id}/allocations/move", response_model=list[AllocationOut])
async def move_card(
  visualization_id: str,
  payload: AllocationMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AllocationOut]:
  viz = await load_visualization(visualization_id, "editor", user, db)
  target = await _grouping_in(db, viz, payload.groupingId)
  issue = await db.get(Issue, payload.issueId) if is_uuid(payload.issueId) else None
  if not issue or issue.project_id != viz.project_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")

  allocation = await issue_allocation(db, viz.id, issue.id)
  from_grouping_id = allocation.grouping_id if allocation else None
  if allocation:
    await move_allocation(db, allocation, target, payload.position)
  else:
    allocation = GroupingIssueAllocation(grouping_id=target.id, issue_id=issue.id, position=0)
    arr = await grouping_allocations(db, target.id)
    db.add(allocation)
    place(arr, allocation, payload.position)
  await db.flush()
  await apply_projection(db, issue, target, viz)

  await write_audit(
    db,
    event_type="allocation.moved",
    entity_type="Issue",
    entity_id=issue.id,
    project_id=viz.project_id,
    issue_id=issue.id,
    actor_id=user.id,
    payload={"fromGroupingId": from_grouping_id, "toGroupingId": target.id, "position": allocation.position},
  )
  await db.commit()
  await hub.publish_visualization(
    viz.id,
    "allocation.moved",
    {"issueId": issue.id, "fromGroupingId": from_grouping_id, "groupingId": target.id, "position": allocation.position},
  )
  await hub.publish_visualization(viz.id, "issue.updated", await issue_payload(db, issue))
  return [_allocation_out(a) for a in await grouping_allocations(db, target.id)]
