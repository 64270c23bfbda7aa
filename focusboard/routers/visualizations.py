from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.boards import build_board, default_visualization, issues_out
from focusboard.broadcast import hub
from focusboard.deps import get_current_user, get_db
from focusboard.errors import ProjectionError
from focusboard.models import Issue, User
from focusboard.policies import load_project, load_visualization
from focusboard.presenters import status_out, type_out, user_brief_out, visualization_out
from focusboard.projection import grouped_issues, ordered_statuses, ordered_types, project_members, sync_projection_groups
from focusboard.schemas import BoardOut, GridOut, GroupedIssuesOut, VisualizationOut, VisualizationUpdateIn

router = APIRouter(tags=["visualizations"])


def _clean_favorites(titles: list[str]) -> list[str]:
  out: list[str] = []
  seen: set[str] = set()
  for raw in titles:
    title = (raw or "").strip()
    if title and title.lower() not in seen:
      seen.add(title.lower())
      out.append(title)
  return out


@router.get("/projects/{project_id}/visualization", response_model=VisualizationOut)
async def get_default_visualization(
  project_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> VisualizationOut:
  await load_project(project_id, "viewer", user, db)
  viz = await default_visualization(db, project_id)
  await db.commit()
  return visualization_out(viz)


@router.get("/visualizations/{visualization_id}", response_model=BoardOut)
async def get_board(visualization_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  viz = await load_visualization(visualization_id, "viewer", user, db)
  return await build_board(db, viz)


@router.patch("/visualizations/{visualization_id}", response_model=VisualizationOut)
async def update_visualization(
  visualization_id: str,
  payload: VisualizationUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> VisualizationOut:
  viz = await load_visualization(visualization_id, "editor", user, db)
  group_by_changed = payload.groupBy is not None and payload.groupBy != viz.group_by
  auto_switched_on = payload.autoGenerateGroups is True and not viz.auto_generate_groups
  favorites_changed = False

  if payload.favoriteIssueLabels is not None:
    favorites = _clean_favorites(payload.favoriteIssueLabels)
    favorites_changed = favorites != list(viz.favorite_issue_labels or [])
    viz.favorite_issue_labels = favorites
  if payload.groupBy is not None:
    viz.group_by = payload.groupBy
  if payload.autoGenerateGroups is not None:
    viz.auto_generate_groups = payload.autoGenerateGroups

  synced = False
  if (group_by_changed or auto_switched_on) and viz.auto_generate_groups and viz.projection_mode():
    await sync_projection_groups(db, viz)
    synced = True

  await write_audit(
    db,
    event_type="visualization.updated",
    entity_type="Visualization",
    entity_id=viz.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={
      "groupBy": viz.group_by,
      "autoGenerateGroups": viz.auto_generate_groups,
      "favoriteIssueLabels": viz.favorite_issue_labels,
      "synced": synced,
    },
  )
  await db.commit()
  if favorites_changed:
    await hub.publish_visualization(viz.id, "visualization.favorite_labels", {"id": viz.id, "favoriteIssueLabels": viz.favorite_issue_labels})
  if group_by_changed or payload.autoGenerateGroups is not None:
    await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return visualization_out(viz)


@router.post("/visualizations/{visualization_id}/sync", response_model=BoardOut)
async def sync_visualization(
  visualization_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  viz = await load_visualization(visualization_id, "editor", user, db)
  if viz.manual_mode():
    raise ProjectionError("Manual visualizations have nothing to sync")
  result = await sync_projection_groups(db, viz)
  await write_audit(
    db,
    event_type="visualization.synced",
    entity_type="Visualization",
    entity_id=viz.id,
    project_id=viz.project_id,
    actor_id=user.id,
    payload={"groupBy": viz.group_by, "created": result.created, "removed": result.removed},
  )
  await db.commit()
  await hub.publish_visualization(viz.id, "visualization.updated", visualization_out(viz))
  return await build_board(db, viz)


@router.get("/visualizations/{visualization_id}/grouped-issues", response_model=list[GroupedIssuesOut])
async def get_grouped_issues(
  visualization_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[GroupedIssuesOut]:
  viz = await load_visualization(visualization_id, "viewer", user, db)
  out = []
  for col, issues in await grouped_issues(db, viz):
    out.append(GroupedIssuesOut(key=col.key, title=col.title, issues=await issues_out(db, issues)))
  return out


@router.get("/visualizations/{visualization_id}/grid", response_model=GridOut)
async def get_grid(visualization_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> GridOut:
  viz = await load_visualization(visualization_id, "viewer", user, db)
  res = await db.execute(
    select(Issue)
    .where(Issue.project_id == viz.project_id, Issue.archived_at.is_(None))
    .order_by(Issue.created_at.asc(), Issue.id.asc())
  )
  return GridOut(
    visualization=visualization_out(viz),
    issues=await issues_out(db, list(res.scalars().all())),
    statuses=[status_out(s) for s in await ordered_statuses(db, viz.project_id)],
    types=[type_out(t) for t in await ordered_types(db, viz.project_id)],
    members=[user_brief_out(u) for u in await project_members(db, viz.project_id)],
  )
