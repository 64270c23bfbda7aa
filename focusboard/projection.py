from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.errors import ProjectionError
from focusboard.labeling import attach_label
from focusboard.models import (
  Grouping,
  Issue,
  IssueLabel,
  IssueLabelLink,
  IssueStatus,
  IssueType,
  ProjectMembership,
  User,
  Visualization,
)
from focusboard.positioning import drop_grouping, repack, visualization_groupings

logger = logging.getLogger(__name__)

UNASSIGNED_KEY = "assignee_unassigned"
UNASSIGNED_TITLE = "Unassigned"


@dataclass
class ProjectionColumn:
  key: str
  title: str
  ref_id: str | None


@dataclass
class SyncResult:
  created: int = 0
  removed: int = 0
  kept: int = 0


def projection_prefix(group_by: str) -> str:
  return f"{group_by}_"


def parse_projection_key(key: str) -> tuple[str, str | None]:
  kind, _, ref = key.partition("_")
  if not kind or not ref:
    raise ProjectionError(f"Malformed projection key: {key}")
  if key == UNASSIGNED_KEY:
    return "assignee", None
  return kind, ref


async def project_members(db: AsyncSession, project_id: str) -> list[User]:
  res = await db.execute(
    select(User)
    .join(ProjectMembership, ProjectMembership.user_id == User.id)
    .where(ProjectMembership.project_id == project_id)
    .order_by(ProjectMembership.created_at.asc(), User.email.asc())
  )
  return list(res.scalars().all())


async def ordered_statuses(db: AsyncSession, project_id: str) -> list[IssueStatus]:
  res = await db.execute(
    select(IssueStatus).where(IssueStatus.project_id == project_id).order_by(IssueStatus.position.asc(), IssueStatus.name.asc())
  )
  return list(res.scalars().all())


async def ordered_types(db: AsyncSession, project_id: str) -> list[IssueType]:
  res = await db.execute(
    select(IssueType).where(IssueType.project_id == project_id).order_by(IssueType.position.asc(), IssueType.name.asc())
  )
  return list(res.scalars().all())


async def ordered_labels(db: AsyncSession, project_id: str) -> list[IssueLabel]:
  res = await db.execute(
    select(IssueLabel).where(IssueLabel.project_id == project_id).order_by(IssueLabel.created_at.asc(), IssueLabel.title.asc())
  )
  return list(res.scalars().all())


async def projection_columns(db: AsyncSession, viz: Visualization) -> list[ProjectionColumn]:
  """Source elements for the visualization's `group_by`, in display order."""
  if viz.group_by == "status":
    return [ProjectionColumn(f"status_{s.id}", s.name, s.id) for s in await ordered_statuses(db, viz.project_id)]
  if viz.group_by == "type":
    return [ProjectionColumn(f"type_{t.id}", f"{t.icon} {t.name}", t.id) for t in await ordered_types(db, viz.project_id)]
  if viz.group_by == "label":
    return [ProjectionColumn(f"label_{l.id}", l.title, l.id) for l in await ordered_labels(db, viz.project_id)]
  if viz.group_by == "assignee":
    cols = [ProjectionColumn(f"assignee_{u.id}", u.display_name(), u.id) for u in await project_members(db, viz.project_id)]
    cols.append(ProjectionColumn(UNASSIGNED_KEY, UNASSIGNED_TITLE, None))
    return cols
  return []


async def sync_projection_groups(db: AsyncSession, viz: Visualization) -> SyncResult:
  result = SyncResult()
  if viz.manual_mode():
    return result

  prefix = projection_prefix(viz.group_by)
  columns = await projection_columns(db, viz)
  valid_keys = {c.key for c in columns}
  existing = await visualization_groupings(db, viz.id)
  by_key = {g.projection_key: g for g in existing if g.projection_key}

  projected: list[Grouping] = []
  for col in columns:
    g = by_key.get(col.key)
    if g is None:
      g = Grouping(visualization_id=viz.id, title=col.title, projection_key=col.key, position=0)
      db.add(g)
      result.created += 1
    else:
      g.title = col.title
      result.kept += 1
    projected.append(g)

  stale = [g for g in existing if g.projection_key and g.projection_key.startswith(prefix) and g.projection_key not in valid_keys]
  for g in stale:
    await drop_grouping(db, g)
    result.removed += 1

  stale_ids = {g.id for g in stale}
  projected_ids = {id(g) for g in projected}
  rest = [g for g in existing if g.id not in stale_ids and id(g) not in projected_ids]
  repack(projected + rest)
  await db.flush()
  logger.info(
    "projection sync visualization=%s group_by=%s created=%d kept=%d removed=%d",
    viz.id,
    viz.group_by,
    result.created,
    result.kept,
    result.removed,
  )
  return result


async def sync_project_projections(db: AsyncSession, project_id: str, kinds: set[str]) -> list[Visualization]:
  """Resync every auto-generating visualization of the project grouped by one of `kinds`."""
  res = await db.execute(
    select(Visualization).where(
      Visualization.project_id == project_id,
      Visualization.auto_generate_groups.is_(True),
      Visualization.group_by.in_(sorted(kinds)),
    )
  )
  synced = list(res.scalars().all())
  for viz in synced:
    await sync_projection_groups(db, viz)
  return synced


def _issues_for_ref(viz: Visualization, kind: str, ref_id: str | None):
  q = select(Issue).where(Issue.project_id == viz.project_id, Issue.archived_at.is_(None))
  if kind == "status":
    q = q.where(Issue.issue_status_id == ref_id)
  elif kind == "type":
    q = q.where(Issue.issue_type_id == ref_id)
  elif kind == "assignee":
    q = q.where(Issue.assigned_user_id.is_(None)) if ref_id is None else q.where(Issue.assigned_user_id == ref_id)
  elif kind == "label":
    q = q.join(IssueLabelLink, IssueLabelLink.issue_id == Issue.id).where(IssueLabelLink.issue_label_id == ref_id)
  else:
    raise ProjectionError(f"Unknown projection: {kind}")
  return q.order_by(Issue.created_at.asc(), Issue.id.asc())


async def projected_issues(db: AsyncSession, grouping: Grouping, viz: Visualization) -> list[Issue]:
  if not grouping.auto_generated() or not viz.projection_mode():
    return []
  kind, ref_id = parse_projection_key(grouping.projection_key)
  if kind != viz.group_by:
    return []
  res = await db.execute(_issues_for_ref(viz, kind, ref_id))
  return list(res.scalars().all())


async def grouped_issues(db: AsyncSession, viz: Visualization) -> list[tuple[ProjectionColumn, list[Issue]]]:
  """Issues grouped by the projection rule, computed from live data rather than stored groupings."""
  if viz.manual_mode():
    return []
  out: list[tuple[ProjectionColumn, list[Issue]]] = []
  for col in await projection_columns(db, viz):
    res = await db.execute(_issues_for_ref(viz, viz.group_by, col.ref_id))
    out.append((col, list(res.scalars().all())))
  return out


async def apply_projection(db: AsyncSession, issue: Issue, grouping: Grouping, viz: Visualization) -> None:
  """Make `issue` match the projection rule of an auto-generated grouping."""
  if not grouping.auto_generated() or not viz.projection_mode():
    return
  kind, ref_id = parse_projection_key(grouping.projection_key)
  if kind != viz.group_by:
    raise ProjectionError("Grouping does not belong to the current projection")

  if kind == "status":
    s = await db.get(IssueStatus, ref_id)
    if not s or s.project_id != issue.project_id:
      raise ProjectionError("Status no longer exists")
    issue.issue_status_id = s.id
  elif kind == "type":
    t = await db.get(IssueType, ref_id)
    if not t or t.project_id != issue.project_id:
      raise ProjectionError("Type no longer exists")
    issue.issue_type_id = t.id
  elif kind == "assignee":
    if ref_id is not None:
      res = await db.execute(
        select(ProjectMembership.id).where(ProjectMembership.project_id == issue.project_id, ProjectMembership.user_id == ref_id)
      )
      if not res.scalar_one_or_none():
        raise ProjectionError("Assignee is not a project member")
    issue.assigned_user_id = ref_id
  elif kind == "label":
    label = await db.get(IssueLabel, ref_id)
    if not label or label.project_id != issue.project_id:
      raise ProjectionError("Label no longer exists")
    await attach_label(db, issue, label)
  await db.flush()
