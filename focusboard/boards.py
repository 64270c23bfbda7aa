from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.labeling import labels_by_issue
from focusboard.models import Grouping, GroupingIssueAllocation, Issue, Visualization
from focusboard.positioning import visualization_groupings
from focusboard.presenters import grouping_out, issue_out, label_out, status_out, type_out, user_brief_out, visualization_out
from focusboard.projection import ordered_labels, ordered_statuses, ordered_types, project_members, projected_issues
from focusboard.schemas import BoardColumnOut, BoardOut, IssueOut


async def default_visualization(db: AsyncSession, project_id: str) -> Visualization:
  res = await db.execute(
    select(Visualization).where(Visualization.project_id == project_id).order_by(Visualization.created_at.asc(), Visualization.id.asc())
  )
  viz = res.scalars().first()
  if viz:
    return viz
  viz = Visualization(project_id=project_id, type="board", group_by="manual", auto_generate_groups=False, favorite_issue_labels=[])
  db.add(viz)
  await db.flush()
  return viz


async def issues_out(db: AsyncSession, issues: list[Issue]) -> list[IssueOut]:
  labels = await labels_by_issue(db, [i.id for i in issues])
  return [issue_out(i, labels.get(i.id, [])) for i in issues]


async def issue_payload(db: AsyncSession, issue: Issue) -> IssueOut:
  return (await issues_out(db, [issue]))[0]


async def allocated_issues(db: AsyncSession, grouping: Grouping) -> list[Issue]:
  res = await db.execute(
    select(Issue)
    .join(GroupingIssueAllocation, GroupingIssueAllocation.issue_id == Issue.id)
    .where(GroupingIssueAllocation.grouping_id == grouping.id, Issue.archived_at.is_(None))
    .order_by(GroupingIssueAllocation.position.asc(), GroupingIssueAllocation.created_at.asc())
  )
  return list(res.scalars().all())


async def visible_groupings(db: AsyncSession, viz: Visualization) -> list[Grouping]:
  groupings = await visualization_groupings(db, viz.id)
  if viz.manual_mode():
    return groupings
  prefix = f"{viz.group_by}_"
  return [g for g in groupings if g.projection_key and g.projection_key.startswith(prefix)]


async def column_issues(db: AsyncSession, grouping: Grouping, viz: Visualization) -> list[Issue]:
  if viz.projection_mode():
    return await projected_issues(db, grouping, viz)
  return await allocated_issues(db, grouping)


async def build_board(db: AsyncSession, viz: Visualization) -> BoardOut:
  columns: list[BoardColumnOut] = []
  for g in await visible_groupings(db, viz):
    issues = await column_issues(db, g, viz)
    columns.append(BoardColumnOut(grouping=grouping_out(g), issues=await issues_out(db, issues)))
  return BoardOut(
    visualization=visualization_out(viz),
    columns=columns,
    statuses=[status_out(s) for s in await ordered_statuses(db, viz.project_id)],
    types=[type_out(t) for t in await ordered_types(db, viz.project_id)],
    members=[user_brief_out(u) for u in await project_members(db, viz.project_id)],
    labels=[label_out(l) for l in await ordered_labels(db, viz.project_id)],
  )
