from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.models import Issue, IssueLabel, IssueLabelLink

SORT_FIELDS = {
  "title": Issue.title,
  "due_date": Issue.due_date,
  "created_at": Issue.created_at,
  "updated_at": Issue.updated_at,
}
DEFAULT_SORT = "updated_at desc"
MAX_PER_PAGE = 100


@dataclass
class IssueFilters:
  q: str | None = None
  archiving_status: str = "active"
  labels: list[str] = field(default_factory=list)
  assigned_user_id: str | None = None
  creator_id: str | None = None
  unassigned: bool = False
  status_id: str | None = None
  type_id: str | None = None
  due_from: date | None = None
  due_to: date | None = None


@dataclass
class IssuePage:
  items: list[Issue]
  page: int
  per_page: int
  count: int
  pages: int


def parse_sort(sort: str | None) -> tuple[str, str]:
  """Parse `"<field> [asc|desc]"`; raises ValueError for unknown fields or directions."""
  raw = (sort or DEFAULT_SORT).strip().lower()
  parts = raw.split()
  if not parts or len(parts) > 2:
    raise ValueError(f"Invalid sort: {sort}")
  field_name = parts[0]
  direction = parts[1] if len(parts) == 2 else "asc"
  if field_name not in SORT_FIELDS:
    raise ValueError(f"Unsupported sort field: {field_name}")
  if direction not in ("asc", "desc"):
    raise ValueError(f"Unsupported sort direction: {direction}")
  return field_name, direction


def by_archiving_status(q: Any, archiving_status: str) -> Any:
  if archiving_status == "all":
    return q
  if archiving_status == "active":
    return q.where(Issue.archived_at.is_(None))
  if archiving_status == "archived":
    return q.where(Issue.archived_at.is_not(None))
  if archiving_status == "finished":
    return q.where(Issue.finished_at.is_not(None))
  raise ValueError(f"Unknown archiving status: {archiving_status}")


def by_label_titles(q: Any, titles: list[str]) -> Any:
  # Every requested title must be present, compared case-insensitively.
  wanted = sorted({t.strip().lower() for t in titles if t and t.strip()})
  if not wanted:
    return q
  matching = (
    select(IssueLabelLink.issue_id)
    .join(IssueLabel, IssueLabel.id == IssueLabelLink.issue_label_id)
    .where(func.lower(IssueLabel.title).in_(wanted))
    .group_by(IssueLabelLink.issue_id)
    .having(func.count(distinct(func.lower(IssueLabel.title))) == len(wanted))
  )
  return q.where(Issue.id.in_(matching))


def build_issue_query(project_id: str, filters: IssueFilters) -> Any:
  q = select(Issue).where(Issue.project_id == project_id)
  q = by_archiving_status(q, filters.archiving_status)
  if filters.q and filters.q.strip():
    q = q.where(func.lower(Issue.title).contains(filters.q.strip().lower(), autoescape=True))
  q = by_label_titles(q, filters.labels)
  if filters.unassigned:
    q = q.where(Issue.assigned_user_id.is_(None))
  elif filters.assigned_user_id:
    q = q.where(Issue.assigned_user_id == filters.assigned_user_id)
  if filters.creator_id:
    q = q.where(Issue.creator_id == filters.creator_id)
  if filters.status_id:
    q = q.where(Issue.issue_status_id == filters.status_id)
  if filters.type_id:
    q = q.where(Issue.issue_type_id == filters.type_id)
  if filters.due_from:
    q = q.where(Issue.due_date >= filters.due_from)
  if filters.due_to:
    q = q.where(Issue.due_date <= filters.due_to)
  return q


async def paginate_issues(
  db: AsyncSession,
  project_id: str,
  filters: IssueFilters,
  *,
  sort: str | None,
  page: int,
  per_page: int,
) -> IssuePage:
  field_name, direction = parse_sort(sort)
  per_page = min(max(1, int(per_page)), MAX_PER_PAGE)
  page = max(1, int(page))

  q = build_issue_query(project_id, filters)
  cres = await db.execute(select(func.count()).select_from(q.subquery()))
  count = int(cres.scalar_one() or 0)

  column = SORT_FIELDS[field_name]
  order = column.desc() if direction == "desc" else column.asc()
  res = await db.execute(q.order_by(order, Issue.id.asc()).offset((page - 1) * per_page).limit(per_page))
  return IssuePage(
    items=list(res.scalars().all()),
    page=page,
    per_page=per_page,
    count=count,
    pages=max(1, math.ceil(count / per_page)),
  )
