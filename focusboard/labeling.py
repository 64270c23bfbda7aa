from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.models import Issue, IssueLabel, IssueLabelLink


def normalize_title(title: str) -> str:
  return (title or "").strip()


async def label_with_title(db: AsyncSession, project_id: str, title: str) -> IssueLabel | None:
  res = await db.execute(
    select(IssueLabel)
    .where(IssueLabel.project_id == project_id, func.lower(IssueLabel.title) == normalize_title(title).lower())
    .order_by(IssueLabel.created_at.asc())
  )
  return res.scalars().first()


async def find_or_create_label(db: AsyncSession, project_id: str, title: str, hex_color: str | None = None) -> tuple[IssueLabel, bool]:
  label = await label_with_title(db, project_id, title)
  if label:
    return label, False
  label = IssueLabel(project_id=project_id, title=normalize_title(title), hex_color=hex_color)
  db.add(label)
  await db.flush()
  return label, True


async def issue_labels(db: AsyncSession, issue_id: str) -> list[IssueLabel]:
  res = await db.execute(
    select(IssueLabel)
    .join(IssueLabelLink, IssueLabelLink.issue_label_id == IssueLabel.id)
    .where(IssueLabelLink.issue_id == issue_id)
    .order_by(IssueLabel.title.asc())
  )
  return list(res.scalars().all())


async def labels_by_issue(db: AsyncSession, issue_ids: list[str]) -> dict[str, list[IssueLabel]]:
  out: dict[str, list[IssueLabel]] = {i: [] for i in issue_ids}
  if not issue_ids:
    return out
  res = await db.execute(
    select(IssueLabelLink.issue_id, IssueLabel)
    .join(IssueLabel, IssueLabel.id == IssueLabelLink.issue_label_id)
    .where(IssueLabelLink.issue_id.in_(issue_ids))
    .order_by(IssueLabel.title.asc())
  )
  for issue_id, label in res.all():
    out.setdefault(issue_id, []).append(label)
  return out


async def attach_label(db: AsyncSession, issue: Issue, label: IssueLabel) -> bool:
  res = await db.execute(
    select(IssueLabelLink.id).where(IssueLabelLink.issue_id == issue.id, IssueLabelLink.issue_label_id == label.id)
  )
  if res.scalar_one_or_none():
    return False
  db.add(IssueLabelLink(issue_id=issue.id, issue_label_id=label.id))
  await db.flush()
  return True


async def detach_label(db: AsyncSession, issue: Issue, label: IssueLabel) -> bool:
  res = await db.execute(
    delete(IssueLabelLink).where(IssueLabelLink.issue_id == issue.id, IssueLabelLink.issue_label_id == label.id)
  )
  return (res.rowcount or 0) > 0


async def set_labels_list(db: AsyncSession, issue: Issue, titles: list[str]) -> list[IssueLabel]:
  """Replace the issue's labels with `titles`, creating missing labels. A blank list leaves labels alone."""
  cleaned = [t for t in (normalize_title(raw) for raw in titles) if t]
  if not cleaned:
    return await issue_labels(db, issue.id)
  wanted: list[IssueLabel] = []
  seen: set[str] = set()
  for title in cleaned:
    if title.lower() in seen:
      continue
    seen.add(title.lower())
    label, _ = await find_or_create_label(db, issue.project_id, title)
    wanted.append(label)
  wanted_ids = {l.id for l in wanted}
  for label in await issue_labels(db, issue.id):
    if label.id not in wanted_ids:
      await detach_label(db, issue, label)
  for label in wanted:
    await attach_label(db, issue, label)
  return wanted
