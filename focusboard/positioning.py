from __future__ import annotations

from typing import Any, Protocol, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.models import Grouping, GroupingIssueAllocation


class _Positioned(Protocol):
  id: str
  position: int


async def next_position(db: AsyncSession, column: Any, *criteria: Any) -> int:
  res = await db.execute(select(func.max(column)).where(*criteria))
  max_pos = res.scalar_one()
  return (max_pos + 1) if max_pos is not None else 0


def repack(items: Sequence[_Positioned]) -> None:
  for idx, x in enumerate(items):
    x.position = idx


def place(items: Sequence[_Positioned], item: _Positioned, position: int) -> list[_Positioned]:
  # Compute ordering in memory, then write sequential indices.
  arr = [x for x in items if x.id != item.id]
  idx = min(max(position, 0), len(arr))
  arr.insert(idx, item)
  repack(arr)
  return arr


async def visualization_groupings(db: AsyncSession, visualization_id: str) -> list[Grouping]:
  res = await db.execute(
    select(Grouping).where(Grouping.visualization_id == visualization_id).order_by(Grouping.position.asc(), Grouping.created_at.asc())
  )
  return list(res.scalars().all())


async def grouping_allocations(db: AsyncSession, grouping_id: str) -> list[GroupingIssueAllocation]:
  res = await db.execute(
    select(GroupingIssueAllocation)
    .where(GroupingIssueAllocation.grouping_id == grouping_id)
    .order_by(GroupingIssueAllocation.position.asc(), GroupingIssueAllocation.created_at.asc())
  )
  return list(res.scalars().all())


async def issue_allocation(db: AsyncSession, visualization_id: str, issue_id: str) -> GroupingIssueAllocation | None:
  res = await db.execute(
    select(GroupingIssueAllocation)
    .join(Grouping, Grouping.id == GroupingIssueAllocation.grouping_id)
    .where(Grouping.visualization_id == visualization_id, GroupingIssueAllocation.issue_id == issue_id)
  )
  return res.scalars().first()


async def release_allocation(db: AsyncSession, allocation: GroupingIssueAllocation) -> None:
  grouping_id = allocation.grouping_id
  await db.delete(allocation)
  await db.flush()
  repack(await grouping_allocations(db, grouping_id))


async def allocate_last(db: AsyncSession, grouping: Grouping, issue_id: str) -> GroupingIssueAllocation:
  """Put the issue at the end of `grouping`, dropping any other allocation it has on the same board."""
  existing = await issue_allocation(db, grouping.visualization_id, issue_id)
  if existing and existing.grouping_id == grouping.id:
    arr = await grouping_allocations(db, grouping.id)
    place(arr, existing, len(arr))
    return existing
  if existing:
    await release_allocation(db, existing)
  pos = len(await grouping_allocations(db, grouping.id))
  a = GroupingIssueAllocation(grouping_id=grouping.id, issue_id=issue_id, position=pos)
  db.add(a)
  await db.flush()
  return a


async def move_allocation(db: AsyncSession, allocation: GroupingIssueAllocation, target: Grouping, position: int) -> None:
  source_id = allocation.grouping_id
  if source_id == target.id:
    place(await grouping_allocations(db, source_id), allocation, position)
    return
  from_arr = [x for x in await grouping_allocations(db, source_id) if x.id != allocation.id]
  to_arr = await grouping_allocations(db, target.id)
  allocation.grouping_id = target.id
  repack(from_arr)
  place(to_arr, allocation, position)


async def drop_issue_allocations(db: AsyncSession, issue_id: str) -> None:
  res = await db.execute(select(GroupingIssueAllocation).where(GroupingIssueAllocation.issue_id == issue_id))
  allocations = list(res.scalars().all())
  for a in allocations:
    await release_allocation(db, a)


async def drop_grouping(db: AsyncSession, grouping: Grouping) -> None:
  """Delete a grouping and its allocations. Callers repack the remaining groupings."""
  await db.execute(delete(GroupingIssueAllocation).where(GroupingIssueAllocation.grouping_id == grouping.id))
  await db.delete(grouping)
  await db.flush()
