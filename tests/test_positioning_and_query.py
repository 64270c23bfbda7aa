from __future__ import annotations

from dataclasses import dataclass

import pytest

from focusboard.errors import ProjectionError
from focusboard.issue_query import parse_sort
from focusboard.positioning import place, repack
from focusboard.projection import UNASSIGNED_KEY, parse_projection_key


@dataclass
class _Item:
  id: str
  position: int


def _items(*ids: str) -> list[_Item]:
  return [_Item(id=i, position=n * 10) for n, i in enumerate(ids)]


@pytest.mark.anyio
async def test_repack_writes_contiguous_positions() -> None:
  items = _items("a", "b", "c")
  repack(items)
  assert [x.position for x in items] == [0, 1, 2]


@pytest.mark.anyio
async def test_place_moves_and_clamps() -> None:
  items = _items("a", "b", "c")
  ordered = place(items, items[2], 0)
  assert [(x.id, x.position) for x in ordered] == [("c", 0), ("a", 1), ("b", 2)]

  ordered = place(ordered, ordered[0], 50)
  assert [x.id for x in ordered] == ["a", "b", "c"]

  newcomer = _Item(id="d", position=0)
  ordered = place(ordered, newcomer, 1)
  assert [(x.id, x.position) for x in ordered] == [("a", 0), ("d", 1), ("b", 2), ("c", 3)]


@pytest.mark.anyio
async def test_parse_projection_key() -> None:
  assert parse_projection_key("status_123") == ("status", "123")
  assert parse_projection_key(UNASSIGNED_KEY) == ("assignee", None)
  with pytest.raises(ProjectionError):
    parse_projection_key("status")


@pytest.mark.anyio
async def test_parse_sort() -> None:
  assert parse_sort(None) == ("updated_at", "desc")
  assert parse_sort("Title") == ("title", "asc")
  assert parse_sort("due_date desc") == ("due_date", "desc")
  for bad in ("priority", "title sideways", "title asc extra"):
    with pytest.raises(ValueError):
      parse_sort(bad)
