from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.models import Grouping, IssueStatus, IssueType, Project, Visualization

AVAILABLE_TEMPLATES = ("basic_kanban", "empty")


def basic_kanban_statuses() -> list[dict]:
  return [
    {"name": "To Do", "color": "#6B7280", "is_default": True, "is_closed": False},
    {"name": "In Progress", "color": "#3B82F6", "is_default": False, "is_closed": False},
    {"name": "Done", "color": "#10B981", "is_default": False, "is_closed": True},
  ]


def basic_kanban_types() -> list[dict]:
  return [
    {"name": "Task", "icon": "📋", "color": "#6B7280", "is_default": True},
    {"name": "Bug", "icon": "🐛", "color": "#EF4444", "is_default": False},
    {"name": "Feature", "icon": "✨", "color": "#8B5CF6", "is_default": False},
  ]


def basic_kanban_groupings() -> list[str]:
  return ["To Do", "In Progress", "Done"]


async def apply_template(db: AsyncSession, project: Project, viz: Visualization, template: str) -> None:
  """
  Seed a freshly created project from a named template.

  `empty` leaves the project bare. Status and type positions start at 1,
  matching the max + 1 rule used when they are created one by one.
  """
  if template not in AVAILABLE_TEMPLATES:
    raise ValueError(f"Unknown template: {template}")
  if template == "empty":
    return

  for idx, item in enumerate(basic_kanban_statuses(), start=1):
    db.add(IssueStatus(project_id=project.id, position=idx, **item))
  for idx, item in enumerate(basic_kanban_types(), start=1):
    db.add(IssueType(project_id=project.id, position=idx, **item))
  for idx, title in enumerate(basic_kanban_groupings()):
    db.add(Grouping(visualization_id=viz.id, title=title, position=idx))
  await db.flush()
