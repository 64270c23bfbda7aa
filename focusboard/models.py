from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")

PROJECT_ROLES = ("owner", "editor", "viewer")
EDITOR_ROLES = ("owner", "editor")
GROUP_BY_OPTIONS = ("manual", "status", "assignee", "type", "label")
VISUALIZATION_TYPES = ("board",)


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive datetimes for timezone-aware columns.
  if dt is None:
    return None
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


def is_uuid(value: object) -> bool:
  if not isinstance(value, str):
    return False
  try:
    uuid.UUID(value)
  except ValueError:
    return False
  return True


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member", index=True)
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  locale: Mapped[str | None] = mapped_column(String(5), nullable=True)
  timezone: Mapped[str | None] = mapped_column(String, nullable=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  sign_in_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_sign_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  last_sign_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  current_sign_in_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  last_sign_in_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def display_name(self) -> str:
    if self.name and self.name.strip():
      return self.name.strip()
    return self.email.split("@", 1)[0]

  def initials(self) -> str:
    if self.name and self.name.strip():
      return "".join(part[0] for part in self.name.split()).upper()[:2]
    return self.email[:2].upper()

  def is_profile_complete(self) -> bool:
    return bool(self.locale) and bool(self.timezone)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  remember: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PasswordResetToken(Base):
  __tablename__ = "password_reset_tokens"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  request_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  name: Mapped[str] = mapped_column(String, nullable=False)
  owner_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=True, index=True)
  time_tracking_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ProjectMembership(Base):
  __tablename__ = "project_memberships"
  __table_args__ = (UniqueConstraint("project_id", "user_id", name="ux_project_memberships_project_user"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="viewer")
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def can_edit(self) -> bool:
    return self.role in EDITOR_ROLES

  def can_manage_members(self) -> bool:
    return self.role == "owner"


class IssueStatus(Base):
  __tablename__ = "issue_statuses"
  __table_args__ = (
    UniqueConstraint("project_id", "name", name="ux_issue_statuses_project_name"),
    Index("ix_issue_statuses_project_position", "project_id", "position"),
  )

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str] = mapped_column(String, nullable=False, default="#6B7280")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class IssueType(Base):
  __tablename__ = "issue_types"
  __table_args__ = (
    UniqueConstraint("project_id", "name", name="ux_issue_types_project_name"),
    Index("ix_issue_types_project_position", "project_id", "position"),
  )

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  icon: Mapped[str] = mapped_column(String, nullable=False, default="📋")
  color: Mapped[str] = mapped_column(String, nullable=False, default="#6B7280")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class IssueLabel(Base):
  __tablename__ = "issue_labels"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False, index=True)
  hex_color: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class IssueLabelLink(Base):
  __tablename__ = "issue_label_links"
  __table_args__ = (UniqueConstraint("issue_id", "issue_label_id", name="ux_issue_label_links_issue_label"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  issue_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("issues.id"), nullable=False, index=True)
  issue_label_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("issue_labels.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Issue(Base):
  __tablename__ = "issues"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  creator_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=True, index=True)
  assigned_user_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=True, index=True)
  issue_status_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("issue_statuses.id"), nullable=True, index=True)
  issue_type_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("issue_types.id"), nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def is_archived(self) -> bool:
    return self.archived_at is not None

  def is_finished(self) -> bool:
    return self.finished_at is not None


class IssueComment(Base):
  __tablename__ = "issue_comments"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  issue_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("issues.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Visualization(Base):
  __tablename__ = "visualizations"
  __table_args__ = (Index("ix_visualizations_project_group_by", "project_id", "group_by"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("projects.id"), nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False, default="board")
  group_by: Mapped[str] = mapped_column(String, nullable=False, default="manual")
  auto_generate_groups: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  favorite_issue_labels: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def projection_mode(self) -> bool:
    return self.group_by != "manual"

  def manual_mode(self) -> bool:
    return self.group_by == "manual"


class Grouping(Base):
  __tablename__ = "groupings"
  __table_args__ = (
    Index("ix_groupings_visualization_position", "visualization_id", "position"),
    Index(
      "ux_groupings_visualization_projection_key",
      "visualization_id",
      "projection_key",
      unique=True,
      sqlite_where=text("projection_key IS NOT NULL"),
      postgresql_where=text("projection_key IS NOT NULL"),
    ),
  )

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  visualization_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("visualizations.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  projection_key: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def auto_generated(self) -> bool:
    return bool(self.projection_key)

  def manual(self) -> bool:
    return self.projection_key is None


class GroupingIssueAllocation(Base):
  __tablename__ = "grouping_issue_allocations"
  __table_args__ = (Index("ix_grouping_issue_allocations_grouping_position", "grouping_id", "position"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  grouping_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("groupings.id"), nullable=False, index=True)
  issue_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("issues.id"), nullable=False, index=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  project_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)
  issue_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)
  actor_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
