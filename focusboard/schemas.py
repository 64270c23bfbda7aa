from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

ProjectRole = Literal["owner", "editor", "viewer"]
GroupBy = Literal["manual", "status", "assignee", "type", "label"]
ArchivingStatus = Literal["all", "active", "archived", "finished"]


def _hex_color(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, str):
    s = value.strip()
    if not _HEX_COLOR_RE.fullmatch(s):
      raise ValueError("color must look like #RRGGBB")
    return s.upper()
  return value


class UserOut(BaseModel):
  id: str
  email: str
  name: str | None = None
  displayName: str
  initials: str
  role: Literal["admin", "member"]
  avatarUrl: str | None = None
  locale: str | None = None
  timezone: str | None = None
  active: bool = True
  profileComplete: bool = False


class UserBriefOut(BaseModel):
  id: str
  email: str
  displayName: str
  initials: str
  avatarUrl: str | None = None


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=8, max_length=200)
  name: str | None = Field(default=None, max_length=120)


class LoginIn(BaseModel):
  email: str
  password: str
  rememberMe: bool = False


class ProfileUpdateIn(BaseModel):
  name: str | None = Field(default=None, max_length=120)
  avatarUrl: str | None = Field(default=None, max_length=500)
  locale: str | None = Field(default=None, max_length=5)
  timezone: str | None = Field(default=None, min_length=1, max_length=64)


class PasswordChangeIn(BaseModel):
  currentPassword: str
  newPassword: str = Field(min_length=8, max_length=200)


class PasswordResetRequestIn(BaseModel):
  email: str


class PasswordResetRequestOut(BaseModel):
  ok: bool = True
  token: str | None = None


class PasswordResetConfirmIn(BaseModel):
  token: str = Field(min_length=8, max_length=200)
  newPassword: str = Field(min_length=8, max_length=200)


class ProjectCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=200)
  template: str | None = None
  timeTrackingEnabled: bool = True


class ProjectUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=200)
  timeTrackingEnabled: bool | None = None


class ProjectOut(BaseModel):
  id: str
  name: str
  ownerId: str | None
  role: ProjectRole | None = None
  timeTrackingEnabled: bool
  archived: bool
  archivedAt: datetime | None
  createdAt: datetime
  updatedAt: datetime


class MemberAddIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  role: ProjectRole = "viewer"


class MemberUpdateIn(BaseModel):
  role: ProjectRole


class MemberOut(BaseModel):
  id: str
  projectId: str
  userId: str
  email: str
  displayName: str
  initials: str
  role: ProjectRole
  isOwner: bool


class IssueStatusCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=100)
  color: str
  isDefault: bool = False
  isClosed: bool = False

  @field_validator("color", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class IssueStatusUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=100)
  color: str | None = None
  isDefault: bool | None = None
  isClosed: bool | None = None

  @field_validator("color", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class IssueStatusOut(BaseModel):
  id: str
  projectId: str
  name: str
  color: str
  position: int
  isDefault: bool
  isClosed: bool


class IssueTypeCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=100)
  icon: str = Field(min_length=1, max_length=16)
  color: str
  isDefault: bool = False

  @field_validator("color", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class IssueTypeUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=100)
  icon: str | None = Field(default=None, min_length=1, max_length=16)
  color: str | None = None
  isDefault: bool | None = None

  @field_validator("color", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class IssueTypeOut(BaseModel):
  id: str
  projectId: str
  name: str
  icon: str
  color: str
  position: int
  isDefault: bool


class ReorderIn(BaseModel):
  ids: list[str]


class LabelCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=100)
  hexColor: str | None = None

  @field_validator("hexColor", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class LabelUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=100)
  hexColor: str | None = None

  @field_validator("hexColor", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class LabelOut(BaseModel):
  id: str
  projectId: str
  title: str
  hexColor: str | None = None


class IssueCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  dueDate: date | None = None
  assignedUserId: str | None = None
  issueStatusId: str | None = None
  issueTypeId: str | None = None
  labels: list[str] = []


class IssueUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  dueDate: date | None = None
  assignedUserId: str | None = None
  issueStatusId: str | None = None
  issueTypeId: str | None = None
  labels: list[str] | None = None


class IssueDescriptionIn(BaseModel):
  description: str | None = None


class IssueAssigneeIn(BaseModel):
  userId: str | None = None


class IssueLabelIn(BaseModel):
  title: str = Field(min_length=1, max_length=100)
  hexColor: str | None = None

  @field_validator("hexColor", mode="before")
  @classmethod
  def _v_color(cls, v: object) -> object:
    return _hex_color(v)


class IssueGroupingIn(BaseModel):
  groupingId: str | None = None


class IssueOut(BaseModel):
  id: str
  projectId: str
  title: str
  description: str | None = None
  dueDate: date | None = None
  archived: bool
  archivedAt: datetime | None = None
  finished: bool
  finishedAt: datetime | None = None
  commentsCount: int
  creatorId: str | None = None
  assignedUserId: str | None = None
  issueStatusId: str | None = None
  issueTypeId: str | None = None
  labels: list[LabelOut] = []
  createdAt: datetime
  updatedAt: datetime


class IssuePageOut(BaseModel):
  items: list[IssueOut]
  page: int
  perPage: int
  count: int
  pages: int


class CommentIn(BaseModel):
  content: str = Field(min_length=1, max_length=20000)


class CommentOut(BaseModel):
  id: str
  issueId: str
  authorId: str
  author: UserBriefOut | None = None
  content: str
  createdAt: datetime
  updatedAt: datetime


class VisualizationUpdateIn(BaseModel):
  favoriteIssueLabels: list[str] | None = None
  groupBy: GroupBy | None = None
  autoGenerateGroups: bool | None = None


class VisualizationOut(BaseModel):
  id: str
  projectId: str
  type: str
  groupBy: GroupBy
  autoGenerateGroups: bool
  favoriteIssueLabels: list[str]
  projectionMode: bool


class GroupingCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)


class GroupingUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=200)
  hidden: bool | None = None


class GroupingMoveIn(BaseModel):
  groupingId: str
  position: int = Field(ge=0)


class GroupingMoveAllIn(BaseModel):
  toGroupingId: str


class GroupingOut(BaseModel):
  id: str
  visualizationId: str
  title: str
  position: int
  hidden: bool
  projectionKey: str | None = None
  autoGenerated: bool


class BoardColumnOut(BaseModel):
  grouping: GroupingOut
  issues: list[IssueOut]


class BoardOut(BaseModel):
  visualization: VisualizationOut
  columns: list[BoardColumnOut]
  statuses: list[IssueStatusOut]
  types: list[IssueTypeOut]
  members: list[UserBriefOut]
  labels: list[LabelOut]


class GroupedIssuesOut(BaseModel):
  key: str
  title: str
  issues: list[IssueOut]


class GridOut(BaseModel):
  visualization: VisualizationOut
  issues: list[IssueOut]
  statuses: list[IssueStatusOut]
  types: list[IssueTypeOut]
  members: list[UserBriefOut]


class VisualizationIssueCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  dueDate: date | None = None
  groupingId: str


class AllocationMoveIn(BaseModel):
  issueId: str
  groupingId: str
  position: int = Field(default=0, ge=0)


class AllocationOut(BaseModel):
  id: str
  groupingId: str
  issueId: str
  position: int


class AuditEventOut(BaseModel):
  id: str
  projectId: str | None
  issueId: str | None
  actorId: str | None
  eventType: str
  entityType: str
  entityId: str | None
  payload: dict[str, Any]
  createdAt: datetime
