from __future__ import annotations

from focusboard.models import Grouping, Issue, IssueLabel, IssueStatus, IssueType, User, Visualization
from focusboard.schemas import (
  GroupingOut,
  IssueOut,
  IssueStatusOut,
  IssueTypeOut,
  LabelOut,
  UserBriefOut,
  UserOut,
  VisualizationOut,
)


def user_out(u: User) -> UserOut:
  return UserOut(
    id=u.id,
    email=u.email,
    name=u.name,
    displayName=u.display_name(),
    initials=u.initials(),
    role=u.role,
    avatarUrl=u.avatar_url,
    locale=u.locale,
    timezone=u.timezone,
    active=bool(u.active),
    profileComplete=u.is_profile_complete(),
  )


def user_brief_out(u: User) -> UserBriefOut:
  return UserBriefOut(id=u.id, email=u.email, displayName=u.display_name(), initials=u.initials(), avatarUrl=u.avatar_url)


def label_out(l: IssueLabel) -> LabelOut:
  return LabelOut(id=l.id, projectId=l.project_id, title=l.title, hexColor=l.hex_color)


def status_out(s: IssueStatus) -> IssueStatusOut:
  return IssueStatusOut(
    id=s.id,
    projectId=s.project_id,
    name=s.name,
    color=s.color,
    position=s.position,
    isDefault=bool(s.is_default),
    isClosed=bool(s.is_closed),
  )


def type_out(t: IssueType) -> IssueTypeOut:
  return IssueTypeOut(
    id=t.id,
    projectId=t.project_id,
    name=t.name,
    icon=t.icon,
    color=t.color,
    position=t.position,
    isDefault=bool(t.is_default),
  )


def issue_out(i: Issue, labels: list[IssueLabel] | None = None) -> IssueOut:
  return IssueOut(
    id=i.id,
    projectId=i.project_id,
    title=i.title,
    description=i.description,
    dueDate=i.due_date,
    archived=i.is_archived(),
    archivedAt=i.archived_at,
    finished=i.is_finished(),
    finishedAt=i.finished_at,
    commentsCount=i.comments_count,
    creatorId=i.creator_id,
    assignedUserId=i.assigned_user_id,
    issueStatusId=i.issue_status_id,
    issueTypeId=i.issue_type_id,
    labels=[label_out(l) for l in (labels or [])],
    createdAt=i.created_at,
    updatedAt=i.updated_at,
  )


def grouping_out(g: Grouping) -> GroupingOut:
  return GroupingOut(
    id=g.id,
    visualizationId=g.visualization_id,
    title=g.title,
    position=g.position,
    hidden=bool(g.hidden),
    projectionKey=g.projection_key,
    autoGenerated=g.auto_generated(),
  )


def visualization_out(v: Visualization) -> VisualizationOut:
  return VisualizationOut(
    id=v.id,
    projectId=v.project_id,
    type=v.type,
    groupBy=v.group_by,
    autoGenerateGroups=bool(v.auto_generate_groups),
    favoriteIssueLabels=list(v.favorite_issue_labels or []),
    projectionMode=v.projection_mode(),
  )
