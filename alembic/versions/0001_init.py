"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _uuid() -> postgresql.UUID:
  return postgresql.UUID(as_uuid=False)


def _timestamps() -> list[sa.Column]:
  return [
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  ]


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=True),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("locale", sa.String(length=5), nullable=True),
    sa.Column("timezone", sa.String(), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("sign_in_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("current_sign_in_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("last_sign_in_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("current_sign_in_ip", sa.String(), nullable=True),
    sa.Column("last_sign_in_ip", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_role", "users", ["role"], unique=False)

  op.create_table(
    "sessions",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("user_id", _uuid(), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("remember", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "password_reset_tokens",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("user_id", _uuid(), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("request_ip", sa.String(), nullable=True),
    sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"], unique=False)
  op.create_index("ix_password_reset_tokens_token_hash", "password_reset_tokens", ["token_hash"], unique=True)

  op.create_table(
    "projects",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("owner_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("time_tracking_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_projects_owner_id", "projects", ["owner_id"], unique=False)

  op.create_table(
    "project_memberships",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("user_id", _uuid(), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    *_timestamps(),
    sa.UniqueConstraint("project_id", "user_id", name="ux_project_memberships_project_user"),
  )
  op.create_index("ix_project_memberships_project_id", "project_memberships", ["project_id"], unique=False)
  op.create_index("ix_project_memberships_user_id", "project_memberships", ["user_id"], unique=False)

  op.create_table(
    "issue_statuses",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    *_timestamps(),
    sa.UniqueConstraint("project_id", "name", name="ux_issue_statuses_project_name"),
  )
  op.create_index("ix_issue_statuses_project_id", "issue_statuses", ["project_id"], unique=False)
  op.create_index("ix_issue_statuses_project_position", "issue_statuses", ["project_id", "position"], unique=False)

  op.create_table(
    "issue_types",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("icon", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    *_timestamps(),
    sa.UniqueConstraint("project_id", "name", name="ux_issue_types_project_name"),
  )
  op.create_index("ix_issue_types_project_id", "issue_types", ["project_id"], unique=False)
  op.create_index("ix_issue_types_project_position", "issue_types", ["project_id", "position"], unique=False)

  op.create_table(
    "issue_labels",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("hex_color", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_issue_labels_project_id", "issue_labels", ["project_id"], unique=False)
  op.create_index("ix_issue_labels_title", "issue_labels", ["title"], unique=False)

  op.create_table(
    "issues",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("due_date", sa.Date(), nullable=True),
    sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("comments_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("creator_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("assigned_user_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("issue_status_id", _uuid(), sa.ForeignKey("issue_statuses.id"), nullable=True),
    sa.Column("issue_type_id", _uuid(), sa.ForeignKey("issue_types.id"), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_issues_project_id", "issues", ["project_id"], unique=False)
  op.create_index("ix_issues_archived_at", "issues", ["archived_at"], unique=False)
  op.create_index("ix_issues_creator_id", "issues", ["creator_id"], unique=False)
  op.create_index("ix_issues_assigned_user_id", "issues", ["assigned_user_id"], unique=False)
  op.create_index("ix_issues_issue_status_id", "issues", ["issue_status_id"], unique=False)
  op.create_index("ix_issues_issue_type_id", "issues", ["issue_type_id"], unique=False)

  op.create_table(
    "issue_label_links",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("issue_id", _uuid(), sa.ForeignKey("issues.id"), nullable=False),
    sa.Column("issue_label_id", _uuid(), sa.ForeignKey("issue_labels.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("issue_id", "issue_label_id", name="ux_issue_label_links_issue_label"),
  )
  op.create_index("ix_issue_label_links_issue_id", "issue_label_links", ["issue_id"], unique=False)
  op.create_index("ix_issue_label_links_issue_label_id", "issue_label_links", ["issue_label_id"], unique=False)

  op.create_table(
    "issue_comments",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("issue_id", _uuid(), sa.ForeignKey("issues.id"), nullable=False),
    sa.Column("author_id", _uuid(), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    *_timestamps(),
  )
  op.create_index("ix_issue_comments_issue_id", "issue_comments", ["issue_id"], unique=False)
  op.create_index("ix_issue_comments_author_id", "issue_comments", ["author_id"], unique=False)

  op.create_table(
    "visualizations",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("type", sa.String(), nullable=False, server_default="board"),
    sa.Column("group_by", sa.String(), nullable=False, server_default="manual"),
    sa.Column("auto_generate_groups", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("favorite_issue_labels", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    *_timestamps(),
  )
  op.create_index("ix_visualizations_project_id", "visualizations", ["project_id"], unique=False)
  op.create_index("ix_visualizations_project_group_by", "visualizations", ["project_id", "group_by"], unique=False)

  op.create_table(
    "groupings",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("visualization_id", _uuid(), sa.ForeignKey("visualizations.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("hidden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("projection_key", sa.String(), nullable=True),
    *_timestamps(),
  )
  op.create_index("ix_groupings_visualization_id", "groupings", ["visualization_id"], unique=False)
  op.create_index("ix_groupings_projection_key", "groupings", ["projection_key"], unique=False)
  op.create_index("ix_groupings_visualization_position", "groupings", ["visualization_id", "position"], unique=False)
  op.create_index(
    "ux_groupings_visualization_projection_key",
    "groupings",
    ["visualization_id", "projection_key"],
    unique=True,
    postgresql_where=sa.text("projection_key IS NOT NULL"),
  )

  op.create_table(
    "grouping_issue_allocations",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("grouping_id", _uuid(), sa.ForeignKey("groupings.id"), nullable=False),
    sa.Column("issue_id", _uuid(), sa.ForeignKey("issues.id"), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    *_timestamps(),
  )
  op.create_index("ix_grouping_issue_allocations_grouping_id", "grouping_issue_allocations", ["grouping_id"], unique=False)
  op.create_index("ix_grouping_issue_allocations_issue_id", "grouping_issue_allocations", ["issue_id"], unique=False)
  op.create_index(
    "ix_grouping_issue_allocations_grouping_position",
    "grouping_issue_allocations",
    ["grouping_id", "position"],
    unique=False,
  )

  op.create_table(
    "audit_events",
    sa.Column("id", _uuid(), primary_key=True),
    sa.Column("project_id", _uuid(), nullable=True),
    sa.Column("issue_id", _uuid(), nullable=True),
    sa.Column("actor_id", _uuid(), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", postgresql.JSONB(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_project_id", "audit_events", ["project_id"], unique=False)
  op.create_index("ix_audit_events_issue_id", "audit_events", ["issue_id"], unique=False)
  op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"], unique=False)


def downgrade() -> None:
  op.drop_table("audit_events")
  op.drop_table("grouping_issue_allocations")
  op.drop_table("groupings")
  op.drop_table("visualizations")
  op.drop_table("issue_comments")
  op.drop_table("issue_label_links")
  op.drop_table("issues")
  op.drop_table("issue_labels")
  op.drop_table("issue_types")
  op.drop_table("issue_statuses")
  op.drop_table("project_memberships")
  op.drop_table("projects")
  op.drop_table("password_reset_tokens")
  op.drop_table("sessions")
  op.drop_table("users")
