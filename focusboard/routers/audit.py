from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.deps import get_current_user, get_db
from focusboard.models import AuditEvent, User
from focusboard.policies import accessible_project_ids, load_issue, load_project
from focusboard.schemas import AuditEventOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEventOut])
async def list_audit(
  projectId: str | None = None,
  issueId: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AuditEventOut]:
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(200)
  if projectId:
    await load_project(projectId, "viewer", user, db)
    q = q.where(AuditEvent.project_id == projectId)
  if issueId:
    await load_issue(issueId, "viewer", user, db)
    q = q.where(AuditEvent.issue_id == issueId)
  if not projectId and not issueId:
    # Own events outside any project; project events only while the project is visible.
    q = q.where(
      or_(
        AuditEvent.project_id.in_(accessible_project_ids(user)),
        and_(AuditEvent.project_id.is_(None), AuditEvent.actor_id == user.id),
      )
    )
  res = await db.execute(q)
  out = []
  for ev in res.scalars().all():
    out.append(
      AuditEventOut(
        id=ev.id,
        projectId=ev.project_id,
        issueId=ev.issue_id,
        actorId=ev.actor_id,
        eventType=ev.event_type,
        entityType=ev.entity_type,
        entityId=ev.entity_id,
        payload=ev.payload or {},
        createdAt=ev.created_at,
      )
    )
  return out
