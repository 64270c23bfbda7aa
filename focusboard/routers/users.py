from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.deps import get_db, require_admin
from focusboard.models import User
from focusboard.presenters import user_out
from focusboard.schemas import UserOut

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
async def list_users(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> list[UserOut]:
  res = await db.execute(select(User).order_by(User.email.asc()))
  return [user_out(u) for u in res.scalars().all()]
