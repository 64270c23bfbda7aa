from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusboard.audit import write_audit
from focusboard.config import settings
from focusboard.deps import client_ip, get_current_user, get_db
from focusboard.models import PasswordResetToken, Session as DbSession, User, as_utc, utcnow
from focusboard.presenters import user_out
from focusboard.rate_limit import limiter
from focusboard.schemas import (
  LoginIn,
  PasswordChangeIn,
  PasswordResetConfirmIn,
  PasswordResetRequestIn,
  PasswordResetRequestOut,
  ProfileUpdateIn,
  RegisterIn,
  UserOut,
)
from focusboard.security import (
  SESSION_COOKIE_NAME,
  hash_password,
  new_session_expires_at,
  password_reset_expires_at,
  password_reset_token_hash,
  password_reset_token_new,
  session_ttl,
  verify_password,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


def _normalize_email(email: str | None) -> str:
  return (email or "").strip().lower()


async def _start_session(db: AsyncSession, request: Request, response: Response, u: User, *, remember: bool) -> DbSession:
  now = utcnow()
  ip = client_ip(request)
  u.sign_in_count = int(u.sign_in_count or 0) + 1
  u.last_sign_in_at = u.current_sign_in_at
  u.last_sign_in_ip = u.current_sign_in_ip
  u.current_sign_in_at = now
  u.current_sign_in_ip = ip

  s = DbSession(
    user_id=u.id,
    remember=remember,
    expires_at=new_session_expires_at(remember),
    created_ip=ip,
    user_agent=request.headers.get("user-agent"),
  )
  db.add(s)
  await db.flush()

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(session_ttl(remember).total_seconds()),
    expires=s.expires_at,
    path="/",
  )
  return s


@router.post("/register", response_model=UserOut)
async def register(payload: RegisterIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  if not settings.registration_enabled:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration disabled")
  ip = client_ip(request) or "unknown"
  _rate_limit_or_429(key=f"auth:register:ip:{ip}", limit=int(settings.rate_limit_register_ip_per_minute), window_seconds=60)

  email = _normalize_email(payload.email)
  if "@" not in email:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email")
  exists = await db.execute(select(User.id).where(User.email == email))
  if exists.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

  # The very first account administers the instance.
  cres = await db.execute(select(func.count()).select_from(User))
  role = "admin" if int(cres.scalar_one() or 0) == 0 else "member"

  u = User(
    email=email,
    name=(payload.name or "").strip() or None,
    password_hash=hash_password(payload.password),
    role=role,
    locale=settings.default_locale,
    timezone=settings.default_timezone,
  )
  db.add(u)
  await db.flush()
  await _start_session(db, request, response, u, remember=False)
  await write_audit(db, event_type="auth.registered", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"role": role})
  await db.commit()
  return user_out(u)


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  ip = client_ip(request) or "unknown"
  email = _normalize_email(payload.email)
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email:
    _rate_limit_or_429(key=f"auth:login:email:{email}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)

  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    await write_audit(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, actor_id=None, payload={"email": email, "ip": ip})
    await db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")

  await _start_session(db, request, response, u, remember=payload.rememberMe)
  await write_audit(
    db,
    event_type="auth.login.success",
    entity_type="User",
    entity_id=u.id,
    actor_id=u.id,
    payload={"rememberMe": payload.rememberMe},
  )
  await db.commit()
  return user_out(u)


@router.post("/logout")
async def logout(
  response: Response,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
  await db.execute(delete(DbSession).where(DbSession.id == session_id))
  await write_audit(db, event_type="auth.logout", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)


@router.patch("/me", response_model=UserOut)
async def update_me(payload: ProfileUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  fields_set = payload.model_fields_set
  if "name" in fields_set:
    user.name = (payload.name or "").strip() or None
  if "avatarUrl" in fields_set:
    user.avatar_url = (payload.avatarUrl or "").strip() or None
  if "locale" in fields_set:
    if payload.locale is not None and payload.locale not in settings.available_locale_list():
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported locale")
    user.locale = payload.locale
  if "timezone" in fields_set:
    if payload.timezone is not None:
      try:
        ZoneInfo(payload.timezone)
      except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid timezone")
    user.timezone = payload.timezone

  await write_audit(
    db,
    event_type="user.profile.updated",
    entity_type="User",
    entity_id=user.id,
    actor_id=user.id,
    payload={"fields": sorted(fields_set)},
  )
  await db.commit()
  return user_out(user)


@router.post("/password")
async def change_password(
  payload: PasswordChangeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
  if not verify_password(payload.currentPassword, user.password_hash):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  user.password_hash = hash_password(payload.newPassword)
  # Other sessions stop working once the password changes.
  await db.execute(delete(DbSession).where(DbSession.user_id == user.id, DbSession.id != session_id))
  await write_audit(db, event_type="auth.password.changed", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  return {"ok": True}


@router.post("/password/reset/request", response_model=PasswordResetRequestOut)
async def password_reset_request(
  payload: PasswordResetRequestIn,
  request: Request,
  db: AsyncSession = Depends(get_db),
) -> PasswordResetRequestOut:
  ip = client_ip(request) or "unknown"
  email = _normalize_email(payload.email)
  _rate_limit_or_429(key=f"auth:pwreset:req:ip:{ip}", limit=int(settings.rate_limit_password_reset_ip_per_minute), window_seconds=60)
  if email:
    _rate_limit_or_429(key=f"auth:pwreset:req:email:{email}", limit=int(settings.rate_limit_password_reset_email_per_minute), window_seconds=60)

  # Always return ok to avoid account enumeration.
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not u.active:
    return PasswordResetRequestOut(ok=True)

  token = password_reset_token_new()
  prt = PasswordResetToken(
    user_id=u.id,
    token_hash=password_reset_token_hash(token),
    request_ip=client_ip(request),
    expires_at=password_reset_expires_at(),
  )
  db.add(prt)
  await write_audit(db, event_type="auth.password_reset.requested", entity_type="User", entity_id=u.id, actor_id=None, payload={"ip": prt.request_ip})
  await db.commit()
  return PasswordResetRequestOut(ok=True, token=token if settings.dev_email_capture else None)


@router.post("/password/reset/confirm")
async def password_reset_confirm(payload: PasswordResetConfirmIn, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
  ip = client_ip(request) or "unknown"
  _rate_limit_or_429(key=f"auth:pwreset:confirm:ip:{ip}", limit=int(settings.rate_limit_password_reset_ip_per_minute), window_seconds=60)

  res = await db.execute(select(PasswordResetToken).where(PasswordResetToken.token_hash == password_reset_token_hash(payload.token)))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token")
  if t.used_at is not None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token already used")
  if as_utc(t.expires_at) < utcnow():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token expired")

  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token")

  u.password_hash = hash_password(payload.newPassword)
  t.used_at = utcnow()
  await db.execute(delete(DbSession).where(DbSession.user_id == u.id))
  await write_audit(db, event_type="auth.password_reset.completed", entity_type="User", entity_id=u.id, actor_id=u.id, payload={})
  await db.commit()
  return {"ok": True}
