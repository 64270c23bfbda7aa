from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from focusboard.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "fb_session"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def session_ttl(remember: bool) -> timedelta:
  days = settings.remember_me_ttl_days if remember else settings.session_ttl_days
  return timedelta(days=max(1, int(days)))


def new_session_expires_at(remember: bool = False) -> datetime:
  return datetime.now(timezone.utc) + session_ttl(remember)


def password_reset_token_new() -> str:
  return "fbpr_" + secrets.token_urlsafe(32)


def password_reset_token_hash(token: str) -> str:
  # Keyed hash so DB leaks don't allow offline token matching.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (token or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()


def password_reset_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(minutes=max(1, int(settings.password_reset_ttl_minutes)))
