from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import delete
from starlette.middleware.trustedhost import TrustedHostMiddleware

from focusboard.broadcast import hub
from focusboard.config import settings
from focusboard.db import SessionLocal
from focusboard.errors import FocusboardError, MustBeArchivedError, ProjectionError
from focusboard.models import Session as DbSession, utcnow
from focusboard.routers.audit import router as audit_router
from focusboard.routers.auth import router as auth_router
from focusboard.routers.groupings import router as groupings_router
from focusboard.routers.issue_fields import router as issue_fields_router
from focusboard.routers.issues import router as issues_router
from focusboard.routers.labels import router as labels_router
from focusboard.routers.projects import router as projects_router
from focusboard.routers.realtime import router as realtime_router
from focusboard.routers.users import router as users_router
from focusboard.routers.visualizations import router as visualizations_router

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("focusboard")

app = FastAPI(
  title="Focusboard API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(MustBeArchivedError)
async def _must_be_archived_handler(_, exc: MustBeArchivedError) -> JSONResponse:
  return JSONResponse(status_code=409, content={"detail": exc.detail})


@app.exception_handler(ProjectionError)
async def _projection_error_handler(_, exc: ProjectionError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": exc.detail})


@app.exception_handler(FocusboardError)
async def _focusboard_error_handler(_, exc: FocusboardError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": exc.detail})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(issue_fields_router)
app.include_router(labels_router)
app.include_router(issues_router)
app.include_router(visualizations_router)
app.include_router(groupings_router)
app.include_router(realtime_router)
app.include_router(audit_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


async def _purge_expired_sessions() -> int:
  async with SessionLocal() as db:
    res = await db.execute(delete(DbSession).where(DbSession.expires_at < utcnow()))
    await db.commit()
    return res.rowcount or 0


@app.on_event("startup")
async def _startup() -> None:
  await hub.start()
  if _is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  purged = await _purge_expired_sessions()
  logger.info("focusboard %s (%s) started, purged %d expired sessions", settings.app_version, settings.build_sha, purged)


@app.on_event("shutdown")
async def _shutdown() -> None:
  await hub.stop()
