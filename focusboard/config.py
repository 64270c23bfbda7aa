from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://focusboard:focusboard@db:5432/focusboard"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  log_level: str = "INFO"
  api_docs_enabled: bool = True

  cookie_secure: bool = False
  cookie_domain: str | None = None
  session_ttl_days: int = 1
  remember_me_ttl_days: int = 14

  registration_enabled: bool = True
  dev_email_capture: bool = False
  password_reset_ttl_minutes: int = 60

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_register_ip_per_minute: int = 10
  rate_limit_password_reset_ip_per_minute: int = 10
  rate_limit_password_reset_email_per_minute: int = 5

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"
  redis_url: str | None = None

  available_locales: str = "en,pt-BR"
  default_locale: str = "en"
  default_timezone: str = "UTC"

  issues_per_page: int = 20
  broadcast_queue_size: int = 100

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def available_locale_list(self) -> list[str]:
    return [l.strip() for l in self.available_locales.split(",") if l.strip()]


settings = Settings()
