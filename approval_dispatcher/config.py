"""Service configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from approval_dispatcher.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the dispatcher service."""

  environment: str
  debug: bool
  backend_base_url: str
  backend_token: str | None
  backend_timeout_seconds: float
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("DISPATCH_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("DISPATCH_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("DISPATCH_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_base_url(raw: str | None) -> str:
  """Validate the backend base URL and strip trailing slashes."""

  value = _optional_str(raw)
  if not value:
    raise ValueError("DISPATCH_BACKEND_BASE_URL must be set.")

  parsed = urlparse(value)
  if parsed.scheme not in {"http", "https"} or not parsed.netloc:
    raise ValueError("DISPATCH_BACKEND_BASE_URL must be an absolute http(s) URL.")

  return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DISPATCH_ENV", "development").lower()
  debug = _parse_bool(os.getenv("DISPATCH_DEBUG"))

  backend_timeout_seconds = float(os.getenv("DISPATCH_BACKEND_TIMEOUT_SECONDS", "30"))
  if backend_timeout_seconds <= 0:
    raise ValueError("DISPATCH_BACKEND_TIMEOUT_SECONDS must be a positive number.")

  log_max_bytes = int(os.getenv("DISPATCH_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("DISPATCH_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("DISPATCH_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("DISPATCH_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("DISPATCH_LOG_HTTP_4XX"))

  return Settings(
    environment=environment,
    debug=debug,
    backend_base_url=_parse_base_url(os.getenv("DISPATCH_BACKEND_BASE_URL")),
    backend_token=_optional_str(os.getenv("DISPATCH_BACKEND_TOKEN")),
    backend_timeout_seconds=backend_timeout_seconds,
    allowed_origins=_parse_origins(os.getenv("DISPATCH_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("DISPATCH_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
  )
