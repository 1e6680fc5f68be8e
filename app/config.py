"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

PLAN_TIERS: tuple[str, ...] = ("free", "pro", "team", "enterprise")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the proposal service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  cloud_run_invoker_service_account: str | None
  base_url: str | None
  task_secret: str | None
  anthropic_api_key: str | None
  anthropic_model: str
  bedrock_model: str
  aws_region: str
  premium_min_tier: str
  provider_fail_open: bool
  provider_max_retries: int
  provider_backoff_seconds: float
  max_slides: int
  generation_max_tokens: int
  generation_temperature: float
  context_budget_ratio: float
  deal_context_limit: int
  context_product_limit: int
  context_battlecard_limit: int
  context_min_similarity: float
  progress_poll_seconds: float
  progress_timeout_seconds: float
  jobs_auto_process: bool
  jobs_poll_seconds: float
  jobs_retention_seconds: int
  jobs_stall_seconds: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("PROPOSALS_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("PROPOSALS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("PROPOSALS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _parse_tier(raw: str | None) -> str:
  tier = (raw or "team").strip().lower()
  if tier not in PLAN_TIERS:
    raise ValueError(f"PROPOSALS_PREMIUM_MIN_TIER must be one of {', '.join(PLAN_TIERS)}.")
  return tier


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PROPOSALS_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("PROPOSALS_DEBUG"))

  log_max_bytes = _positive_int("PROPOSALS_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("PROPOSALS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PROPOSALS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("PROPOSALS_LOG_HTTP_4XX"))
  # Allow opt-in logging of HTTP request/response bodies with a size cap.
  log_http_bodies = _parse_bool(os.getenv("PROPOSALS_LOG_HTTP_BODIES"))
  log_http_body_bytes = _positive_int("PROPOSALS_LOG_HTTP_BODY_BYTES", "2048")

  provider_max_retries = int(os.getenv("PROPOSALS_PROVIDER_MAX_RETRIES", "3"))
  if provider_max_retries < 0:
    raise ValueError("PROPOSALS_PROVIDER_MAX_RETRIES must be zero or a positive integer.")

  generation_temperature = float(os.getenv("PROPOSALS_GENERATION_TEMPERATURE", "0.7"))
  if not 0.0 <= generation_temperature <= 1.0:
    raise ValueError("PROPOSALS_GENERATION_TEMPERATURE must be between 0 and 1.")

  context_budget_ratio = float(os.getenv("PROPOSALS_CONTEXT_BUDGET_RATIO", "0.8"))
  if not 0.0 < context_budget_ratio <= 1.0:
    raise ValueError("PROPOSALS_CONTEXT_BUDGET_RATIO must be in (0, 1].")

  context_min_similarity = float(os.getenv("PROPOSALS_CONTEXT_MIN_SIMILARITY", "0.2"))
  if not 0.0 <= context_min_similarity <= 1.0:
    raise ValueError("PROPOSALS_CONTEXT_MIN_SIMILARITY must be between 0 and 1.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("PROPOSALS_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    log_http_bodies=log_http_bodies,
    log_http_body_bytes=log_http_body_bytes,
    pg_dsn=os.getenv("PROPOSALS_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("PROPOSALS_PG_CONNECT_TIMEOUT", "5"),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    task_service_provider=os.getenv("PROPOSALS_TASK_SERVICE_PROVIDER", "local-http").strip().lower(),
    cloud_tasks_queue_path=_optional_str(os.getenv("PROPOSALS_CLOUD_TASKS_QUEUE_PATH")),
    cloud_run_invoker_service_account=_optional_str(os.getenv("PROPOSALS_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    base_url=_optional_str(os.getenv("PROPOSALS_BASE_URL")),
    task_secret=_optional_str(os.getenv("PROPOSALS_TASK_SECRET")),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    anthropic_model=os.getenv("PROPOSALS_ANTHROPIC_MODEL", "claude-sonnet-4-20250514").strip(),
    bedrock_model=os.getenv("PROPOSALS_BEDROCK_MODEL", "anthropic.claude-3-5-sonnet-20241022-v2:0").strip(),
    aws_region=(_optional_str(os.getenv("AWS_REGION")) or "us-west-2"),
    premium_min_tier=_parse_tier(os.getenv("PROPOSALS_PREMIUM_MIN_TIER")),
    provider_fail_open=_parse_bool(os.getenv("PROPOSALS_PROVIDER_FAIL_OPEN"), default=True),
    provider_max_retries=provider_max_retries,
    provider_backoff_seconds=_positive_float("PROPOSALS_PROVIDER_BACKOFF_SECONDS", "1.0"),
    max_slides=_positive_int("PROPOSALS_MAX_SLIDES", "10"),
    generation_max_tokens=_positive_int("PROPOSALS_GENERATION_MAX_TOKENS", "4096"),
    generation_temperature=generation_temperature,
    context_budget_ratio=context_budget_ratio,
    deal_context_limit=_positive_int("PROPOSALS_DEAL_CONTEXT_LIMIT", "10"),
    context_product_limit=_positive_int("PROPOSALS_CONTEXT_PRODUCT_LIMIT", "5"),
    context_battlecard_limit=_positive_int("PROPOSALS_CONTEXT_BATTLECARD_LIMIT", "3"),
    context_min_similarity=context_min_similarity,
    progress_poll_seconds=_positive_float("PROPOSALS_PROGRESS_POLL_SECONDS", "1.0"),
    progress_timeout_seconds=_positive_float("PROPOSALS_PROGRESS_TIMEOUT_SECONDS", "120"),
    jobs_auto_process=_parse_bool(os.getenv("PROPOSALS_JOBS_AUTO_PROCESS")),
    jobs_poll_seconds=_positive_float("PROPOSALS_JOBS_POLL_SECONDS", "2.0"),
    jobs_retention_seconds=_positive_int("PROPOSALS_JOBS_RETENTION_SECONDS", "604800"),
    jobs_stall_seconds=_positive_int("PROPOSALS_JOBS_STALL_SECONDS", "600"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("PROPOSALS_DEBUG"))
  pg_connect_timeout = _positive_int("PROPOSALS_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("PROPOSALS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
