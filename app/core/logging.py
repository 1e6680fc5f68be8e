"""Process-wide logging: stdout plus a rotating file, with job ids stamped on worker lines."""

from __future__ import annotations

import logging
import logging.handlers
import sys
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from types import TracebackType

from app.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(job_tag)s%(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
LOG_DIR = Path(__file__).resolve().parents[2] / "logs"

_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "botocore", "boto3", "urllib3")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

_job_context: ContextVar[tuple[str, str] | None] = ContextVar("proposal_job_context", default=None)
_log_path: Path | None = None


@contextmanager
def job_log_context(job_id: str, proposal_id: str) -> Iterator[None]:
  """Tag every record logged inside the block with the job and proposal ids."""
  token = _job_context.set((job_id, proposal_id))
  try:
    yield
  finally:
    _job_context.reset(token)


class JobContextFilter(logging.Filter):
  def filter(self, record: logging.LogRecord) -> bool:
    current = _job_context.get()
    record.job_tag = f"[job={current[0]} proposal={current[1]}] " if current else ""
    return True


class ShortTracebackFormatter(logging.Formatter):
  """Console formatter keeping the first traceback line and the last five frames."""

  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:  # noqa: N802
    lines = traceback.format_exception(*ei)
    if len(lines) <= 6:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-5:]])


def _backup_name(default_name: str) -> str:
  # proposals_app_x.log.1 -> proposals_app_x.log-1
  stem, _, suffix = default_name.rpartition(".")
  return f"{stem}-{suffix}" if suffix.isdigit() and stem.endswith(".log") else default_name


def _open_log_file(prefix: str) -> Path:
  path = LOG_DIR / f"{prefix}_{time.strftime('%Y%m%d_%H%M%S')}.log"
  try:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create log file at {path}: {exc}") from exc
  return path


def _handlers(settings: Settings, path: Path) -> list[logging.Handler]:
  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(ShortTracebackFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  rotating = logging.handlers.RotatingFileHandler(path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  rotating.namer = _backup_name
  rotating.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  context_filter = JobContextFilter()
  for handler in (console, rotating):
    handler.addFilter(context_filter)
  return [console, rotating]


def configure_logging(settings: Settings, *, prefix: str = "proposals_app") -> Path:
  """Install the handlers once per process and return the active log file."""
  global _log_path
  if _log_path is not None:
    return _log_path

  path = _open_log_file(prefix)
  handlers = _handlers(settings, path)
  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)
  for name in _SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False
  # SDK transports echo request headers at debug level.
  for name in _NOISY_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)

  _log_path = path
  logger = logging.getLogger(__name__)
  logger.info("Logging to %s", path)
  logger.info("Provider defaults anthropic_model=%s bedrock_model=%s region=%s premium_min_tier=%s", settings.anthropic_model, settings.bedrock_model, settings.aws_region, settings.premium_min_tier)
  return path
