import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.ai.selector import ProviderSelector, build_provider_selector
from app.config import Settings
from app.core.database import dispose_engine
from app.core.firebase import initialize_firebase
from app.core.logging import configure_logging
from app.services.jobs import run_pending_jobs


async def _job_worker_loop(settings: Settings, selector: ProviderSelector, *, logger: logging.Logger) -> None:
  """Pick up queued jobs that task dispatch never delivered."""
  while True:
    try:
      processed = await run_pending_jobs(settings, selector)
      if processed:
        logger.info("Background poller processed %s jobs", processed)
    except asyncio.CancelledError:
      raise
    except Exception:  # noqa: BLE001
      logger.error("Background job poll failed", exc_info=True)
    await asyncio.sleep(settings.jobs_poll_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Configure logging and Firebase, then run the optional job poller until shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    configure_logging(settings)
    logger.info("Logging configured for environment=%s", settings.environment)
    initialize_firebase(settings)
  except Exception:
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Initial startup setup failed; continuing without it.", exc_info=True)

  worker_task: asyncio.Task | None = None
  if settings.pg_dsn:
    # One selector per process so organization settings updates can invalidate its cache.
    app.state.provider_selector = build_provider_selector(settings)
    if settings.jobs_auto_process:
      worker_task = asyncio.create_task(_job_worker_loop(settings, app.state.provider_selector, logger=logger))
      logger.info("Background job poller started interval=%ss", settings.jobs_poll_seconds)

  try:
    yield
  finally:
    if worker_task is not None:
      worker_task.cancel()
      with contextlib.suppress(asyncio.CancelledError):
        await worker_task
      logger.info("Background job poller stopped")
    await dispose_engine()
