"""Run the proposal job poller as a standalone process.

Picks up queued jobs that task dispatch never delivered, processes them one
batch at a time and purges finished jobs past the retention window.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow `python scripts/run_worker.py` from the repository root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.ai.selector import build_provider_selector  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.core.database import dispose_engine  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.services.jobs import run_pending_jobs  # noqa: E402

logger = logging.getLogger("scripts.run_worker")


async def _run(*, once: bool, batch_size: int) -> None:
  settings = get_settings()
  configure_logging(settings, prefix="proposals_worker")
  if not settings.pg_dsn:
    raise SystemExit("PROPOSALS_PG_DSN must be set to run the worker.")

  selector = build_provider_selector(settings)
  logger.info("Worker started poll_interval=%ss batch_size=%s", settings.jobs_poll_seconds, batch_size)
  try:
    while True:
      try:
        processed = await run_pending_jobs(settings, selector, limit=batch_size)
        if processed:
          logger.info("Processed %s jobs", processed)
      except Exception:  # noqa: BLE001
        logger.error("Worker poll failed", exc_info=True)
      if once:
        return
      await asyncio.sleep(settings.jobs_poll_seconds)
  finally:
    await dispose_engine()


def main() -> None:
  parser = argparse.ArgumentParser(description="Process queued proposal generation jobs.")
  parser.add_argument("--once", action="store_true", help="Process a single batch and exit.")
  parser.add_argument("--batch-size", type=int, default=5)
  args = parser.parse_args()
  try:
    asyncio.run(_run(once=args.once, batch_size=args.batch_size))
  except KeyboardInterrupt:
    logger.info("Worker stopped")


if __name__ == "__main__":
  main()
