from __future__ import annotations

import logging

import httpx

from app.config import Settings
from app.services.tasks.interface import TaskEnqueuer, process_job_url

logger = logging.getLogger(__name__)

DISPATCH_TIMEOUT_SECONDS = 30.0


class LocalHttpEnqueuer(TaskEnqueuer):
  """POSTs each job to the service's own internal endpoint, which acknowledges before generating."""

  def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.settings = settings
    self._transport = transport

  async def enqueue(self, job_id: str, payload: dict) -> None:
    url = process_job_url(self.settings.base_url)
    if not self.settings.task_secret:
      raise RuntimeError("PROPOSALS_TASK_SECRET must be set for local task dispatch.")
    headers = {"authorization": f"Bearer {self.settings.task_secret}"}

    logger.info("Dispatching job %s to %s", job_id, url)
    # trust_env=False keeps proxy variables away from internal calls.
    async with httpx.AsyncClient(transport=self._transport, trust_env=False) as client:
      try:
        response = await client.post(url, json={"job_id": job_id, **payload}, headers=headers, timeout=DISPATCH_TIMEOUT_SECONDS)
        response.raise_for_status()
      except httpx.HTTPStatusError as exc:
        logger.error("Job %s dispatch rejected status=%s body=%s", job_id, exc.response.status_code, exc.response.text[:200])
        raise
      except httpx.RequestError as exc:
        logger.error("Job %s dispatch failed: %s", job_id, exc)
        raise
