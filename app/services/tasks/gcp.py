from __future__ import annotations

import asyncio
import json
import logging

from google.cloud import tasks_v2

from app.config import Settings
from app.services.tasks.interface import TASK_SECRET_HEADER, TaskEnqueuer, process_job_url

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues jobs to Google Cloud Tasks."""

  def __init__(self, settings: Settings, *, client: tasks_v2.CloudTasksClient | None = None) -> None:
    self.settings = settings
    self.client = client or tasks_v2.CloudTasksClient()

  def _build_task(self, job_id: str, payload: dict) -> dict:
    url = process_job_url(self.settings.base_url)
    headers = {"Content-Type": "application/json"}
    # Cloud Run invoker auth occupies Authorization, so the shared secret travels in its own header.
    if self.settings.task_secret:
      headers[TASK_SECRET_HEADER] = self.settings.task_secret
    http_request: dict = {"http_method": tasks_v2.HttpMethod.POST, "url": url, "headers": headers, "body": json.dumps({"job_id": job_id, **payload}).encode()}
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account}
    return {"http_request": http_request}

  async def enqueue(self, job_id: str, payload: dict) -> None:
    """Enqueue a job to Cloud Tasks."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    task = self._build_task(job_id, payload)
    parent = self.settings.cloud_tasks_queue_path

    try:
      response = await asyncio.to_thread(self.client.create_task, request={"parent": parent, "task": task})
    except Exception:
      logger.error("Failed to enqueue task for job %s", job_id, exc_info=True)
      raise
    logger.info("Enqueued task %s for job %s", response.name, job_id)
