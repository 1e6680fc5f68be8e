from __future__ import annotations

from typing import Protocol

PROCESS_JOB_PATH = "/internal/tasks/process-job"
TASK_SECRET_HEADER = "x-proposals-task-secret"


def process_job_url(base_url: str | None) -> str:
  """Absolute URL of the internal job endpoint on the service at `base_url`."""
  if not base_url:
    raise RuntimeError("PROPOSALS_BASE_URL must be set to dispatch proposal jobs.")
  return base_url.rstrip("/") + PROCESS_JOB_PATH


class TaskEnqueuer(Protocol):
  """Interface for dispatching proposal jobs to a processor."""

  async def enqueue(self, job_id: str, payload: dict) -> None:
    """Dispatch a job for processing; raises when the backend rejects it."""
    ...
