from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status
from pydantic import BaseModel

from app.ai.selector import ProviderSelector
from app.api.deps import get_provider_selector
from app.config import Settings, get_settings
from app.services.jobs import process_job_sync
from app.services.tasks.interface import TASK_SECRET_HEADER

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


class TaskPayload(BaseModel):
  job_id: str
  proposal_id: str | None = None


def _task_authorized(secret: str, *, shared_header: str | None, authorization: str | None) -> bool:
  # Evaluate both comparisons so timing does not reveal which header matched.
  header_ok = secrets.compare_digest(shared_header or "", secret)
  bearer_ok = secrets.compare_digest(authorization or "", f"Bearer {secret}")
  return header_ok or bearer_ok


@router.post("/process-job", status_code=status.HTTP_200_OK)
async def process_job_task(
  payload: TaskPayload,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  selector: Annotated[ProviderSelector, Depends(get_provider_selector)],
  authorization: Annotated[str | None, Header()] = None,
  task_secret: Annotated[str | None, Header(alias=TASK_SECRET_HEADER)] = None,
) -> dict[str, str]:
  """Entry point for Cloud Tasks and local dispatch; generation runs after the response is sent."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not _task_authorized(settings.task_secret, shared_header=task_secret, authorization=authorization):
    logger.warning("Rejected internal task call for job %s", payload.job_id)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")

  logger.info("Accepted task job_id=%s proposal_id=%s", payload.job_id, payload.proposal_id)
  background_tasks.add_task(process_job_sync, payload.job_id, settings, selector)
  return {"status": "accepted"}
