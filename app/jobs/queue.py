"""Enqueue and inspect proposal generation jobs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from app.jobs.models import ProposalJobProgress, ProposalJobRecord
from app.services.tasks.interface import TaskEnqueuer
from app.storage.jobs_repo import ActiveJobExistsError, JobsRepository
from app.storage.proposals_repo import ProposalsRepository
from app.utils.ids import generate_job_id, utc_timestamp

logger = logging.getLogger(__name__)

ENQUEUE_FAILED_MESSAGE = "Could not start generation"
STALLED_MESSAGE = "Generation stopped before finishing. Please start a new version."


class EnqueueError(Exception):
  """Raised when a job could not be handed to the task backend."""

  def __init__(self, proposal_id: str, job_id: str) -> None:
    super().__init__(f"{ENQUEUE_FAILED_MESSAGE} for proposal {proposal_id}.")
    self.proposal_id = proposal_id
    self.job_id = job_id


@dataclass(frozen=True)
class ProposalJobRequest:
  proposal_id: str
  organization_id: str
  opportunity_id: str
  prompt: str

  def to_payload(self) -> dict[str, Any]:
    return {"proposalId": self.proposal_id, "organizationId": self.organization_id, "opportunityId": self.opportunity_id, "prompt": self.prompt}


async def enqueue_proposal_generation(request: ProposalJobRequest, *, jobs_repo: JobsRepository, proposals_repo: ProposalsRepository, enqueuer: TaskEnqueuer | None) -> ProposalJobRecord:
  """
  Persist a queued job for the proposal and dispatch it.

  A proposal that already has a queued or running job gets that job back
  without a second dispatch. When dispatch fails, the job and the proposal
  are both moved to error before EnqueueError is raised.
  """
  timestamp = utc_timestamp()
  record = ProposalJobRecord(
    job_id=generate_job_id(),
    proposal_id=request.proposal_id,
    org_id=request.organization_id,
    opportunity_id=request.opportunity_id,
    request=request.to_payload(),
    status="queued",
    stage="queued",
    created_at=timestamp,
    updated_at=timestamp,
  )
  try:
    await jobs_repo.create_job(record)
  except ActiveJobExistsError as exc:
    existing = exc.existing or await jobs_repo.get_active_for_proposal(request.proposal_id)
    if existing is None:
      raise
    logger.info("Coalesced duplicate enqueue proposal_id=%s job_id=%s", request.proposal_id, existing.job_id)
    return existing

  if enqueuer is None:
    logger.info("Queued job %s for proposal %s (awaiting poller)", record.job_id, request.proposal_id)
    return record

  try:
    await enqueuer.enqueue(record.job_id, {"proposal_id": request.proposal_id})
  except Exception as exc:
    logger.error("Failed to enqueue job %s for proposal %s", record.job_id, request.proposal_id, exc_info=True)
    failed_at = utc_timestamp()
    await jobs_repo.update_job(record.job_id, status="error", stage="error", message=ENQUEUE_FAILED_MESSAGE, error_json={"error": "TASK_ENQUEUE_FAILED", "timestamp": failed_at}, completed_at=failed_at, updated_at=failed_at)
    await proposals_repo.fail_proposal(request.proposal_id, error_message=ENQUEUE_FAILED_MESSAGE, error_details={"timestamp": failed_at, "error": "TASK_ENQUEUE_FAILED"})
    raise EnqueueError(request.proposal_id, record.job_id) from exc

  logger.info("Enqueued job %s for proposal %s", record.job_id, request.proposal_id)
  return record


async def get_proposal_job_status(proposal_id: str, *, jobs_repo: JobsRepository) -> ProposalJobProgress | None:
  """Return the progress of the proposal's newest retained job, or None."""
  record = await jobs_repo.get_latest_for_proposal(proposal_id)
  if record is None:
    return None
  return ProposalJobProgress.from_record(record)


async def purge_finished_jobs(*, jobs_repo: JobsRepository, retention_seconds: int, now: float | None = None) -> int:
  """Delete finished job rows older than the retention window."""
  cutoff = utc_timestamp((now if now is not None else time.time()) - retention_seconds)
  removed = await jobs_repo.purge_finished(older_than=cutoff)
  if removed:
    logger.info("Purged %s finished jobs older than %s", removed, cutoff)
  return removed


async def fail_stalled_jobs(*, jobs_repo: JobsRepository, proposals_repo: ProposalsRepository, stall_seconds: int, now: float | None = None) -> int:
  """
  Close out running jobs whose worker stopped reporting progress.

  A job counts as stalled when its row has not been touched for
  `stall_seconds`; each stage write refreshes it. The job and its proposal
  both move to error so readers see a terminal state.
  """
  current = now if now is not None else time.time()
  failed_at = utc_timestamp(current)
  details = {"timestamp": failed_at, "error": {"type": "JobStalled"}}
  stalled = await jobs_repo.fail_stalled(updated_before=utc_timestamp(current - stall_seconds), message=STALLED_MESSAGE, error_json=details, failed_at=failed_at)
  for job in stalled:
    logger.warning("Failed stalled job %s for proposal %s (no progress since %s)", job.job_id, job.proposal_id, job.started_at)
    await proposals_repo.fail_proposal(job.proposal_id, error_message=STALLED_MESSAGE, error_details=details)
  return len(stalled)
