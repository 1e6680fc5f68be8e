"""Stage ordering and job progress tracking."""

from __future__ import annotations

import logging

from app.jobs.models import JobStage, JobStatus, ProposalJobRecord
from app.storage.jobs_repo import JobsRepository
from app.utils.ids import utc_timestamp

logger = logging.getLogger(__name__)

_TERMINAL_RANK = 10**6


def stage_rank(stage: str, slide_index: int | None = None) -> int:
  """Position of a stage in queued < outline < slide 1 < ... < slide n < terminal."""
  if stage == "queued":
    return 0
  if stage == "outline":
    return 1
  if stage == "generating":
    return 1 + max(slide_index or 0, 0)
  return _TERMINAL_RANK


class ProposalProgressTracker:
  """Write stage transitions for one job, never moving backwards."""

  def __init__(self, *, job: ProposalJobRecord, jobs_repo: JobsRepository) -> None:
    self._job_id = job.job_id
    self._jobs_repo = jobs_repo
    self._rank = stage_rank(job.stage, job.slide_index)
    self._finished = job.stage in ("complete", "error")

  @property
  def finished(self) -> bool:
    return self._finished

  async def advance(self, stage: JobStage, slide_index: int | None = None, total_slides: int | None = None, *, message: str | None = None) -> ProposalJobRecord | None:
    """Record a non-terminal stage; out-of-order transitions are dropped."""
    rank = stage_rank(stage, slide_index)
    if self._finished or rank < self._rank:
      logger.warning("Ignoring out-of-order stage job_id=%s stage=%s slide_index=%s", self._job_id, stage, slide_index)
      return None
    self._rank = rank
    logger.info("Job %s stage=%s slide=%s/%s", self._job_id, stage, slide_index, total_slides)
    return await self._jobs_repo.update_job(self._job_id, stage=stage, slide_index=slide_index, total_slides=total_slides, message=message, updated_at=utc_timestamp())

  async def complete(self, *, total_slides: int) -> ProposalJobRecord | None:
    return await self._finish("done", "complete", total_slides=total_slides, message="Proposal generated")

  async def fail(self, *, message: str, error_json: dict) -> ProposalJobRecord | None:
    return await self._finish("error", "error", message=message, error_json=error_json)

  async def _finish(self, status: JobStatus, stage: JobStage, *, total_slides: int | None = None, message: str | None = None, error_json: dict | None = None) -> ProposalJobRecord | None:
    if self._finished:
      return None
    timestamp = utc_timestamp()
    record = await self._jobs_repo.update_job(self._job_id, status=status, stage=stage, total_slides=total_slides, message=message, error_json=error_json, completed_at=timestamp, updated_at=timestamp)
    # Only a stored terminal state closes the tracker; a failed write may be followed by fail().
    self._finished = True
    self._rank = _TERMINAL_RANK
    return record
