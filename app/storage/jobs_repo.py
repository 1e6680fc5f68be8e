"""Storage interfaces for proposal generation jobs."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import JobStage, JobStatus, ProposalJobRecord


class ActiveJobExistsError(Exception):
  """Raised when a proposal already has a queued or running job."""

  def __init__(self, proposal_id: str, existing: ProposalJobRecord | None = None) -> None:
    super().__init__(f"Proposal {proposal_id} already has an active generation job.")
    self.proposal_id = proposal_id
    self.existing = existing


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: ProposalJobRecord) -> None:
    """Persist a queued job; raises ActiveJobExistsError when one is already active."""

  async def get_job(self, job_id: str) -> ProposalJobRecord | None:
    """Fetch a job by identifier."""

  async def get_latest_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    """Return the newest job for a proposal, active or finished."""

  async def get_active_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    """Return the queued or running job for a proposal, if any."""

  async def claim_job(self, job_id: str, *, started_at: str) -> ProposalJobRecord | None:
    """Move a job from queued to running; None when another processor already claimed it."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    stage: JobStage | None = None,
    slide_index: int | None = None,
    total_slides: int | None = None,
    message: str | None = None,
    error_json: dict | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> ProposalJobRecord | None:
    """Apply partial updates to a job."""

  async def find_queued(self, limit: int = 5) -> list[ProposalJobRecord]:
    """Return a small batch of queued jobs, oldest first."""

  async def purge_finished(self, *, older_than: str) -> int:
    """Delete terminal jobs last updated before the cutoff; returns the number removed."""

  async def fail_stalled(self, *, updated_before: str, message: str, error_json: dict, failed_at: str) -> list[ProposalJobRecord]:
    """Move running jobs with no progress since the cutoff to error; returns the jobs changed."""
