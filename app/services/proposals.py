"""Proposal creation and read paths for the HTTP layer."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.api.models import CreateProposalRequest, JobProgressModel, ProposalCreateResponse, ProposalListItem, ProposalListResponse, ProposalResponse, ProposalStatusResponse
from app.jobs.queue import ProposalJobRequest, enqueue_proposal_generation, get_proposal_job_status
from app.services.tasks.interface import TaskEnqueuer
from app.storage.jobs_repo import JobsRepository
from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.proposals_repo import ProposalRecord, ProposalsRepository

logger = logging.getLogger(__name__)

_PROPOSAL_NOT_FOUND_MSG = "Proposal not found"
_OPPORTUNITY_NOT_FOUND_MSG = "Opportunity not found"
_CREATED_MESSAGE = "Proposal generation started"


async def create_proposal(
  request: CreateProposalRequest,
  *,
  organization_id: str,
  user_id: str | None,
  proposals_repo: ProposalsRepository,
  opportunities_repo: OpportunitiesRepository,
  jobs_repo: JobsRepository,
  enqueuer: TaskEnqueuer | None,
) -> ProposalCreateResponse:
  """Insert a queued proposal version and hand it to the job queue."""
  opportunity_id = str(request.opportunity_id)
  opportunity = await opportunities_repo.get_opportunity(organization_id, opportunity_id)
  if opportunity is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_OPPORTUNITY_NOT_FOUND_MSG)

  record = await proposals_repo.create_proposal(org_id=organization_id, opportunity_id=opportunity_id, user_id=user_id, prompt=request.prompt)
  logger.info("Created proposal %s version=%s opportunity_id=%s", record.id, record.version, opportunity_id)

  # EnqueueError propagates to its exception handler once the proposal is marked failed.
  job_request = ProposalJobRequest(proposal_id=record.id, organization_id=organization_id, opportunity_id=opportunity_id, prompt=request.prompt)
  await enqueue_proposal_generation(job_request, jobs_repo=jobs_repo, proposals_repo=proposals_repo, enqueuer=enqueuer)
  return ProposalCreateResponse(id=record.id, version=record.version, status="queued", message=_CREATED_MESSAGE)


async def _require_proposal(proposal_id: str, organization_id: str, proposals_repo: ProposalsRepository) -> ProposalRecord:
  record = await proposals_repo.get_proposal(proposal_id, org_id=organization_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_PROPOSAL_NOT_FOUND_MSG)
  return record


async def get_proposal(proposal_id: str, *, organization_id: str, proposals_repo: ProposalsRepository) -> ProposalResponse:
  record = await _require_proposal(proposal_id, organization_id, proposals_repo)
  return ProposalResponse.from_record(record)


async def list_proposals(*, organization_id: str, opportunity_id: str | None, proposals_repo: ProposalsRepository) -> ProposalListResponse:
  records = await proposals_repo.list_proposals(org_id=organization_id, opportunity_id=opportunity_id)
  return ProposalListResponse(proposals=[ProposalListItem.from_record(record) for record in records])


async def get_proposal_status(proposal_id: str, *, organization_id: str, proposals_repo: ProposalsRepository, jobs_repo: JobsRepository) -> ProposalStatusResponse:
  """Combine the newest job progress with the proposal's own status."""
  record = await _require_proposal(proposal_id, organization_id, proposals_repo)
  progress = await get_proposal_job_status(proposal_id, jobs_repo=jobs_repo)
  job = JobProgressModel.from_progress(progress) if progress is not None else None
  return ProposalStatusResponse(proposal_id=record.id, status=record.status, job=job, error_message=record.error_message)


async def ensure_proposal_visible(proposal_id: str, *, organization_id: str, proposals_repo: ProposalsRepository) -> None:
  await _require_proposal(proposal_id, organization_id, proposals_repo)
