import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from app.api.deps import get_enqueuer, get_jobs_repo, get_opportunities_repo, get_proposals_repo
from app.api.models import CreateProposalRequest, ProposalCreateResponse, ProposalListResponse, ProposalResponse, ProposalStatusResponse
from app.config import Settings, get_settings
from app.core.security import CurrentMember, get_current_member
from app.services import proposals as proposal_service
from app.services.progress_stream import SSE_HEADERS, stream_proposal_progress
from app.services.tasks.interface import TaskEnqueuer
from app.storage.jobs_repo import JobsRepository
from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.proposals_repo import ProposalsRepository

router = APIRouter()
logger = logging.getLogger("app.api.routes.proposals")


@router.post("", response_model=ProposalCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_proposal(  # noqa: B008
  request: CreateProposalRequest,
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
  opportunities_repo: OpportunitiesRepository = Depends(get_opportunities_repo),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
  enqueuer: TaskEnqueuer | None = Depends(get_enqueuer),  # noqa: B008
) -> ProposalCreateResponse:
  """Create a new proposal version and start generating it in the background."""
  return await proposal_service.create_proposal(
    request, organization_id=member.organization_id, user_id=member.user_id, proposals_repo=proposals_repo, opportunities_repo=opportunities_repo, jobs_repo=jobs_repo, enqueuer=enqueuer
  )


@router.get("", response_model=ProposalListResponse)
async def list_proposals(  # noqa: B008
  opportunity_id: uuid.UUID | None = Query(default=None, alias="opportunityId"),  # noqa: B008
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
) -> ProposalListResponse:
  """List the organization's proposals, newest first."""
  return await proposal_service.list_proposals(organization_id=member.organization_id, opportunity_id=str(opportunity_id) if opportunity_id else None, proposals_repo=proposals_repo)


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(  # noqa: B008
  proposal_id: uuid.UUID,
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
) -> ProposalResponse:
  """Fetch a proposal; slides are included once generation is complete."""
  return await proposal_service.get_proposal(str(proposal_id), organization_id=member.organization_id, proposals_repo=proposals_repo)


@router.get("/{proposal_id}/status", response_model=ProposalStatusResponse)
async def get_proposal_status(  # noqa: B008
  proposal_id: uuid.UUID,
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> ProposalStatusResponse:
  """Return generation progress for polling clients."""
  return await proposal_service.get_proposal_status(str(proposal_id), organization_id=member.organization_id, proposals_repo=proposals_repo, jobs_repo=jobs_repo)


@router.get("/{proposal_id}/stream")
async def stream_proposal(  # noqa: B008
  proposal_id: uuid.UUID,
  settings: Settings = Depends(get_settings),  # noqa: B008
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> StreamingResponse:
  """Stream progress as server-sent events until the proposal completes or fails."""
  await proposal_service.ensure_proposal_visible(str(proposal_id), organization_id=member.organization_id, proposals_repo=proposals_repo)
  logger.info("Opening progress stream proposal_id=%s", proposal_id)
  events = stream_proposal_progress(
    str(proposal_id),
    organization_id=member.organization_id,
    proposals_repo=proposals_repo,
    jobs_repo=jobs_repo,
    poll_seconds=settings.progress_poll_seconds,
    timeout_seconds=settings.progress_timeout_seconds,
  )
  return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)
