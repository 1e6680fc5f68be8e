import uuid

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_opportunities_repo, get_proposals_repo
from app.core.security import CurrentMember, get_current_member
from app.services.opportunities import delete_opportunity as delete_opportunity_service
from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.proposals_repo import ProposalsRepository

router = APIRouter()


@router.delete("/{opportunity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_opportunity(  # noqa: B008
  opportunity_id: uuid.UUID,
  member: CurrentMember = Depends(get_current_member),  # noqa: B008
  opportunities_repo: OpportunitiesRepository = Depends(get_opportunities_repo),  # noqa: B008
  proposals_repo: ProposalsRepository = Depends(get_proposals_repo),  # noqa: B008
) -> Response:
  """Delete an opportunity; refused while any proposal references it."""
  await delete_opportunity_service(str(opportunity_id), organization_id=member.organization_id, opportunities_repo=opportunities_repo, proposals_repo=proposals_repo)
  return Response(status_code=status.HTTP_204_NO_CONTENT)
