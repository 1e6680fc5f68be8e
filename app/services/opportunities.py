from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.proposals_repo import ProposalsRepository

logger = logging.getLogger(__name__)


async def delete_opportunity(opportunity_id: str, *, organization_id: str, opportunities_repo: OpportunitiesRepository, proposals_repo: ProposalsRepository) -> None:
  """Delete an opportunity that has no proposals; proposals are never removed with it."""
  opportunity = await opportunities_repo.get_opportunity(organization_id, opportunity_id)
  if opportunity is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Opportunity not found")

  proposal_count = await proposals_repo.count_for_opportunity(opportunity_id)
  if proposal_count > 0:
    logger.info("Refusing to delete opportunity %s with %s proposals", opportunity_id, proposal_count)
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Opportunity has proposals and cannot be deleted")

  if not await opportunities_repo.delete_opportunity(organization_id, opportunity_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Opportunity not found")
  logger.info("Deleted opportunity %s org_id=%s", opportunity_id, organization_id)
