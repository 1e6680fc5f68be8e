from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.ai.selector import ProviderSelector
from app.api.models import OrganizationSettingsResponse, OrganizationSettingsUpdate
from app.storage.organizations_repo import OrganizationRecord, OrganizationsRepository

logger = logging.getLogger(__name__)


def _to_response(record: OrganizationRecord) -> OrganizationSettingsResponse:
  return OrganizationSettingsResponse(id=record.id, name=record.name, plan_tier=record.plan_tier, llm_provider=(record.settings or {}).get("llmProvider"))


async def update_organization_settings(organization_id: str, payload: OrganizationSettingsUpdate, *, organizations_repo: OrganizationsRepository, selector: ProviderSelector) -> OrganizationSettingsResponse:
  """Store the provider preference and drop the organization's cached handle."""
  record = await organizations_repo.update_settings(organization_id, {"llmProvider": payload.llm_provider.value})
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
  # The next generation re-resolves the provider from the stored preference.
  selector.invalidate(organization_id)
  logger.info("Updated llmProvider org_id=%s provider=%s", organization_id, payload.llm_provider.value)
  return _to_response(record)
