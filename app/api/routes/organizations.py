from fastapi import APIRouter, Depends

from app.ai.selector import ProviderSelector
from app.api.deps import get_organizations_repo, get_provider_selector
from app.api.models import OrganizationSettingsResponse, OrganizationSettingsUpdate
from app.core.security import CurrentMember, get_current_admin
from app.services.organizations import update_organization_settings
from app.storage.organizations_repo import OrganizationsRepository

router = APIRouter()


@router.patch("/current/settings", response_model=OrganizationSettingsResponse)
async def update_current_organization_settings(  # noqa: B008
  payload: OrganizationSettingsUpdate,
  member: CurrentMember = Depends(get_current_admin),  # noqa: B008
  organizations_repo: OrganizationsRepository = Depends(get_organizations_repo),  # noqa: B008
  selector: ProviderSelector = Depends(get_provider_selector),  # noqa: B008
) -> OrganizationSettingsResponse:
  """Set the organization's preferred LLM provider."""
  return await update_organization_settings(member.organization_id, payload, organizations_repo=organizations_repo, selector=selector)
