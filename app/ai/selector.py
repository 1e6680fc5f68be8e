"""Per-organization provider selection with an explicit, invalidatable cache."""

from __future__ import annotations

import logging
from collections.abc import Callable

from app.ai.providers.base import LLMProvider
from app.ai.providers.factory import DEFAULT_PROVIDER_ID, PREMIUM_PROVIDER_ID, create_provider, parse_provider_id
from app.config import PLAN_TIERS, Settings
from app.storage.organizations_repo import OrganizationRecord, OrganizationsRepository

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]


class ProviderSelectionError(Exception):
  """Raised when fail-open is disabled and the organization cannot be resolved."""


def tier_at_least(plan_tier: str | None, minimum: str) -> bool:
  """Compare plan tiers along free < pro < team < enterprise; unknown tiers rank lowest."""
  normalized = (plan_tier or "").strip().lower()
  if normalized not in PLAN_TIERS:
    return False
  return PLAN_TIERS.index(normalized) >= PLAN_TIERS.index(minimum)


class ProviderCache:
  """Provider handles keyed by organization id; entries live until invalidated."""

  def __init__(self) -> None:
    self._handles: dict[str, LLMProvider] = {}

  def get(self, organization_id: str) -> LLMProvider | None:
    return self._handles.get(organization_id)

  def set(self, organization_id: str, provider: LLMProvider) -> None:
    self._handles[organization_id] = provider

  def invalidate(self, organization_id: str) -> None:
    self._handles.pop(organization_id, None)

  def clear(self) -> None:
    self._handles.clear()

  def __contains__(self, organization_id: object) -> bool:
    return organization_id in self._handles

  def __len__(self) -> int:
    return len(self._handles)


class ProviderSelector:
  """Choose the provider handle an organization's generations run on."""

  def __init__(self, *, organizations_repo: OrganizationsRepository, settings: Settings, cache: ProviderCache | None = None, provider_factory: ProviderFactory = create_provider) -> None:
    self._organizations_repo = organizations_repo
    self._settings = settings
    self._cache = cache if cache is not None else ProviderCache()
    self._provider_factory = provider_factory

  @property
  def cache(self) -> ProviderCache:
    return self._cache

  def default_provider(self) -> LLMProvider:
    return self._provider_factory(DEFAULT_PROVIDER_ID, settings=self._settings)

  def invalidate(self, organization_id: str | None = None) -> None:
    """Drop one organization's handle, or every handle when no id is given."""
    if organization_id is None:
      self._cache.clear()
      logger.info("Provider cache cleared")
      return
    self._cache.invalidate(organization_id)
    logger.info("Provider cache invalidated org_id=%s", organization_id)

  async def select(self, organization_id: str) -> LLMProvider:
    """Return the cached handle for the organization, resolving and caching it on a miss."""
    cached = self._cache.get(organization_id)
    if cached is not None:
      return cached

    try:
      organization = await self._organizations_repo.get_organization(organization_id)
    except Exception as exc:
      return self._lookup_fallback(organization_id, "lookup_failed", exc)
    if organization is None:
      return self._lookup_fallback(organization_id, "organization_not_found", None)

    provider = self._resolve(organization)
    self._cache.set(organization_id, provider)
    return provider

  def _lookup_fallback(self, organization_id: str, reason: str, exc: Exception | None) -> LLMProvider:
    # Lookup fallbacks are never cached so the next call retries the lookup.
    if not self._settings.provider_fail_open:
      logger.error("Provider selection failed org_id=%s reason=%s", organization_id, reason, exc_info=exc is not None)
      raise ProviderSelectionError(f"Could not resolve provider for organization {organization_id} ({reason}).") from exc
    logger.warning("Provider fallback org_id=%s reason=%s provider=%s", organization_id, reason, DEFAULT_PROVIDER_ID.value, exc_info=exc is not None)
    return self.default_provider()

  def _resolve(self, organization: OrganizationRecord) -> LLMProvider:
    preference = parse_provider_id((organization.settings or {}).get("llmProvider"))
    if preference is None:
      logger.info("Provider fallback org_id=%s reason=preference_absent provider=%s", organization.id, DEFAULT_PROVIDER_ID.value)
      return self.default_provider()
    if preference is DEFAULT_PROVIDER_ID:
      return self.default_provider()
    if preference is not PREMIUM_PROVIDER_ID:
      logger.warning("Provider fallback org_id=%s reason=unavailable requested=%s provider=%s", organization.id, preference.value, DEFAULT_PROVIDER_ID.value)
      return self.default_provider()
    if not tier_at_least(organization.plan_tier, self._settings.premium_min_tier):
      logger.warning("Provider fallback org_id=%s reason=tier_insufficient plan_tier=%s required=%s provider=%s", organization.id, organization.plan_tier, self._settings.premium_min_tier, DEFAULT_PROVIDER_ID.value)
      return self.default_provider()

    candidate = self._provider_factory(PREMIUM_PROVIDER_ID, settings=self._settings)
    if not candidate.is_available():
      logger.warning("Provider fallback org_id=%s reason=unavailable requested=%s provider=%s", organization.id, PREMIUM_PROVIDER_ID.value, DEFAULT_PROVIDER_ID.value)
      return self.default_provider()
    logger.info("Provider selected org_id=%s provider=%s", organization.id, candidate.provider_id)
    return candidate


def build_provider_selector(settings: Settings) -> ProviderSelector:
  """Wire a selector to the configured organizations repository."""
  from app.storage.factory import _get_organizations_repo

  return ProviderSelector(organizations_repo=_get_organizations_repo(settings), settings=settings)
