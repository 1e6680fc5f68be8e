"""Per-organization provider selection and tier fallback."""

from __future__ import annotations

import pytest

from app.ai.selector import ProviderSelectionError, ProviderSelector, tier_at_least
from app.storage.organizations_repo import OrganizationRecord
from tests.fakes import ORG_ID, InMemoryOrganizationsRepo, ScriptedProvider, make_settings


class _Factory:
  def __init__(self, *, bedrock_available: bool = True) -> None:
    self.bedrock_available = bedrock_available
    self.created: list[str] = []

  def __call__(self, provider_id, *, settings=None):  # noqa: ANN001
    provider_id = getattr(provider_id, "value", provider_id)
    self.created.append(provider_id)
    return ScriptedProvider(provider_id=provider_id, available=provider_id != "aws-bedrock" or self.bedrock_available)


def _org(plan_tier: str = "team", **settings) -> OrganizationRecord:  # noqa: ANN003
  return OrganizationRecord(id=ORG_ID, name="Acme Software", plan_tier=plan_tier, settings=settings)


def _selector(repo: InMemoryOrganizationsRepo, factory: _Factory | None = None, **overrides) -> ProviderSelector:  # noqa: ANN003
  return ProviderSelector(organizations_repo=repo, settings=make_settings(**overrides), provider_factory=factory or _Factory())


def test_tier_order() -> None:
  assert tier_at_least("enterprise", "team")
  assert tier_at_least("TEAM", "team")
  assert not tier_at_least("pro", "team")
  assert not tier_at_least("platinum", "free")
  assert not tier_at_least(None, "free")


@pytest.mark.anyio
async def test_missing_preference_uses_default_provider() -> None:
  selector = _selector(InMemoryOrganizationsRepo([_org()]))
  provider = await selector.select(ORG_ID)
  assert provider.provider_id == "anthropic-direct"


@pytest.mark.anyio
async def test_premium_preference_on_eligible_tier_selects_bedrock() -> None:
  selector = _selector(InMemoryOrganizationsRepo([_org("enterprise", llmProvider="aws-bedrock")]))
  provider = await selector.select(ORG_ID)
  assert provider.provider_id == "aws-bedrock"


@pytest.mark.anyio
async def test_premium_preference_below_tier_falls_back(caplog: pytest.LogCaptureFixture) -> None:
  selector = _selector(InMemoryOrganizationsRepo([_org("pro", llmProvider="aws-bedrock")]))
  with caplog.at_level("WARNING", logger="app.ai.selector"):
    provider = await selector.select(ORG_ID)
  assert provider.provider_id == "anthropic-direct"
  assert "tier_insufficient" in caplog.text


@pytest.mark.anyio
async def test_unavailable_premium_provider_falls_back() -> None:
  selector = _selector(InMemoryOrganizationsRepo([_org("team", llmProvider="aws-bedrock")]), _Factory(bedrock_available=False))
  provider = await selector.select(ORG_ID)
  assert provider.provider_id == "anthropic-direct"


@pytest.mark.anyio
async def test_unimplemented_preference_falls_back() -> None:
  selector = _selector(InMemoryOrganizationsRepo([_org("enterprise", llmProvider="google-vertex")]))
  provider = await selector.select(ORG_ID)
  assert provider.provider_id == "anthropic-direct"


@pytest.mark.anyio
async def test_handles_are_cached_until_invalidated() -> None:
  repo = InMemoryOrganizationsRepo([_org("team", llmProvider="aws-bedrock")])
  selector = _selector(repo)

  first = await selector.select(ORG_ID)
  second = await selector.select(ORG_ID)
  assert first is second
  assert repo.lookups == 1
  assert ORG_ID in selector.cache

  await repo.update_settings(ORG_ID, {"llmProvider": "anthropic-direct"})
  assert (await selector.select(ORG_ID)).provider_id == "aws-bedrock"

  selector.invalidate(ORG_ID)
  assert ORG_ID not in selector.cache
  assert (await selector.select(ORG_ID)).provider_id == "anthropic-direct"
  assert repo.lookups == 2


@pytest.mark.anyio
async def test_lookup_failure_fails_open_without_caching() -> None:
  repo = InMemoryOrganizationsRepo(fail_with=ConnectionError("db down"))
  selector = _selector(repo, provider_fail_open=True)

  provider = await selector.select(ORG_ID)
  assert provider.provider_id == "anthropic-direct"
  assert len(selector.cache) == 0

  await selector.select(ORG_ID)
  assert repo.lookups == 2


@pytest.mark.anyio
async def test_lookup_failure_raises_when_fail_open_disabled() -> None:
  selector = _selector(InMemoryOrganizationsRepo(), provider_fail_open=False)
  with pytest.raises(ProviderSelectionError):
    await selector.select(ORG_ID)
