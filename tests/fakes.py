"""In-memory repositories and provider doubles shared by the test suite."""

from __future__ import annotations

import datetime
import uuid
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from app.ai.providers.base import CompletionOptions, CompletionResponse, ContentDelta, LLMProvider, Message, ProviderMetadata, StreamEvent, TokenUsage
from app.ai.providers.errors import LLMProviderError
from app.ai.providers.stream import RawChunk, UsageUpdate, guarded_stream
from app.config import Settings, get_settings
from app.jobs.models import ACTIVE_JOB_STATUSES, ProposalJobRecord
from app.storage.jobs_repo import ActiveJobExistsError
from app.storage.knowledge_repo import BattlecardRecord, CompanyProfileRecord, DealContextRecord, OpportunityRecord, ProductRecord
from app.storage.organizations_repo import OrganizationRecord
from app.storage.proposals_repo import ProposalRecord

ORG_ID = "11111111-1111-1111-1111-111111111111"
OTHER_ORG_ID = "22222222-2222-2222-2222-222222222222"
OPPORTUNITY_ID = "33333333-3333-3333-3333-333333333333"
USER_ID = "44444444-4444-4444-4444-444444444444"


def make_settings(**overrides: Any) -> Settings:
  """Process settings with test overrides applied."""
  base = get_settings.__wrapped__()
  defaults = {"provider_backoff_seconds": 0.01, "progress_poll_seconds": 0.01, "progress_timeout_seconds": 0.05, "task_secret": "test-task-secret"}
  defaults.update(overrides)
  return replace(base, **defaults)


class InMemoryJobsRepo:
  def __init__(self) -> None:
    self.jobs: dict[str, ProposalJobRecord] = {}

  async def create_job(self, record: ProposalJobRecord) -> None:
    existing = await self.get_active_for_proposal(record.proposal_id)
    if existing is not None:
      raise ActiveJobExistsError(record.proposal_id, existing)
    self.jobs[record.job_id] = record

  async def get_job(self, job_id: str) -> ProposalJobRecord | None:
    return self.jobs.get(job_id)

  async def get_latest_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    matches = [job for job in self.jobs.values() if job.proposal_id == proposal_id]
    return matches[-1] if matches else None

  async def get_active_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    for job in self.jobs.values():
      if job.proposal_id == proposal_id and job.status in ACTIVE_JOB_STATUSES:
        return job
    return None

  async def claim_job(self, job_id: str, *, started_at: str) -> ProposalJobRecord | None:
    job = self.jobs.get(job_id)
    if job is None or job.status != "queued":
      return None
    claimed = replace(job, status="running", started_at=started_at, updated_at=started_at)
    self.jobs[job_id] = claimed
    return claimed

  async def update_job(self, job_id: str, **changes: Any) -> ProposalJobRecord | None:
    job = self.jobs.get(job_id)
    if job is None:
      return None
    updated = replace(job, **{key: value for key, value in changes.items() if value is not None})
    self.jobs[job_id] = updated
    return updated

  async def find_queued(self, limit: int = 5) -> list[ProposalJobRecord]:
    return [job for job in self.jobs.values() if job.status == "queued"][:limit]

  async def purge_finished(self, *, older_than: str) -> int:
    expired = [job_id for job_id, job in self.jobs.items() if job.status in ("done", "error") and job.updated_at < older_than]
    for job_id in expired:
      del self.jobs[job_id]
    return len(expired)

  async def fail_stalled(self, *, updated_before: str, message: str, error_json: dict, failed_at: str) -> list[ProposalJobRecord]:
    stalled = [job for job in self.jobs.values() if job.status == "running" and job.updated_at < updated_before]
    for job in stalled:
      self.jobs[job.job_id] = replace(job, status="error", stage="error", message=message, error_json=error_json, completed_at=failed_at, updated_at=failed_at)
    return [self.jobs[job.job_id] for job in stalled]


class InMemoryProposalsRepo:
  def __init__(self, *, opportunities: dict[str, OpportunityRecord] | None = None) -> None:
    self.proposals: dict[str, ProposalRecord] = {}
    self.opportunities = opportunities if opportunities is not None else {}

  def add(self, **fields: Any) -> ProposalRecord:
    now = datetime.datetime.now(datetime.UTC)
    values = {"id": str(uuid.uuid4()), "org_id": ORG_ID, "opportunity_id": OPPORTUNITY_ID, "version": 1, "status": "queued", "prompt": "Create a proposal for Acme Corp", "created_at": now, "updated_at": now}
    values.update(fields)
    record = ProposalRecord(**values)
    self.proposals[record.id] = record
    return record

  def _with_opportunity(self, record: ProposalRecord) -> ProposalRecord:
    opportunity = self.opportunities.get(record.opportunity_id)
    if opportunity is None:
      return record
    return replace(record, opportunity_name=opportunity.name, opportunity_description=opportunity.description)

  async def create_proposal(self, *, org_id: str, opportunity_id: str, user_id: str | None, prompt: str) -> ProposalRecord:
    version = await self.count_for_opportunity(opportunity_id) + 1
    return self._with_opportunity(self.add(org_id=org_id, opportunity_id=opportunity_id, user_id=user_id, prompt=prompt, version=version))

  async def get_proposal(self, proposal_id: str, *, org_id: str | None = None) -> ProposalRecord | None:
    record = self.proposals.get(proposal_id)
    if record is None or (org_id is not None and record.org_id != org_id):
      return None
    return self._with_opportunity(record)

  async def list_proposals(self, *, org_id: str, opportunity_id: str | None = None) -> list[ProposalRecord]:
    records = [record for record in self.proposals.values() if record.org_id == org_id and (opportunity_id is None or record.opportunity_id == opportunity_id)]
    records.sort(key=lambda record: record.created_at, reverse=True)
    return [replace(self._with_opportunity(record), slides=None) for record in records]

  async def count_for_opportunity(self, opportunity_id: str) -> int:
    return sum(1 for record in self.proposals.values() if record.opportunity_id == opportunity_id)

  async def mark_generating(self, proposal_id: str) -> bool:
    return self._transition(proposal_id, ("draft", "queued"), status="generating")

  async def complete_proposal(self, proposal_id: str, *, slides: list[dict[str, Any]], generation_metadata: dict[str, Any]) -> bool:
    return self._transition(proposal_id, ("draft", "queued", "generating"), status="complete", slides=slides, generation_metadata=generation_metadata, error_message=None, error_details=None)

  async def fail_proposal(self, proposal_id: str, *, error_message: str, error_details: dict[str, Any]) -> bool:
    return self._transition(proposal_id, ("draft", "queued", "generating"), status="error", error_message=error_message, error_details=error_details, slides=None)

  def _transition(self, proposal_id: str, allowed: tuple[str, ...], **changes: Any) -> bool:
    record = self.proposals.get(proposal_id)
    if record is None or record.status not in allowed:
      return False
    self.proposals[proposal_id] = replace(record, updated_at=datetime.datetime.now(datetime.UTC), **changes)
    return True


@dataclass
class InMemoryKnowledgeRepo:
  organization_names: dict[str, str] = field(default_factory=lambda: {ORG_ID: "Acme Software"})
  brand: dict[str, Any] | None = None
  profile: CompanyProfileRecord | None = None
  products: list[ProductRecord] = field(default_factory=list)
  battlecards: list[BattlecardRecord] = field(default_factory=list)
  opportunities: dict[str, OpportunityRecord] = field(default_factory=dict)
  deal_items: list[DealContextRecord] = field(default_factory=list)
  fail_with: Exception | None = None

  async def get_organization_name(self, organization_id: str) -> str | None:
    if self.fail_with is not None:
      raise self.fail_with
    return self.organization_names.get(organization_id)

  async def get_brand_guidelines(self, organization_id: str) -> dict[str, Any] | None:
    return self.brand

  async def get_company_profile(self, organization_id: str) -> CompanyProfileRecord | None:
    return self.profile

  async def list_active_products(self, organization_id: str) -> list[ProductRecord]:
    return list(self.products)

  async def list_active_battlecards(self, organization_id: str) -> list[BattlecardRecord]:
    return list(self.battlecards)

  async def get_opportunity(self, organization_id: str, opportunity_id: str) -> OpportunityRecord | None:
    opportunity = self.opportunities.get(opportunity_id)
    if opportunity is None or opportunity.org_id != organization_id:
      return None
    return opportunity

  async def list_deal_context(self, opportunity_id: str, *, limit: int) -> list[DealContextRecord]:
    return self.deal_items[:limit]

  async def delete_opportunity(self, organization_id: str, opportunity_id: str) -> bool:
    if await self.get_opportunity(organization_id, opportunity_id) is None:
      return False
    del self.opportunities[opportunity_id]
    return True


class InMemoryOrganizationsRepo:
  def __init__(self, organizations: Sequence[OrganizationRecord] = (), *, fail_with: Exception | None = None) -> None:
    self.organizations = {organization.id: organization for organization in organizations}
    self.fail_with = fail_with
    self.lookups = 0

  async def get_organization(self, organization_id: str) -> OrganizationRecord | None:
    self.lookups += 1
    if self.fail_with is not None:
      raise self.fail_with
    return self.organizations.get(organization_id)

  async def update_settings(self, organization_id: str, changes: dict[str, Any]) -> OrganizationRecord | None:
    organization = self.organizations.get(organization_id)
    if organization is None:
      return None
    updated = replace(organization, settings={**organization.settings, **changes})
    self.organizations[organization_id] = updated
    return updated


def _pass_through(exc: Exception) -> LLMProviderError:
  if isinstance(exc, LLMProviderError):
    return exc
  return LLMProviderError(str(exc), "scripted", "UNKNOWN", False)


class ScriptedProvider(LLMProvider):
  """Replays queued responses; an Exception entry fails that call mid-stream."""

  def __init__(self, responses: Sequence[str | Exception] = (), *, provider_id: str = "anthropic-direct", model: str = "claude-test", max_context_tokens: int = 200_000, available: bool = True) -> None:
    self.provider_id = provider_id
    self.responses = list(responses)
    self.calls: list[tuple[str, tuple[Message, ...]]] = []
    self._model = model
    self._max_context_tokens = max_context_tokens
    self._available = available

  async def generate_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> CompletionResponse:
    self.calls.append((system_prompt, tuple(messages)))
    item = self.responses.pop(0)
    if isinstance(item, Exception):
      raise item
    return CompletionResponse(content=item, usage=TokenUsage(input_tokens=10, output_tokens=5), stop_reason="end_turn")

  async def _chunks(self, item: str | Exception) -> AsyncIterator[RawChunk]:
    yield UsageUpdate(input_tokens=10)
    if isinstance(item, Exception):
      raise item
    midpoint = len(item) // 2
    yield ContentDelta(content=item[:midpoint])
    yield ContentDelta(content=item[midpoint:])
    yield UsageUpdate(output_tokens=5)

  def stream_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> AsyncIterator[StreamEvent]:
    self.calls.append((system_prompt, tuple(messages)))
    item = self.responses.pop(0)
    return guarded_stream(self._chunks(item), map_error=_pass_through)

  def is_available(self) -> bool:
    return self._available

  def get_metadata(self) -> ProviderMetadata:
    return ProviderMetadata(name=self.provider_id, model=self._model, supports_streaming=True, supports_system_prompt=True, max_context_tokens=self._max_context_tokens)


class StaticSelector:
  """Selector stand-in that always returns one provider handle."""

  def __init__(self, provider: LLMProvider) -> None:
    self.provider = provider
    self.invalidated: list[str | None] = []

  async def select(self, organization_id: str) -> LLMProvider:
    return self.provider

  def invalidate(self, organization_id: str | None = None) -> None:
    self.invalidated.append(organization_id)


class RecordingSleep:
  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


def make_opportunity(**fields: Any) -> OpportunityRecord:
  values = {"id": OPPORTUNITY_ID, "org_id": ORG_ID, "name": "Acme Corp Expansion", "description": "50 seat rollout", "stage": "proposal"}
  values.update(fields)
  return OpportunityRecord(**values)

