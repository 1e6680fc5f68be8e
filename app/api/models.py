from __future__ import annotations

import datetime
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.ai.providers.factory import ProviderId
from app.jobs.models import JobStage, ProposalJobProgress
from app.storage.proposals_repo import ProposalRecord

PROMPT_MIN_CHARS = 10
PROMPT_MAX_CHARS = 5000


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so the API accepts frontend-style payloads."""
  parts = string.split("_")
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class ApiModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class CreateProposalRequest(ApiModel):
  """Request payload for starting a proposal generation."""

  opportunity_id: uuid.UUID = Field(description="Opportunity the proposal is generated for.")
  prompt: StrictStr = Field(min_length=PROMPT_MIN_CHARS, max_length=PROMPT_MAX_CHARS, description="Natural-language instructions for the proposal.", examples=["Create a proposal for Acme Corp, 50 users, annual billing"])
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, extra="forbid")


class ProposalCreateResponse(ApiModel):
  id: str
  version: int
  status: str
  message: str


class OpportunitySummary(ApiModel):
  id: str
  name: str | None = None
  description: str | None = None


class ProposalResponse(ApiModel):
  """Persisted proposal shape; slides are present only once complete."""

  id: str
  version: int
  status: str
  prompt: str
  slides: list[dict[str, Any]] | None = None
  error_message: str | None = None
  created_at: datetime.datetime
  updated_at: datetime.datetime
  opportunity: OpportunitySummary

  @classmethod
  def from_record(cls, record: ProposalRecord) -> ProposalResponse:
    return cls(
      id=record.id,
      version=record.version,
      status=record.status,
      prompt=record.prompt,
      slides=record.slides if record.status == "complete" else None,
      error_message=record.error_message,
      created_at=record.created_at,
      updated_at=record.updated_at,
      opportunity=OpportunitySummary(id=record.opportunity_id, name=record.opportunity_name, description=record.opportunity_description),
    )


class ProposalListItem(ApiModel):
  id: str
  version: int
  status: str
  prompt: str
  error_message: str | None = None
  created_at: datetime.datetime
  opportunity: OpportunitySummary

  @classmethod
  def from_record(cls, record: ProposalRecord) -> ProposalListItem:
    return cls(
      id=record.id,
      version=record.version,
      status=record.status,
      prompt=record.prompt,
      error_message=record.error_message,
      created_at=record.created_at,
      opportunity=OpportunitySummary(id=record.opportunity_id, name=record.opportunity_name, description=record.opportunity_description),
    )


class ProposalListResponse(ApiModel):
  proposals: list[ProposalListItem]


class JobProgressModel(ApiModel):
  stage: JobStage
  slide_index: int | None = None
  total_slides: int | None = None
  message: str | None = None

  @classmethod
  def from_progress(cls, progress: ProposalJobProgress) -> JobProgressModel:
    return cls(stage=progress.stage, slide_index=progress.slide_index, total_slides=progress.total_slides, message=progress.message)


class ProposalStatusResponse(ApiModel):
  """Job progress, or null when no job record is retained, plus the proposal's own status."""

  proposal_id: str
  status: str
  job: JobProgressModel | None = None
  error_message: str | None = None


class OrganizationSettingsUpdate(ApiModel):
  llm_provider: ProviderId = Field(description="Preferred LLM provider for this organization.")
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, extra="forbid")


class OrganizationSettingsResponse(ApiModel):
  id: str
  name: str
  plan_tier: str
  llm_provider: str | None = None
