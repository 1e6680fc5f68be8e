"""Storage interfaces for the knowledge base and opportunity records used as generation context."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol


@dataclass(frozen=True)
class ProductRecord:
  name: str
  category: str | None = None
  description: str | None = None


@dataclass(frozen=True)
class BattlecardRecord:
  competitor_name: str
  structured_content: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompanyProfileRecord:
  summary: str | None = None
  value_proposition: str | None = None
  target_customers: str | None = None
  key_differentiators: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OpportunityRecord:
  id: str
  org_id: str
  name: str
  description: str | None = None
  amount: Decimal | None = None
  close_date: datetime.date | None = None
  stage: str = "open"
  deal_summary: dict[str, Any] | None = None


@dataclass(frozen=True)
class DealContextRecord:
  id: str
  source_type: str
  raw_content: str
  created_at: datetime.datetime
  source_metadata: dict[str, Any] = field(default_factory=dict)


class KnowledgeRepository(Protocol):
  """Read-only access to the organization data a generation draws on."""

  async def get_organization_name(self, organization_id: str) -> str | None:
    """Return the organization display name."""

  async def get_brand_guidelines(self, organization_id: str) -> dict[str, Any] | None:
    """Return stored brand guidelines, if configured."""

  async def get_company_profile(self, organization_id: str) -> CompanyProfileRecord | None:
    """Return the company profile, if configured."""

  async def list_active_products(self, organization_id: str) -> list[ProductRecord]:
    """Return active products ordered by name."""

  async def list_active_battlecards(self, organization_id: str) -> list[BattlecardRecord]:
    """Return active battlecards ordered by competitor name."""

  async def get_opportunity(self, organization_id: str, opportunity_id: str) -> OpportunityRecord | None:
    """Return an opportunity scoped to the organization."""

  async def list_deal_context(self, opportunity_id: str, *, limit: int) -> list[DealContextRecord]:
    """Return the newest deal-context items for an opportunity, newest first."""
