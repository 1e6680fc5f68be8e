"""Storage interfaces for opportunity lifecycle operations."""

from __future__ import annotations

from typing import Protocol

from app.storage.knowledge_repo import OpportunityRecord


class OpportunitiesRepository(Protocol):
  """Repository contract for opportunities."""

  async def get_opportunity(self, organization_id: str, opportunity_id: str) -> OpportunityRecord | None:
    """Return an opportunity scoped to the organization."""

  async def delete_opportunity(self, organization_id: str, opportunity_id: str) -> bool:
    """Delete an opportunity; False when nothing matched."""
