"""Storage interfaces for organization lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class OrganizationRecord:
  id: str
  name: str
  plan_tier: str
  settings: dict[str, Any] = field(default_factory=dict)


class OrganizationsRepository(Protocol):
  """Repository contract for organizations."""

  async def get_organization(self, organization_id: str) -> OrganizationRecord | None:
    """Fetch an organization with its plan tier and settings."""

  async def update_settings(self, organization_id: str, changes: dict[str, Any]) -> OrganizationRecord | None:
    """Merge `changes` into the stored settings; None when the organization is missing."""
