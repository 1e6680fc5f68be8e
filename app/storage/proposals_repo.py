"""Storage interfaces for proposals."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ProposalRecord:
  id: str
  org_id: str
  opportunity_id: str
  version: int
  status: str
  prompt: str
  created_at: datetime.datetime
  updated_at: datetime.datetime
  user_id: str | None = None
  slides: list[dict[str, Any]] | None = None
  error_message: str | None = None
  error_details: dict[str, Any] | None = None
  generation_metadata: dict[str, Any] | None = None
  opportunity_name: str | None = None
  opportunity_description: str | None = None


class ProposalsRepository(Protocol):
  """Repository contract for proposals.

  Status writes are conditional on the current status so a terminal
  proposal is never moved back and two writers cannot both finish it.
  """

  async def create_proposal(self, *, org_id: str, opportunity_id: str, user_id: str | None, prompt: str) -> ProposalRecord:
    """Insert a queued proposal at the next version for the opportunity."""

  async def get_proposal(self, proposal_id: str, *, org_id: str | None = None) -> ProposalRecord | None:
    """Fetch one proposal, optionally scoped to an organization."""

  async def list_proposals(self, *, org_id: str, opportunity_id: str | None = None) -> list[ProposalRecord]:
    """List proposals newest first, without slides."""

  async def count_for_opportunity(self, opportunity_id: str) -> int:
    """Count proposals attached to an opportunity."""

  async def mark_generating(self, proposal_id: str) -> bool:
    """Move draft/queued to generating; False when the proposal is not in those states."""

  async def complete_proposal(self, proposal_id: str, *, slides: list[dict[str, Any]], generation_metadata: dict[str, Any]) -> bool:
    """Write slides and complete status in one update; False when already terminal."""

  async def fail_proposal(self, proposal_id: str, *, error_message: str, error_details: dict[str, Any]) -> bool:
    """Write error status and message in one update; False when already terminal."""
