"""Postgres-backed repository for proposals using SQLAlchemy."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from app.core.database import get_session_factory
from app.schema.sql import TERMINAL_PROPOSAL_STATUSES, Opportunity, Proposal, ProposalStatus
from app.storage.proposals_repo import ProposalRecord, ProposalsRepository

logger = logging.getLogger(__name__)

# Concurrent creates for one opportunity can race on the next version number.
_VERSION_ATTEMPTS = 3


class PostgresProposalsRepository(ProposalsRepository):
  """Persist proposals to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_proposal(self, *, org_id: str, opportunity_id: str, user_id: str | None, prompt: str) -> ProposalRecord:
    last_error: IntegrityError | None = None
    for attempt in range(_VERSION_ATTEMPTS):
      async with self._session_factory() as session:
        latest = await session.execute(select(func.max(Proposal.version)).where(Proposal.opportunity_id == uuid.UUID(opportunity_id)))
        next_version = (latest.scalar_one_or_none() or 0) + 1
        row = Proposal(
          org_id=uuid.UUID(org_id),
          opportunity_id=uuid.UUID(opportunity_id),
          user_id=uuid.UUID(user_id) if user_id else None,
          version=next_version,
          status=ProposalStatus.QUEUED.value,
          prompt=prompt,
        )
        session.add(row)
        try:
          await session.commit()
        except IntegrityError as exc:
          await session.rollback()
          last_error = exc
          logger.warning("Proposal version collision opportunity_id=%s version=%s attempt=%s", opportunity_id, next_version, attempt + 1)
          continue
        await session.refresh(row)
        return self._model_to_record(row)
    raise RuntimeError(f"Could not allocate a proposal version for opportunity {opportunity_id}.") from last_error

  async def get_proposal(self, proposal_id: str, *, org_id: str | None = None) -> ProposalRecord | None:
    async with self._session_factory() as session:
      stmt = select(Proposal, Opportunity.name, Opportunity.description).join(Opportunity, Opportunity.id == Proposal.opportunity_id).where(Proposal.id == uuid.UUID(proposal_id))
      if org_id is not None:
        stmt = stmt.where(Proposal.org_id == uuid.UUID(org_id))
      result = (await session.execute(stmt)).first()
      if result is None:
        return None
      row, opportunity_name, opportunity_description = result
      return self._model_to_record(row, opportunity_name=opportunity_name, opportunity_description=opportunity_description)

  async def list_proposals(self, *, org_id: str, opportunity_id: str | None = None) -> list[ProposalRecord]:
    async with self._session_factory() as session:
      stmt = select(Proposal, Opportunity.name, Opportunity.description).join(Opportunity, Opportunity.id == Proposal.opportunity_id).where(Proposal.org_id == uuid.UUID(org_id))
      if opportunity_id is not None:
        stmt = stmt.where(Proposal.opportunity_id == uuid.UUID(opportunity_id))
      stmt = stmt.order_by(Proposal.created_at.desc())
      rows = (await session.execute(stmt)).all()
      return [self._model_to_record(row, opportunity_name=name, opportunity_description=description, include_slides=False) for row, name, description in rows]

  async def count_for_opportunity(self, opportunity_id: str) -> int:
    async with self._session_factory() as session:
      result = await session.execute(select(func.count()).select_from(Proposal).where(Proposal.opportunity_id == uuid.UUID(opportunity_id)))
      return int(result.scalar_one())

  async def mark_generating(self, proposal_id: str) -> bool:
    allowed = (ProposalStatus.DRAFT.value, ProposalStatus.QUEUED.value)
    return await self._conditional_update(proposal_id, allowed, {"status": ProposalStatus.GENERATING.value})

  async def complete_proposal(self, proposal_id: str, *, slides: list[dict[str, Any]], generation_metadata: dict[str, Any]) -> bool:
    values = {"status": ProposalStatus.COMPLETE.value, "slides": slides, "generation_metadata": generation_metadata, "error_message": None, "error_details": None}
    return await self._conditional_update(proposal_id, self._non_terminal(), values)

  async def fail_proposal(self, proposal_id: str, *, error_message: str, error_details: dict[str, Any]) -> bool:
    values = {"status": ProposalStatus.ERROR.value, "error_message": error_message, "error_details": error_details, "slides": None}
    return await self._conditional_update(proposal_id, self._non_terminal(), values)

  @staticmethod
  def _non_terminal() -> tuple[str, ...]:
    return tuple(status.value for status in ProposalStatus if status.value not in TERMINAL_PROPOSAL_STATUSES)

  async def _conditional_update(self, proposal_id: str, allowed_statuses: tuple[str, ...], values: dict[str, Any]) -> bool:
    async with self._session_factory() as session:
      stmt = update(Proposal).where(Proposal.id == uuid.UUID(proposal_id), Proposal.status.in_(allowed_statuses)).values(**values, updated_at=func.now())
      result = await session.execute(stmt)
      await session.commit()
      return bool(result.rowcount)

  def _model_to_record(self, row: Proposal, *, opportunity_name: str | None = None, opportunity_description: str | None = None, include_slides: bool = True) -> ProposalRecord:
    return ProposalRecord(
      id=str(row.id),
      org_id=str(row.org_id),
      opportunity_id=str(row.opportunity_id),
      version=row.version,
      status=row.status,
      prompt=row.prompt,
      created_at=row.created_at,
      updated_at=row.updated_at,
      user_id=str(row.user_id) if row.user_id else None,
      slides=row.slides if include_slides else None,
      error_message=row.error_message,
      error_details=row.error_details,
      generation_metadata=row.generation_metadata,
      opportunity_name=opportunity_name,
      opportunity_description=opportunity_description,
    )
