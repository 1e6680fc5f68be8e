"""Postgres-backed repository for knowledge-base and opportunity reads."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, select

from app.core.database import get_session_factory
from app.schema.sql import Battlecard, BrandSettings, CompanyProfile, DealContextItem, Opportunity, Organization, Product
from app.storage.knowledge_repo import BattlecardRecord, CompanyProfileRecord, DealContextRecord, KnowledgeRepository, OpportunityRecord, ProductRecord
from app.storage.opportunities_repo import OpportunitiesRepository


def _opportunity_record(row: Opportunity) -> OpportunityRecord:
  return OpportunityRecord(
    id=str(row.id),
    org_id=str(row.org_id),
    name=row.name,
    description=row.description,
    amount=row.amount,
    close_date=row.close_date,
    stage=row.stage,
    deal_summary=row.deal_summary,
  )


class PostgresKnowledgeRepository(KnowledgeRepository, OpportunitiesRepository):
  """Organization-scoped reads for context assembly plus opportunity lifecycle writes."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_organization_name(self, organization_id: str) -> str | None:
    async with self._session_factory() as session:
      row = await session.get(Organization, uuid.UUID(organization_id))
      return row.name if row is not None else None

  async def get_brand_guidelines(self, organization_id: str) -> dict[str, Any] | None:
    async with self._session_factory() as session:
      stmt = select(BrandSettings.brand_guidelines).where(BrandSettings.org_id == uuid.UUID(organization_id))
      return (await session.execute(stmt)).scalar_one_or_none()

  async def get_company_profile(self, organization_id: str) -> CompanyProfileRecord | None:
    async with self._session_factory() as session:
      stmt = select(CompanyProfile).where(CompanyProfile.org_id == uuid.UUID(organization_id))
      row = (await session.execute(stmt)).scalars().first()
      if row is None:
        return None
      return CompanyProfileRecord(summary=row.summary, value_proposition=row.value_proposition, target_customers=row.target_customers, key_differentiators=list(row.key_differentiators or []))

  async def list_active_products(self, organization_id: str) -> list[ProductRecord]:
    async with self._session_factory() as session:
      stmt = select(Product).where(Product.org_id == uuid.UUID(organization_id), Product.is_active.is_(True)).order_by(Product.name.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [ProductRecord(name=row.name, category=row.category, description=row.description) for row in rows]

  async def list_active_battlecards(self, organization_id: str) -> list[BattlecardRecord]:
    async with self._session_factory() as session:
      stmt = select(Battlecard).where(Battlecard.org_id == uuid.UUID(organization_id), Battlecard.is_active.is_(True)).order_by(Battlecard.competitor_name.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [BattlecardRecord(competitor_name=row.competitor_name, structured_content=dict(row.structured_content or {})) for row in rows]

  async def get_opportunity(self, organization_id: str, opportunity_id: str) -> OpportunityRecord | None:
    async with self._session_factory() as session:
      stmt = select(Opportunity).where(Opportunity.id == uuid.UUID(opportunity_id), Opportunity.org_id == uuid.UUID(organization_id))
      row = (await session.execute(stmt)).scalars().first()
      return _opportunity_record(row) if row is not None else None

  async def list_deal_context(self, opportunity_id: str, *, limit: int) -> list[DealContextRecord]:
    async with self._session_factory() as session:
      stmt = select(DealContextItem).where(DealContextItem.opportunity_id == uuid.UUID(opportunity_id)).order_by(DealContextItem.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [DealContextRecord(id=str(row.id), source_type=row.source_type, raw_content=row.raw_content, created_at=row.created_at, source_metadata=dict(row.source_metadata or {})) for row in rows]

  async def delete_opportunity(self, organization_id: str, opportunity_id: str) -> bool:
    async with self._session_factory() as session:
      stmt = delete(Opportunity).where(Opportunity.id == uuid.UUID(opportunity_id), Opportunity.org_id == uuid.UUID(organization_id))
      result = await session.execute(stmt)
      await session.commit()
      return bool(result.rowcount)
