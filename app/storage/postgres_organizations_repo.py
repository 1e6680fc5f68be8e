"""Postgres-backed repository for organizations using SQLAlchemy."""

from __future__ import annotations

import uuid
from typing import Any

from app.core.database import get_session_factory
from app.schema.sql import Organization
from app.storage.organizations_repo import OrganizationRecord, OrganizationsRepository


class PostgresOrganizationsRepository(OrganizationsRepository):
  """Read and update organization rows."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_organization(self, organization_id: str) -> OrganizationRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Organization, uuid.UUID(organization_id))
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_settings(self, organization_id: str, changes: dict[str, Any]) -> OrganizationRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Organization, uuid.UUID(organization_id))
      if row is None:
        return None
      # Reassign so SQLAlchemy sees the JSONB column as dirty.
      merged = dict(row.settings or {})
      merged.update(changes)
      row.settings = merged
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  def _model_to_record(self, row: Organization) -> OrganizationRecord:
    return OrganizationRecord(id=str(row.id), name=row.name, plan_tier=row.plan_tier, settings=dict(row.settings or {}))
