from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.schema.jobs import ProposalJob  # noqa: F401


class PlanTier(str, Enum):
  FREE = "free"
  PRO = "pro"
  TEAM = "team"
  ENTERPRISE = "enterprise"


class MemberRole(str, Enum):
  OWNER = "owner"
  ADMIN = "admin"
  MEMBER = "member"


class ProposalStatus(str, Enum):
  DRAFT = "draft"
  QUEUED = "queued"
  GENERATING = "generating"
  COMPLETE = "complete"
  ERROR = "error"


TERMINAL_PROPOSAL_STATUSES = frozenset({ProposalStatus.COMPLETE.value, ProposalStatus.ERROR.value})


class Organization(Base):
  __tablename__ = "organizations"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  name: Mapped[str] = mapped_column(String, nullable=False)
  plan_tier: Mapped[str] = mapped_column(String, nullable=False, default=PlanTier.FREE.value)
  # Free-form organization settings; `llmProvider` selects the preferred backend.
  settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class User(Base):
  __tablename__ = "users"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  firebase_uid: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  full_name: Mapped[str | None] = mapped_column(String, nullable=True)
  org_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default=MemberRole.MEMBER.value)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Opportunity(Base):
  __tablename__ = "opportunities"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
  close_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
  stage: Mapped[str] = mapped_column(String, nullable=False, default="open")
  deal_summary: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Product(Base):
  __tablename__ = "products"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  category: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Battlecard(Base):
  __tablename__ = "battlecards"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
  competitor_name: Mapped[str] = mapped_column(String, nullable=False)
  structured_content: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CompanyProfile(Base):
  __tablename__ = "company_profiles"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True)
  summary: Mapped[str | None] = mapped_column(Text, nullable=True)
  value_proposition: Mapped[str | None] = mapped_column(Text, nullable=True)
  target_customers: Mapped[str | None] = mapped_column(Text, nullable=True)
  key_differentiators: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class BrandSettings(Base):
  __tablename__ = "brand_settings"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True)
  # {tone, formality, keyMessages, contentStyle, competitivePositioning}
  brand_guidelines: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DealContextItem(Base):
  __tablename__ = "deal_context_items"

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  opportunity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("opportunities.id", ondelete="CASCADE"), nullable=False, index=True)
  source_type: Mapped[str] = mapped_column(String, nullable=False)
  raw_content: Mapped[str] = mapped_column(Text, nullable=False)
  source_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class Proposal(Base):
  __tablename__ = "proposals"
  __table_args__ = (UniqueConstraint("opportunity_id", "version", name="ux_proposals_opportunity_version"),)

  id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
  org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
  # RESTRICT keeps opportunities from being removed while proposals reference them.
  opportunity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("opportunities.id", ondelete="RESTRICT"), nullable=False, index=True)
  user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default=ProposalStatus.QUEUED.value, index=True)
  prompt: Mapped[str] = mapped_column(Text, nullable=False)
  slides: Mapped[list[dict] | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  generation_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
