from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class ProposalJob(Base):
  __tablename__ = "proposal_jobs"
  __table_args__ = (Index("ux_proposal_jobs_active_proposal", "proposal_id", unique=True, postgresql_where=text("status IN ('queued', 'running')")),)

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  proposal_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  org_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  opportunity_id: Mapped[str] = mapped_column(String, nullable=False)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  stage: Mapped[str] = mapped_column(String, nullable=False)
  slide_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  total_slides: Mapped[int | None] = mapped_column(Integer, nullable=True)
  message: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
