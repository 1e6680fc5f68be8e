"""Postgres-backed repository for proposal generation jobs using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from app.core.database import get_session_factory
from app.jobs.models import ACTIVE_JOB_STATUSES, JobStage, JobStatus, ProposalJobRecord
from app.schema.jobs import ProposalJob
from app.storage.jobs_repo import ActiveJobExistsError, JobsRepository
from app.utils.ids import utc_timestamp


class PostgresJobsRepository(JobsRepository):
  """Persist proposal jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: ProposalJobRecord) -> None:
    async with self._session_factory() as session:
      job = ProposalJob(
        job_id=record.job_id,
        proposal_id=record.proposal_id,
        org_id=record.org_id,
        opportunity_id=record.opportunity_id,
        request_json=record.request,
        status=record.status,
        stage=record.stage,
        slide_index=record.slide_index,
        total_slides=record.total_slides,
        message=record.message,
        created_at=record.created_at,
        updated_at=record.updated_at,
      )
      session.add(job)
      try:
        await session.commit()
      except IntegrityError as exc:
        # The partial unique index allows one queued/running job per proposal.
        await session.rollback()
        existing = await self.get_active_for_proposal(record.proposal_id)
        raise ActiveJobExistsError(record.proposal_id, existing) from exc

  async def get_job(self, job_id: str) -> ProposalJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(ProposalJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_latest_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    async with self._session_factory() as session:
      stmt = select(ProposalJob).where(ProposalJob.proposal_id == proposal_id).order_by(ProposalJob.created_at.desc()).limit(1)
      row = (await session.execute(stmt)).scalars().first()
      return self._model_to_record(row) if row is not None else None

  async def get_active_for_proposal(self, proposal_id: str) -> ProposalJobRecord | None:
    async with self._session_factory() as session:
      stmt = select(ProposalJob).where(ProposalJob.proposal_id == proposal_id, ProposalJob.status.in_(ACTIVE_JOB_STATUSES)).limit(1)
      row = (await session.execute(stmt)).scalars().first()
      return self._model_to_record(row) if row is not None else None

  async def claim_job(self, job_id: str, *, started_at: str) -> ProposalJobRecord | None:
    async with self._session_factory() as session:
      # Conditional update: only one processor can move a job out of queued.
      stmt = update(ProposalJob).where(ProposalJob.job_id == job_id, ProposalJob.status == "queued").values(status="running", started_at=started_at, updated_at=started_at).returning(ProposalJob)
      row = (await session.execute(stmt)).scalars().first()
      if row is None:
        await session.rollback()
        return None
      record = self._model_to_record(row)
      await session.commit()
      return record

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    stage: JobStage | None = None,
    slide_index: int | None = None,
    total_slides: int | None = None,
    message: str | None = None,
    error_json: dict | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> ProposalJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(ProposalJob, job_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if stage is not None:
        row.stage = stage
      if slide_index is not None:
        row.slide_index = slide_index
      if total_slides is not None:
        row.total_slides = total_slides
      if message is not None:
        row.message = message
      if error_json is not None:
        row.error_json = error_json
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = updated_at or utc_timestamp()
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def find_queued(self, limit: int = 5) -> list[ProposalJobRecord]:
    async with self._session_factory() as session:
      stmt = select(ProposalJob).where(ProposalJob.status == "queued").order_by(ProposalJob.created_at.asc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def purge_finished(self, *, older_than: str) -> int:
    async with self._session_factory() as session:
      stmt = delete(ProposalJob).where(ProposalJob.status.in_(("done", "error")), ProposalJob.updated_at < older_than)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  async def fail_stalled(self, *, updated_before: str, message: str, error_json: dict, failed_at: str) -> list[ProposalJobRecord]:
    async with self._session_factory() as session:
      # The status guard keeps a worker that finishes concurrently from being overwritten.
      stmt = (
        update(ProposalJob)
        .where(ProposalJob.status == "running", ProposalJob.updated_at < updated_before)
        .values(status="error", stage="error", message=message, error_json=error_json, completed_at=failed_at, updated_at=failed_at)
        .returning(ProposalJob)
      )
      rows = (await session.execute(stmt)).scalars().all()
      records = [self._model_to_record(row) for row in rows]
      await session.commit()
      return records

  def _model_to_record(self, row: ProposalJob) -> ProposalJobRecord:
    return ProposalJobRecord(
      job_id=row.job_id,
      proposal_id=row.proposal_id,
      org_id=row.org_id,
      opportunity_id=row.opportunity_id,
      request=row.request_json or {},
      status=row.status,  # type: ignore[arg-type]
      stage=row.stage,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      slide_index=row.slide_index,
      total_slides=row.total_slides,
      message=row.message,
      error_json=row.error_json,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
