import logging

from app.ai.selector import ProviderSelector, build_provider_selector
from app.config import Settings
from app.jobs.models import ProposalJobRecord
from app.jobs.queue import fail_stalled_jobs, purge_finished_jobs
from app.jobs.worker import ProposalJobProcessor
from app.storage.factory import _get_jobs_repo, _get_knowledge_repo, _get_proposals_repo
from app.utils.ids import utc_timestamp

logger = logging.getLogger(__name__)

_SYSTEM_ERROR_MESSAGE = "Proposal generation failed unexpectedly. Please try again."


def build_job_processor(settings: Settings, selector: ProviderSelector | None = None) -> ProposalJobProcessor:
  """Wire a processor to the configured repositories."""
  return ProposalJobProcessor(
    jobs_repo=_get_jobs_repo(settings),
    proposals_repo=_get_proposals_repo(settings),
    knowledge_repo=_get_knowledge_repo(settings),
    selector=selector or build_provider_selector(settings),
    settings=settings,
  )


async def process_job_sync(job_id: str, settings: Settings, selector: ProviderSelector | None = None) -> ProposalJobRecord | None:
  """Run a queued job immediately (synchronously)."""
  repo = _get_jobs_repo(settings)
  record: ProposalJobRecord | None = None
  try:
    record = await repo.get_job(job_id)
    if record is None:
      logger.warning("Task received for unknown job %s", job_id)
      return None
    processor = build_job_processor(settings, selector)
    return await processor.process_job(record)
  except Exception as exc:
    logger.error("Synchronous job processing failed for job %s: %s", job_id, exc, exc_info=True)
    failed_at = utc_timestamp()
    details = {"timestamp": failed_at, "error": {"type": type(exc).__name__}}
    try:
      await repo.update_job(job_id, status="error", stage="error", message=_SYSTEM_ERROR_MESSAGE, error_json=details, completed_at=failed_at, updated_at=failed_at)
      if record is not None:
        await _get_proposals_repo(settings).fail_proposal(record.proposal_id, error_message=_SYSTEM_ERROR_MESSAGE, error_details=details)
    except Exception as update_exc:  # noqa: BLE001
      logger.error("Failed to update job status after processing error: %s", update_exc)
    return None


async def run_pending_jobs(settings: Settings, selector: ProviderSelector | None = None, *, limit: int = 5) -> int:
  """Fail stalled jobs, process one batch of queued jobs and purge expired ones; returns jobs processed."""
  processor = build_job_processor(settings, selector)
  await fail_stalled_jobs(jobs_repo=processor.jobs_repo, proposals_repo=processor.proposals_repo, stall_seconds=settings.jobs_stall_seconds)
  processed = await processor.process_queue(limit=limit)
  await purge_finished_jobs(jobs_repo=processor.jobs_repo, retention_seconds=settings.jobs_retention_seconds)
  return len(processed)
