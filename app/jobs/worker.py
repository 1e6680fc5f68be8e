"""Background processor for queued proposal generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.ai.context_assembly import AssembledContext, ContextAssembler, ContextAssemblyError
from app.ai.proposal_generator import GenerationResult, ProposalGenerator, SlideParseError
from app.ai.providers.errors import AuthenticationError, ContextLengthError, LLMProviderError, RateLimitError
from app.ai.selector import ProviderSelectionError, ProviderSelector
from app.config import Settings
from app.core.logging import job_log_context
from app.jobs.models import ProposalJobRecord
from app.jobs.progress import ProposalProgressTracker
from app.schema.slides import slides_to_builtins
from app.storage.jobs_repo import JobsRepository
from app.storage.knowledge_repo import KnowledgeRepository
from app.storage.proposals_repo import ProposalsRepository
from app.utils.ids import utc_timestamp

logger = logging.getLogger(__name__)


def describe_failure(exc: BaseException) -> str:
  """Map a generation failure to the message shown on the proposal."""
  if isinstance(exc, SlideParseError):
    return f"The AI returned an invalid response while generating the {exc.stage}. Please start a new version."
  if isinstance(exc, RateLimitError):
    return "The AI provider is busy right now. Please try again in a few minutes."
  if isinstance(exc, AuthenticationError):
    return "The AI provider could not be reached with the configured credentials. Contact your administrator."
  if isinstance(exc, ContextLengthError):
    return "This opportunity has too much context to fit in a single proposal."
  if isinstance(exc, LLMProviderError):
    return "The AI provider failed while generating this proposal. Please try again."
  if isinstance(exc, ContextAssemblyError):
    return "Could not load the opportunity and knowledge base for this proposal."
  if isinstance(exc, ProviderSelectionError):
    return "No AI provider could be resolved for this organization."
  return "Proposal generation failed unexpectedly. Please try again."


def _error_details(exc: BaseException, timestamp: str) -> dict[str, Any]:
  error: dict[str, Any] = {"type": type(exc).__name__}
  if isinstance(exc, LLMProviderError):
    error["code"] = exc.code
    error["provider"] = exc.provider
  if isinstance(exc, SlideParseError):
    error["stage"] = exc.stage
  return {"timestamp": timestamp, "error": error}


class ProposalJobProcessor:
  """Claims queued jobs and runs selection, assembly and generation for each."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    proposals_repo: ProposalsRepository,
    knowledge_repo: KnowledgeRepository,
    selector: ProviderSelector,
    settings: Settings,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._proposals_repo = proposals_repo
    self._knowledge_repo = knowledge_repo
    self._selector = selector
    self._settings = settings
    self._sleep = sleep

  @property
  def jobs_repo(self) -> JobsRepository:
    return self._jobs_repo

  @property
  def proposals_repo(self) -> ProposalsRepository:
    return self._proposals_repo

  async def process_job(self, job: ProposalJobRecord) -> ProposalJobRecord | None:
    """Execute a single queued job; returns None when another processor owns it."""
    # Only queued jobs are claimable; anything else is returned untouched.
    if job.status != "queued":
      return job
    claimed = await self._jobs_repo.claim_job(job.job_id, started_at=utc_timestamp())
    if claimed is None:
      # Another processor won the claim.
      logger.info("Skipping job %s: already claimed", job.job_id)
      return None
    # Tag every log line of this run with the job and proposal ids.
    with job_log_context(claimed.job_id, claimed.proposal_id):
      logger.info("Claimed job")
      return await self._run_claimed(claimed)

  async def _run_claimed(self, claimed: ProposalJobRecord) -> ProposalJobRecord | None:
    tracker = ProposalProgressTracker(job=claimed, jobs_repo=self._jobs_repo)
    # Every failure after the claim must land the proposal and the job in error.
    try:
      # The proposal must still be generatable before any provider call.
      if not await self._proposals_repo.mark_generating(claimed.proposal_id):
        return await self._abandon(claimed, tracker)
      result, context = await self._generate(claimed, tracker)
      return await self._finish(claimed, tracker, result, context)
    except Exception as exc:  # noqa: BLE001
      logger.error("Generation failed", exc_info=True)
      return await self._fail(claimed, tracker, exc)

  async def _finish(self, job: ProposalJobRecord, tracker: ProposalProgressTracker, result: GenerationResult, context: AssembledContext) -> ProposalJobRecord | None:
    metadata = {
      "completedAt": utc_timestamp(),
      "provider": result.provider_id,
      "model": result.model,
      "inputTokens": result.usage.input_tokens,
      "outputTokens": result.usage.output_tokens,
      "contextTokens": context.token_estimate,
      "contextTruncated": context.truncated,
      "droppedDealItems": context.dropped_deal_items,
    }
    # Slides and metadata land with the status in one conditional update.
    written = await self._proposals_repo.complete_proposal(job.proposal_id, slides=slides_to_builtins(result.slides), generation_metadata=metadata)
    if not written:
      logger.warning("Proposal was already finalized; discarding %s slides", len(result.slides))
      return await tracker.fail(message="Proposal was already finalized", error_json={"timestamp": utc_timestamp(), "error": {"type": "AlreadyFinalized"}})
    logger.info("Completed job slides=%s", len(result.slides))
    return await tracker.complete(total_slides=len(result.slides))

  async def _generate(self, job: ProposalJobRecord, tracker: ProposalProgressTracker) -> tuple[GenerationResult, AssembledContext]:
    # Select the provider first so assembly can budget against its context window.
    prompt = str(job.request.get("prompt") or "")
    provider = await self._selector.select(job.org_id)
    assembler = ContextAssembler(knowledge_repo=self._knowledge_repo, settings=self._settings)
    context = await assembler.assemble(organization_id=job.org_id, opportunity_id=job.opportunity_id, prompt=prompt, metadata=provider.get_metadata())
    generator = ProposalGenerator(provider, settings=self._settings, sleep=self._sleep)
    result = await generator.generate(prompt=prompt, context=context, on_stage=tracker.advance)
    return result, context

  async def _abandon(self, job: ProposalJobRecord, tracker: ProposalProgressTracker) -> ProposalJobRecord | None:
    proposal = await self._proposals_repo.get_proposal(job.proposal_id)
    reason = "Proposal not found" if proposal is None else f"Proposal is already {proposal.status}"
    logger.warning("Abandoning job %s: %s", job.job_id, reason)
    return await tracker.fail(message=reason, error_json={"timestamp": utc_timestamp(), "error": {"type": "ProposalNotGeneratable"}})

  async def _fail(self, job: ProposalJobRecord, tracker: ProposalProgressTracker, exc: BaseException) -> ProposalJobRecord | None:
    message = describe_failure(exc)
    details = _error_details(exc, utc_timestamp())
    # Record the proposal error first; the job update still runs if that write fails.
    try:
      await self._proposals_repo.fail_proposal(job.proposal_id, error_message=message, error_details=details)
    except Exception:  # noqa: BLE001
      logger.error("Failed to record proposal error proposal_id=%s", job.proposal_id, exc_info=True)
    try:
      return await tracker.fail(message=message, error_json=details)
    except Exception:  # noqa: BLE001
      logger.error("Failed to update job status after processing error job_id=%s", job.job_id, exc_info=True)
      return None

  async def process_queue(self, limit: int = 5) -> list[ProposalJobRecord]:
    """Process a small batch of queued jobs."""
    queued = await self._jobs_repo.find_queued(limit=limit)
    # Jobs run one at a time; a failed claim is skipped rather than retried.
    results: list[ProposalJobRecord] = []
    for job in queued:
      processed = await self.process_job(job)
      if processed:
        results.append(processed)
    return results
