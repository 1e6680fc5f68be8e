"""Job processing end to end against in-memory repositories."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from app.ai.providers.errors import RateLimitError
from app.jobs.queue import ProposalJobRequest, enqueue_proposal_generation
from app.jobs.worker import ProposalJobProcessor, describe_failure
from tests.fakes import OPPORTUNITY_ID, ORG_ID, InMemoryJobsRepo, InMemoryKnowledgeRepo, InMemoryProposalsRepo, RecordingSleep, ScriptedProvider, StaticSelector, make_settings

_OUTLINE = json.dumps([{"title": "Proposal for Acme", "type": "title"}, {"title": "Next Steps", "type": "next_steps"}])
_TITLE = json.dumps({"title": "Proposal for Acme", "content": {"heading": "Proposal for Acme"}})
_NEXT = json.dumps({"title": "Next Steps", "content": {"bullets": ["Schedule a demo", "Review pricing"]}})


def _processor(provider: ScriptedProvider, jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo, **overrides) -> ProposalJobProcessor:  # noqa: ANN003
  return ProposalJobProcessor(
    jobs_repo=jobs_repo,
    proposals_repo=proposals_repo,
    knowledge_repo=knowledge_repo,
    selector=StaticSelector(provider),
    settings=make_settings(**overrides),
    sleep=RecordingSleep(),
  )


async def _queued_job(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, **proposal_fields):  # noqa: ANN003, ANN202
  proposal = proposals_repo.add(**proposal_fields)
  request = ProposalJobRequest(proposal_id=proposal.id, organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=proposal.prompt)
  job = await enqueue_proposal_generation(request, jobs_repo=jobs_repo, proposals_repo=proposals_repo, enqueuer=None)
  return proposal, job


@pytest.mark.anyio
async def test_successful_job_completes_proposal_and_job(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE, _TITLE, _NEXT]), jobs_repo, proposals_repo, knowledge_repo)

  finished = await processor.process_job(job)

  assert finished is not None
  assert (finished.status, finished.stage, finished.total_slides) == ("done", "complete", 2)
  stored = proposals_repo.proposals[proposal.id]
  assert stored.status == "complete"
  assert [slide["slideNumber"] for slide in stored.slides] == [1, 2]
  assert stored.slides[1]["content"] == {"bullets": ["Schedule a demo", "Review pricing"]}
  assert stored.generation_metadata["provider"] == "anthropic-direct"
  assert stored.generation_metadata["model"] == "claude-test"
  assert stored.generation_metadata["inputTokens"] == 30
  assert stored.generation_metadata["contextTruncated"] is False


@pytest.mark.anyio
async def test_failed_generation_records_error_on_proposal_and_job(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE, "not json at all"]), jobs_repo, proposals_repo, knowledge_repo)

  finished = await processor.process_job(job)

  assert finished is not None
  assert finished.status == "error"
  stored = proposals_repo.proposals[proposal.id]
  assert stored.status == "error"
  assert stored.slides is None
  assert "slide 1 of 2" in stored.error_message
  assert stored.error_details["error"] == {"type": "SlideParseError", "stage": "slide 1 of 2"}
  assert finished.message == stored.error_message


@pytest.mark.anyio
async def test_exhausted_rate_limit_is_reported_as_busy(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  failures = [RateLimitError("anthropic-direct", retry_after_ms=10) for _ in range(2)]
  processor = _processor(ScriptedProvider(failures), jobs_repo, proposals_repo, knowledge_repo, provider_max_retries=1)

  await processor.process_job(job)

  stored = proposals_repo.proposals[proposal.id]
  assert stored.error_message == describe_failure(failures[0])
  assert stored.error_details["error"]["code"] == "RATE_LIMIT"


@pytest.mark.anyio
async def test_missing_opportunity_fails_with_context_error(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE]), jobs_repo, proposals_repo, InMemoryKnowledgeRepo())

  await processor.process_job(job)

  assert proposals_repo.proposals[proposal.id].error_details["error"]["type"] == "ContextAssemblyError"


@pytest.mark.anyio
async def test_already_claimed_job_is_skipped(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  _, job = await _queued_job(jobs_repo, proposals_repo)
  await jobs_repo.claim_job(job.job_id, started_at="2026-01-01T00:00:00Z")
  provider = ScriptedProvider([_OUTLINE])

  assert await _processor(provider, jobs_repo, proposals_repo, knowledge_repo).process_job(job) is None
  assert provider.calls == []


@pytest.mark.anyio
async def test_job_for_finalized_proposal_is_abandoned(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo, status="complete", slides=[{"slideNumber": 1}])
  provider = ScriptedProvider([_OUTLINE])

  finished = await _processor(provider, jobs_repo, proposals_repo, knowledge_repo).process_job(job)

  assert finished is not None
  assert finished.status == "error"
  assert finished.message == "Proposal is already complete"
  assert proposals_repo.proposals[proposal.id].status == "complete"
  assert provider.calls == []


@pytest.mark.anyio
async def test_process_queue_runs_queued_jobs(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE, _TITLE, _NEXT]), jobs_repo, proposals_repo, knowledge_repo)

  results = await processor.process_queue(limit=5)

  assert [job.status for job in results] == ["done"]
  assert await jobs_repo.find_queued() == []


@pytest.mark.anyio
async def test_outline_garbage_ends_proposal_and_job_in_error(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider(["garbage"]), jobs_repo, proposals_repo, knowledge_repo)

  await processor.process_job(job)

  stored = proposals_repo.proposals[proposal.id]
  assert stored.status == "error"
  assert stored.slides is None
  assert "outline" in stored.error_message
  stored_job = jobs_repo.jobs[job.job_id]
  assert (stored_job.status, stored_job.stage) == ("error", "error")


@pytest.mark.anyio
async def test_failed_completion_write_still_ends_in_error(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, _ = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE, _TITLE, _NEXT]), jobs_repo, proposals_repo, knowledge_repo)

  with patch.object(proposals_repo, "complete_proposal", new=AsyncMock(side_effect=ConnectionError("connection reset"))):
    results = await processor.process_queue()

  assert [(job.status, job.stage) for job in results] == [("error", "error")]
  stored = proposals_repo.proposals[proposal.id]
  assert stored.status == "error"
  assert stored.error_details["error"]["type"] == "ConnectionError"


@pytest.mark.anyio
async def test_failed_job_write_on_completion_can_still_be_failed(jobs_repo: InMemoryJobsRepo, proposals_repo: InMemoryProposalsRepo, knowledge_repo: InMemoryKnowledgeRepo) -> None:
  proposal, job = await _queued_job(jobs_repo, proposals_repo)
  processor = _processor(ScriptedProvider([_OUTLINE, _TITLE, _NEXT]), jobs_repo, proposals_repo, knowledge_repo)
  original_update = jobs_repo.update_job

  async def update_job(job_id: str, **changes):  # noqa: ANN003, ANN202
    if changes.get("status") == "done":
      raise ConnectionError("connection reset")
    return await original_update(job_id, **changes)

  with patch.object(jobs_repo, "update_job", new=update_job):
    finished = await processor.process_job(job)

  assert finished is not None
  assert finished.status == "error"
  assert jobs_repo.jobs[job.job_id].status == "error"
  # The proposal row keeps its slides; readers treat it as the source of truth.
  assert proposals_repo.proposals[proposal.id].status == "complete"
