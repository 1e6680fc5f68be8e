"""Server-sent progress events for a single proposal."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from app.jobs.models import TERMINAL_STAGES
from app.jobs.progress import stage_rank
from app.jobs.queue import get_proposal_job_status
from app.storage.jobs_repo import JobsRepository
from app.storage.proposals_repo import ProposalRecord, ProposalsRepository

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
TIMEOUT_MESSAGE = "Generation timeout"
POLL_FAILED_MESSAGE = "Could not read generation progress"
NOT_FOUND_MESSAGE = "Proposal not found"
DEFAULT_ERROR_MESSAGE = "Generation failed"


def format_event(event: dict[str, Any]) -> str:
  return f"data: {json.dumps(event)}\n\n"


def _terminal_event(proposal: ProposalRecord) -> dict[str, Any] | None:
  if proposal.status == "complete":
    return {"type": "complete", "proposalId": proposal.id}
  if proposal.status == "error":
    return {"type": "error", "message": proposal.error_message or DEFAULT_ERROR_MESSAGE}
  return None


async def stream_proposal_progress(
  proposal_id: str,
  *,
  organization_id: str,
  proposals_repo: ProposalsRepository,
  jobs_repo: JobsRepository,
  poll_seconds: float,
  timeout_seconds: float,
  sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> AsyncIterator[str]:
  """
  Yield SSE frames until the proposal reaches a terminal state.

  A progress frame is emitted only when the (stage, slide) pair changes and
  never for a stage that ranks below the last one sent. Exactly one terminal
  frame closes the stream; a poll failure or the wall-clock cap produce an
  error frame without touching the proposal row.
  """
  try:
    proposal = await proposals_repo.get_proposal(proposal_id, org_id=organization_id)
  except Exception:  # noqa: BLE001
    logger.warning("Progress stream failed to load proposal_id=%s", proposal_id, exc_info=True)
    yield format_event({"type": "error", "message": POLL_FAILED_MESSAGE})
    return
  if proposal is None:
    yield format_event({"type": "error", "message": NOT_FOUND_MESSAGE})
    return
  terminal = _terminal_event(proposal)
  if terminal is not None:
    yield format_event(terminal)
    return

  last_key: tuple[str, int | None] | None = None
  last_rank = -1
  polls = max(1, math.ceil(timeout_seconds / poll_seconds))
  for _ in range(polls):
    try:
      progress = await get_proposal_job_status(proposal_id, jobs_repo=jobs_repo)
      if progress is None or progress.stage in TERMINAL_STAGES:
        proposal = await proposals_repo.get_proposal(proposal_id, org_id=organization_id)
    except Exception:  # noqa: BLE001
      logger.warning("Progress poll failed proposal_id=%s", proposal_id, exc_info=True)
      yield format_event({"type": "error", "message": POLL_FAILED_MESSAGE})
      return

    if proposal is None:
      yield format_event({"type": "error", "message": NOT_FOUND_MESSAGE})
      return
    terminal = _terminal_event(proposal)
    if terminal is not None:
      yield format_event(terminal)
      return

    if progress is not None and progress.stage not in TERMINAL_STAGES:
      key = (progress.stage, progress.slide_index)
      rank = stage_rank(progress.stage, progress.slide_index)
      if key != last_key and rank >= last_rank:
        last_key, last_rank = key, rank
        yield format_event({"type": "progress", "stage": progress.stage, "slideIndex": progress.slide_index, "totalSlides": progress.total_slides})

    await sleep(poll_seconds)

  logger.info("Progress stream timed out proposal_id=%s after %ss", proposal_id, timeout_seconds)
  yield format_event({"type": "error", "message": TIMEOUT_MESSAGE})
