"""Domain models for asynchronous proposal generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

JobStatus = Literal["queued", "running", "done", "error"]
JobStage = Literal["queued", "outline", "generating", "complete", "error"]

ACTIVE_JOB_STATUSES: frozenset[str] = frozenset({"queued", "running"})
TERMINAL_STAGES: frozenset[str] = frozenset({"complete", "error"})


@dataclass
class ProposalJobRecord:
  """Represents one background generation attempt for a proposal."""

  job_id: str
  proposal_id: str
  org_id: str
  opportunity_id: str
  request: dict[str, Any]
  status: JobStatus
  stage: JobStage
  created_at: str
  updated_at: str
  slide_index: int | None = None
  total_slides: int | None = None
  message: str | None = None
  error_json: dict[str, Any] | None = None
  started_at: str | None = None
  completed_at: str | None = None


@dataclass(frozen=True)
class ProposalJobProgress:
  """Read model returned to progress readers."""

  stage: JobStage
  slide_index: int | None = None
  total_slides: int | None = None
  message: str | None = None

  @classmethod
  def from_record(cls, record: ProposalJobRecord) -> ProposalJobProgress:
    return cls(stage=record.stage, slide_index=record.slide_index, total_slides=record.total_slides, message=record.message)

  def to_payload(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"stage": self.stage}
    if self.slide_index is not None:
      payload["slideIndex"] = self.slide_index
    if self.total_slides is not None:
      payload["totalSlides"] = self.total_slides
    if self.message is not None:
      payload["message"] = self.message
    return payload
