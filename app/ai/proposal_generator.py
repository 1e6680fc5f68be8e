"""Multi-step proposal generation: an outline call, then one call per slide."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.ai.backoff import call_with_retries
from app.ai.context_assembly import AssembledContext
from app.ai.json_parser import ModelOutputError, decode_model_json
from app.ai.prompts import render_outline_request, render_slide_request
from app.ai.providers.base import CompletionOptions, CompletionResponse, LLMProvider, Message, TokenUsage
from app.ai.providers.stream import collect_stream
from app.config import Settings
from app.schema.slides import ALLOWED_CONTENT_FIELDS, OutlineEntry, Slide, SlideDraft, content_violations

logger = logging.getLogger(__name__)

# Receives (stage, slide_index, total_slides) before each step starts.
StageCallback = Callable[[str, int | None, int | None], Awaitable[None]]


class SlideParseError(Exception):
  """A model response for one generation step was not usable."""

  def __init__(self, stage: str, detail: str) -> None:
    super().__init__(f"Failed to parse {stage}: {detail}")
    self.stage = stage
    self.detail = detail


@dataclass(frozen=True)
class GenerationResult:
  slides: list[Slide]
  usage: TokenUsage
  provider_id: str
  model: str


class ProposalGenerator:
  """Drive outline and per-slide completions against one provider handle."""

  def __init__(self, provider: LLMProvider, *, settings: Settings, sleep: Callable[[float], Awaitable[object]] = asyncio.sleep) -> None:
    self._provider = provider
    self._settings = settings
    self._sleep = sleep
    self._options = CompletionOptions(max_tokens=settings.generation_max_tokens, temperature=settings.generation_temperature)

  async def generate(self, *, prompt: str, context: AssembledContext, on_stage: StageCallback | None = None) -> GenerationResult:
    async def report(stage: str, slide_index: int | None = None, total_slides: int | None = None) -> None:
      if on_stage is not None:
        await on_stage(stage, slide_index, total_slides)

    await report("outline")
    response = await self._complete(context.system_prompt, render_outline_request(prompt, max_slides=self._settings.max_slides), label="outline")
    usage = response.usage
    outline = self._parse_outline(response.content)
    listing = [(entry.title, entry.type) for entry in outline]
    total = len(outline)
    logger.info("Outline ready provider=%s slides=%s", self._provider.provider_id, total)

    slides: list[Slide] = []
    for index, entry in enumerate(outline, start=1):
      await report("generating", index, total)
      stage = f"slide {index} of {total}"
      user_message = render_slide_request(prompt, outline=listing, index=index, allowed_fields=ALLOWED_CONTENT_FIELDS[entry.type])
      response = await self._complete(context.system_prompt, user_message, label=stage)
      usage = usage + response.usage
      draft = self._parse_slide(response.content, slide_type=entry.type, stage=stage)
      slides.append(Slide(slide_number=index, type=entry.type, title=draft.title, content=draft.content))

    metadata = self._provider.get_metadata()
    return GenerationResult(slides=slides, usage=usage, provider_id=self._provider.provider_id, model=metadata.model)

  async def _complete(self, system_prompt: str, user_message: str, *, label: str) -> CompletionResponse:
    messages = (Message(role="user", content=user_message),)

    async def attempt() -> CompletionResponse:
      return await collect_stream(self._provider.stream_completion(system_prompt, messages, self._options))

    return await call_with_retries(attempt, max_retries=self._settings.provider_max_retries, base_delay=self._settings.provider_backoff_seconds, label=label, sleep=self._sleep)

  def _parse_outline(self, text: str) -> list[OutlineEntry]:
    try:
      outline = decode_model_json(text, list[OutlineEntry])
    except ModelOutputError as exc:
      raise SlideParseError("outline", str(exc)) from exc
    if not outline:
      raise SlideParseError("outline", "outline contained no slides")
    if len(outline) > self._settings.max_slides:
      raise SlideParseError("outline", f"outline has {len(outline)} slides, limit is {self._settings.max_slides}")
    return outline

  def _parse_slide(self, text: str, *, slide_type: str, stage: str) -> SlideDraft:
    try:
      draft = decode_model_json(text, SlideDraft)
    except ModelOutputError as exc:
      raise SlideParseError(stage, str(exc)) from exc
    problems = content_violations(slide_type, draft.content)
    if problems:
      raise SlideParseError(stage, "; ".join(problems))
    return draft
