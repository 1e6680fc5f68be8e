"""Outline-then-slides generation against a scripted provider."""

from __future__ import annotations

import json

import pytest

from app.ai.context_assembly import AssembledContext
from app.ai.proposal_generator import ProposalGenerator, SlideParseError
from app.ai.providers.errors import AuthenticationError, LLMProviderError, RateLimitError
from tests.fakes import RecordingSleep, ScriptedProvider, make_settings

_PROMPT = "Create a proposal for Acme Corp, 50 users, annual billing"
_CONTEXT = AssembledContext(context_text="=== OPPORTUNITY ===\nNAME: Acme", system_prompt="You are an expert sales proposal writer.", token_estimate=12)

_OUTLINE = json.dumps([{"title": "Proposal for Acme", "type": "title"}, {"title": "Investment", "type": "investment"}])
_TITLE_SLIDE = json.dumps({"title": "Proposal for Acme", "content": {"heading": "Proposal for Acme", "subheading": "Prepared for [PROSPECT NAME]"}})
_INVESTMENT_SLIDE = "```json\n" + json.dumps({"title": "Investment", "content": {"table": {"headers": ["Item", "Price"], "rows": [["Seats", "[ENTER VALUE]"]]}}}) + "\n```"


class _StageLog:
  def __init__(self) -> None:
    self.calls: list[tuple[str, int | None, int | None]] = []

  async def __call__(self, stage: str, slide_index: int | None, total_slides: int | None) -> None:
    self.calls.append((stage, slide_index, total_slides))


@pytest.mark.anyio
async def test_generates_numbered_slides_and_reports_stages() -> None:
  provider = ScriptedProvider([_OUTLINE, _TITLE_SLIDE, _INVESTMENT_SLIDE])
  stages = _StageLog()

  result = await ProposalGenerator(provider, settings=make_settings()).generate(prompt=_PROMPT, context=_CONTEXT, on_stage=stages)

  assert [slide.slide_number for slide in result.slides] == [1, 2]
  assert [slide.type for slide in result.slides] == ["title", "investment"]
  assert result.slides[1].content.table is not None
  assert stages.calls == [("outline", None, None), ("generating", 1, 2), ("generating", 2, 2)]
  assert result.usage.input_tokens == 30
  assert result.usage.output_tokens == 15
  assert result.provider_id == "anthropic-direct"
  assert result.model == "claude-test"

  # Every step shares the assembled system prompt; slide steps see the whole outline.
  assert {system for system, _ in provider.calls} == {_CONTEXT.system_prompt}
  second_slide_request = provider.calls[2][1][0].content
  assert "Write slide 2 of 2" in second_slide_request
  assert "1. Proposal for Acme (title)" in second_slide_request


@pytest.mark.anyio
async def test_invalid_slide_json_names_the_failing_step() -> None:
  provider = ScriptedProvider([_OUTLINE, _TITLE_SLIDE, "Here is the investment slide you asked for"])
  with pytest.raises(SlideParseError) as excinfo:
    await ProposalGenerator(provider, settings=make_settings()).generate(prompt=_PROMPT, context=_CONTEXT)
  assert excinfo.value.stage == "slide 2 of 2"
  assert str(excinfo.value).startswith("Failed to parse slide 2 of 2")


@pytest.mark.anyio
async def test_disallowed_content_field_fails_the_slide() -> None:
  bad_title = json.dumps({"title": "Proposal for Acme", "content": {"heading": "Acme", "table": {"headers": ["A"], "rows": [["1"]]}}})
  provider = ScriptedProvider([_OUTLINE, bad_title])
  with pytest.raises(SlideParseError, match="not allowed on title slides"):
    await ProposalGenerator(provider, settings=make_settings()).generate(prompt=_PROMPT, context=_CONTEXT)


@pytest.mark.anyio
async def test_outline_longer_than_limit_is_rejected() -> None:
  outline = json.dumps([{"title": f"Slide {index}", "type": "custom"} for index in range(4)])
  with pytest.raises(SlideParseError) as excinfo:
    await ProposalGenerator(ScriptedProvider([outline]), settings=make_settings(max_slides=3)).generate(prompt=_PROMPT, context=_CONTEXT)
  assert excinfo.value.stage == "outline"


@pytest.mark.anyio
async def test_rate_limit_is_retried_with_retry_after_delay() -> None:
  sleep = RecordingSleep()
  provider = ScriptedProvider([RateLimitError("anthropic-direct", retry_after_ms=1500), _OUTLINE, _TITLE_SLIDE, _INVESTMENT_SLIDE])

  result = await ProposalGenerator(provider, settings=make_settings(), sleep=sleep).generate(prompt=_PROMPT, context=_CONTEXT)

  assert len(result.slides) == 2
  assert sleep.delays == [1.5]
  assert len(provider.calls) == 4


@pytest.mark.anyio
async def test_transient_failures_back_off_exponentially_then_give_up() -> None:
  sleep = RecordingSleep()
  failures = [LLMProviderError("overloaded", "anthropic-direct", "HTTP_529", True) for _ in range(3)]
  provider = ScriptedProvider(failures)

  with pytest.raises(LLMProviderError) as excinfo:
    await ProposalGenerator(provider, settings=make_settings(provider_max_retries=2, provider_backoff_seconds=0.5), sleep=sleep).generate(prompt=_PROMPT, context=_CONTEXT)

  assert excinfo.value.code == "HTTP_529"
  assert sleep.delays == [0.5, 1.0]


@pytest.mark.anyio
async def test_authentication_errors_are_not_retried() -> None:
  sleep = RecordingSleep()
  provider = ScriptedProvider([AuthenticationError("aws-bedrock"), _OUTLINE])

  with pytest.raises(AuthenticationError):
    await ProposalGenerator(provider, settings=make_settings(), sleep=sleep).generate(prompt=_PROMPT, context=_CONTEXT)

  assert sleep.delays == []
  assert len(provider.calls) == 1
