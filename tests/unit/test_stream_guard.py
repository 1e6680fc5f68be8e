from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from app.ai.providers.base import ContentDelta, MessageStart, MessageStop, StreamError, TokenUsage
from app.ai.providers.errors import LLMProviderError, RateLimitError
from app.ai.providers.stream import RawChunk, UsageUpdate, collect_stream, guarded_stream


def _map(exc: Exception) -> LLMProviderError:
  if isinstance(exc, LLMProviderError):
    return exc
  return LLMProviderError(str(exc), "test", "UNKNOWN", False)


async def _source(*chunks: RawChunk, fail_with: Exception | None = None) -> AsyncIterator[RawChunk]:
  for chunk in chunks:
    yield chunk
  if fail_with is not None:
    raise fail_with


async def _drain(stream: AsyncIterator) -> list:
  return [event async for event in stream]


@pytest.mark.anyio
async def test_stream_emits_start_deltas_and_one_stop_with_usage() -> None:
  events = await _drain(guarded_stream(_source(UsageUpdate(input_tokens=12), ContentDelta(content="Hel"), ContentDelta(content=""), ContentDelta(content="lo"), UsageUpdate(output_tokens=3)), map_error=_map))

  assert isinstance(events[0], MessageStart)
  assert [event.content for event in events if isinstance(event, ContentDelta)] == ["Hel", "lo"]
  assert events[-1] == MessageStop(usage=TokenUsage(input_tokens=12, output_tokens=3))
  assert sum(isinstance(event, MessageStop | StreamError) for event in events) == 1


@pytest.mark.anyio
async def test_stream_failure_ends_with_single_error_event() -> None:
  failure = RateLimitError("test", retry_after_ms=500)
  events = await _drain(guarded_stream(_source(ContentDelta(content="partial"), fail_with=failure), map_error=_map))

  assert isinstance(events[0], MessageStart)
  assert isinstance(events[-1], StreamError)
  assert events[-1].exception is failure
  assert not any(isinstance(event, MessageStop) for event in events)


@pytest.mark.anyio
async def test_collect_stream_joins_content_and_raises_carried_error() -> None:
  response = await collect_stream(guarded_stream(_source(ContentDelta(content='{"a"'), ContentDelta(content=": 1}"), UsageUpdate(output_tokens=4)), map_error=_map))
  assert response.content == '{"a": 1}'
  assert response.usage.output_tokens == 4

  with pytest.raises(LLMProviderError) as excinfo:
    await collect_stream(guarded_stream(_source(fail_with=RuntimeError("socket closed")), map_error=_map))
  assert excinfo.value.code == "UNKNOWN"
