"""Stream guard that turns raw SDK chunks into the provider event contract."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass

from app.ai.providers.base import CompletionResponse, ContentDelta, MessageStart, MessageStop, StreamError, StreamEvent, TokenUsage
from app.ai.providers.errors import LLMProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageUpdate:
  """Usage figures reported mid-stream; None leaves the running value unchanged."""

  input_tokens: int | None = None
  output_tokens: int | None = None


RawChunk = ContentDelta | UsageUpdate


async def guarded_stream(source: AsyncIterator[RawChunk], *, map_error: Callable[[Exception], LLMProviderError]) -> AsyncIterator[StreamEvent]:
  """Emit message_start, forwarded deltas and exactly one terminal event.

  The generator returns right after the terminal event, so nothing can be
  produced once a stream has stopped or failed.
  """
  yield MessageStart()
  input_tokens = 0
  output_tokens = 0
  async with aclosing(source) as chunks:
    iterator = chunks.__aiter__()
    while True:
      try:
        chunk = await iterator.__anext__()
      except StopAsyncIteration:
        break
      except Exception as exc:  # noqa: BLE001
        error = map_error(exc)
        logger.warning("Provider stream failed provider=%s code=%s retryable=%s", error.provider, error.code, error.retryable)
        yield StreamError(error=str(error), exception=error)
        return
      if isinstance(chunk, UsageUpdate):
        if chunk.input_tokens is not None:
          input_tokens = chunk.input_tokens
        if chunk.output_tokens is not None:
          output_tokens = chunk.output_tokens
        continue
      if chunk.content:
        yield chunk
  yield MessageStop(usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens))


async def collect_stream(events: AsyncIterator[StreamEvent], *, on_delta: Callable[[str], None] | None = None) -> CompletionResponse:
  """Drain a provider stream into one response, raising the error carried by a failure event."""
  parts: list[str] = []
  usage = TokenUsage()
  async with aclosing(events) as stream:
    async for event in stream:
      if isinstance(event, ContentDelta):
        parts.append(event.content)
        if on_delta is not None:
          on_delta(event.content)
      elif isinstance(event, MessageStop):
        usage = event.usage
        break
      elif isinstance(event, StreamError):
        if event.exception is not None:
          raise event.exception
        raise LLMProviderError(event.error, "unknown", "STREAM_ERROR", False)
  return CompletionResponse(content="".join(parts), usage=usage, stop_reason="end_turn")
