"""Anthropic Messages API provider (default backend for every plan tier)."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Sequence
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from app.ai.providers.base import CompletionOptions, CompletionResponse, ContentDelta, LLMProvider, Message, ProviderMetadata, StreamEvent, TokenUsage, normalize_stop_reason
from app.ai.providers.errors import AuthenticationError, LLMProviderError, RateLimitError, classify_message
from app.ai.providers.stream import RawChunk, UsageUpdate, guarded_stream

logger = logging.getLogger(__name__)

PROVIDER_ID = "anthropic-direct"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
MAX_CONTEXT_TOKENS = 200_000


def _retry_after_ms(headers: Any) -> int | None:
  """Convert a retry-after header in seconds to milliseconds."""
  if headers is None:
    return None
  raw = headers.get("retry-after")
  if raw is None:
    return None
  try:
    return int(float(raw) * 1000)
  except (TypeError, ValueError):
    return None


def map_anthropic_error(exc: Exception) -> LLMProviderError:
  """Map an Anthropic SDK failure onto the shared error taxonomy."""
  if isinstance(exc, LLMProviderError):
    return exc
  if isinstance(exc, anthropic.APIStatusError):
    status_code = exc.status_code
    if status_code == 429:
      response = getattr(exc, "response", None)
      return RateLimitError(PROVIDER_ID, _retry_after_ms(getattr(response, "headers", None)))
    if status_code in (401, 403):
      return AuthenticationError(PROVIDER_ID)
    # Throttling, credential and context-window phrases win over the bare status.
    classified = classify_message(str(exc), provider=PROVIDER_ID, max_context_tokens=MAX_CONTEXT_TOKENS)
    if classified is not None:
      return classified
    return LLMProviderError(str(exc), PROVIDER_ID, f"HTTP_{status_code}", status_code >= 500)
  if isinstance(exc, anthropic.APIConnectionError):
    # Covers APITimeoutError as well.
    return LLMProviderError(str(exc) or "Connection error", PROVIDER_ID, "CONNECTION_ERROR", True)
  message = str(exc) or type(exc).__name__
  return classify_message(message, provider=PROVIDER_ID, max_context_tokens=MAX_CONTEXT_TOKENS) or LLMProviderError(message, PROVIDER_ID, "UNKNOWN", False)


class AnthropicDirectProvider(LLMProvider):
  """Calls the Anthropic Messages API through the official async SDK."""

  provider_id = PROVIDER_ID

  def __init__(self, api_key: str | None = None, model: str | None = None, *, client: AsyncAnthropic | None = None) -> None:
    self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
    self._model = model or DEFAULT_MODEL
    self._client = client

  @property
  def model(self) -> str:
    return self._model

  def _get_client(self) -> AsyncAnthropic:
    # Built on first use so a missing key never fails construction.
    if self._client is None:
      if not self._api_key:
        raise AuthenticationError(PROVIDER_ID)
      self._client = AsyncAnthropic(api_key=self._api_key)
    return self._client

  def _request_kwargs(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
      "model": self._model,
      "max_tokens": options.max_tokens,
      "temperature": options.temperature,
      "system": system_prompt,
      "messages": [{"role": message.role, "content": message.content} for message in messages],
    }
    if options.stop_sequences:
      kwargs["stop_sequences"] = list(options.stop_sequences)
    return kwargs

  async def generate_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> CompletionResponse:
    options = options or CompletionOptions()
    try:
      response = await self._get_client().messages.create(**self._request_kwargs(system_prompt, messages, options))
    except Exception as exc:
      raise map_anthropic_error(exc) from exc

    content = next((block.text for block in response.content if getattr(block, "type", None) == "text"), "")
    usage = TokenUsage(input_tokens=response.usage.input_tokens, output_tokens=response.usage.output_tokens)
    return CompletionResponse(content=content, usage=usage, stop_reason=normalize_stop_reason(response.stop_reason))

  async def _raw_chunks(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[RawChunk]:
    async with self._get_client().messages.stream(**self._request_kwargs(system_prompt, messages, options)) as stream:
      async for event in stream:
        if event.type == "message_start":
          yield UsageUpdate(input_tokens=event.message.usage.input_tokens)
        elif event.type == "content_block_delta" and getattr(event.delta, "type", None) == "text_delta":
          yield ContentDelta(content=event.delta.text)
        elif event.type == "message_delta":
          yield UsageUpdate(output_tokens=event.usage.output_tokens)

  def stream_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> AsyncIterator[StreamEvent]:
    return guarded_stream(self._raw_chunks(system_prompt, messages, options or CompletionOptions()), map_error=map_anthropic_error)

  def is_available(self) -> bool:
    return bool(self._api_key)

  def get_metadata(self) -> ProviderMetadata:
    return ProviderMetadata(name="Anthropic Direct", model=self._model, supports_streaming=True, supports_system_prompt=True, max_context_tokens=MAX_CONTEXT_TOKENS)
