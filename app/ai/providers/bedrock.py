"""AWS Bedrock runtime provider (premium backend for higher plan tiers)."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Sequence
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ParamValidationError

from app.ai.providers.base import CompletionOptions, CompletionResponse, ContentDelta, LLMProvider, Message, ProviderMetadata, StreamEvent, TokenUsage, normalize_stop_reason
from app.ai.providers.errors import AuthenticationError, LLMProviderError, RateLimitError, classify_message
from app.ai.providers.stream import RawChunk, UsageUpdate, guarded_stream

logger = logging.getLogger(__name__)

PROVIDER_ID = "aws-bedrock"
DEFAULT_MODEL = "anthropic.claude-3-5-sonnet-20241022-v2:0"
DEFAULT_REGION = "us-west-2"
MAX_CONTEXT_TOKENS = 200_000
ANTHROPIC_VERSION = "bedrock-2023-05-31"

_THROTTLE_CODES = frozenset({"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"})
_AUTH_CODES = frozenset({"AccessDeniedException", "UnrecognizedClientException", "ExpiredTokenException", "InvalidSignatureException"})
_SERVICE_CODES = frozenset({"InternalServerException", "ServiceUnavailableException", "ModelNotReadyException", "ModelTimeoutException"})

_STREAM_END = object()


def map_bedrock_error(exc: Exception) -> LLMProviderError:
  """Map a botocore failure onto the shared error taxonomy.

  Structured error codes win; message hints cover errors raised without one.
  """
  if isinstance(exc, LLMProviderError):
    return exc
  if isinstance(exc, NoCredentialsError):
    return AuthenticationError(PROVIDER_ID)

  message = str(exc) or type(exc).__name__
  if isinstance(exc, ClientError):
    code = exc.response.get("Error", {}).get("Code", "")
    if code in _THROTTLE_CODES:
      return RateLimitError(PROVIDER_ID)
    if code in _AUTH_CODES:
      return AuthenticationError(PROVIDER_ID)
    if code == "ResourceNotFoundException":
      return LLMProviderError(message, PROVIDER_ID, "MODEL_NOT_FOUND", False)
    if code in _SERVICE_CODES:
      return LLMProviderError(message, PROVIDER_ID, "SERVICE_ERROR", True)

  classified = classify_message(message, provider=PROVIDER_ID, max_context_tokens=MAX_CONTEXT_TOKENS)
  if classified is not None:
    return classified

  lowered = message.lower()
  if "model" in lowered and "not found" in lowered:
    return LLMProviderError(message, PROVIDER_ID, "MODEL_NOT_FOUND", False)
  if isinstance(exc, ParamValidationError) or "validation" in lowered:
    return LLMProviderError(message, PROVIDER_ID, "VALIDATION_ERROR", False)
  if "service" in lowered or "internal" in lowered or "unavailable" in lowered:
    return LLMProviderError(message, PROVIDER_ID, "SERVICE_ERROR", True)
  return LLMProviderError(message, PROVIDER_ID, "UNKNOWN", False)


def has_aws_credentials() -> bool:
  """Explicit key pair, or an AWS execution environment with a role attached."""
  explicit = bool(os.getenv("AWS_ACCESS_KEY_ID") and os.getenv("AWS_SECRET_ACCESS_KEY"))
  return explicit or bool(os.getenv("AWS_EXECUTION_ENV"))


class BedrockProvider(LLMProvider):
  """Invokes Anthropic models hosted on Bedrock via boto3's bedrock-runtime client."""

  provider_id = PROVIDER_ID

  def __init__(self, region: str | None = None, model: str | None = None, *, client: Any | None = None) -> None:
    self._region = region or os.getenv("AWS_REGION") or DEFAULT_REGION
    self._model = model or DEFAULT_MODEL
    self._client = client

  @property
  def model(self) -> str:
    return self._model

  @property
  def region(self) -> str:
    return self._region

  def _get_client(self) -> Any:
    if self._client is None:
      self._client = boto3.client("bedrock-runtime", region_name=self._region)
    return self._client

  def _request_body(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions) -> str:
    body: dict[str, Any] = {
      "anthropic_version": ANTHROPIC_VERSION,
      "max_tokens": options.max_tokens,
      "temperature": options.temperature,
      "system": system_prompt,
      "messages": [{"role": message.role, "content": message.content} for message in messages],
    }
    if options.stop_sequences:
      body["stop_sequences"] = list(options.stop_sequences)
    return json.dumps(body)

  async def generate_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> CompletionResponse:
    options = options or CompletionOptions()
    body = self._request_body(system_prompt, messages, options)
    try:
      # boto3 is blocking; keep it off the event loop.
      response = await asyncio.to_thread(self._get_client().invoke_model, modelId=self._model, body=body, contentType="application/json", accept="application/json")
      payload = json.loads(response["body"].read())
    except (ClientError, BotoCoreError) as exc:
      raise map_bedrock_error(exc) from exc

    content = next((block.get("text", "") for block in payload.get("content", []) if block.get("type") == "text"), "")
    usage_payload = payload.get("usage") or {}
    usage = TokenUsage(input_tokens=int(usage_payload.get("input_tokens") or 0), output_tokens=int(usage_payload.get("output_tokens") or 0))
    return CompletionResponse(content=content, usage=usage, stop_reason=normalize_stop_reason(payload.get("stop_reason")))

  async def _raw_chunks(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[RawChunk]:
    body = self._request_body(system_prompt, messages, options)
    response = await asyncio.to_thread(self._get_client().invoke_model_with_response_stream, modelId=self._model, body=body, contentType="application/json", accept="application/json")
    events = iter(response["body"])
    while True:
      # Each blocking read of the event stream runs in a worker thread.
      event = await asyncio.to_thread(next, events, _STREAM_END)
      if event is _STREAM_END:
        break
      chunk_bytes = (event.get("chunk") or {}).get("bytes")
      if not chunk_bytes:
        continue
      chunk = json.loads(chunk_bytes)
      chunk_type = chunk.get("type")
      if chunk_type == "content_block_delta":
        delta = chunk.get("delta") or {}
        if delta.get("type") == "text_delta" and delta.get("text"):
          yield ContentDelta(content=delta["text"])
      elif chunk_type == "message_start":
        usage = (chunk.get("message") or {}).get("usage") or {}
        yield UsageUpdate(input_tokens=int(usage.get("input_tokens") or 0))
      elif chunk_type == "message_delta":
        usage = chunk.get("usage") or {}
        if usage.get("output_tokens") is not None:
          yield UsageUpdate(output_tokens=int(usage["output_tokens"]))

  def stream_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> AsyncIterator[StreamEvent]:
    return guarded_stream(self._raw_chunks(system_prompt, messages, options or CompletionOptions()), map_error=map_bedrock_error)

  def is_available(self) -> bool:
    return bool(self._region) and has_aws_credentials()

  def get_metadata(self) -> ProviderMetadata:
    return ProviderMetadata(name="AWS Bedrock", model=self._model, supports_streaming=True, supports_system_prompt=True, max_context_tokens=MAX_CONTEXT_TOKENS, region=self._region)
