"""Base interfaces for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Literal

from app.ai.providers.errors import LLMProviderError

Role = Literal["user", "assistant"]
StopReason = Literal["end_turn", "max_tokens", "stop_sequence"]

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7

_KNOWN_STOP_REASONS: frozenset[str] = frozenset({"end_turn", "max_tokens", "stop_sequence"})


@dataclass(frozen=True)
class Message:
  role: Role
  content: str


@dataclass(frozen=True)
class CompletionOptions:
  max_tokens: int = DEFAULT_MAX_TOKENS
  temperature: float = DEFAULT_TEMPERATURE
  stop_sequences: tuple[str, ...] | None = None


@dataclass(frozen=True)
class TokenUsage:
  input_tokens: int = 0
  output_tokens: int = 0

  def __add__(self, other: TokenUsage) -> TokenUsage:
    return TokenUsage(input_tokens=self.input_tokens + other.input_tokens, output_tokens=self.output_tokens + other.output_tokens)


@dataclass(frozen=True)
class CompletionResponse:
  content: str
  usage: TokenUsage
  stop_reason: StopReason


@dataclass(frozen=True)
class ProviderMetadata:
  name: str
  model: str
  supports_streaming: bool
  supports_system_prompt: bool
  max_context_tokens: int
  region: str | None = None


@dataclass(frozen=True)
class MessageStart:
  type: Literal["message_start"] = "message_start"


@dataclass(frozen=True)
class ContentDelta:
  content: str
  type: Literal["content_delta"] = "content_delta"


@dataclass(frozen=True)
class MessageStop:
  usage: TokenUsage = field(default_factory=TokenUsage)
  type: Literal["message_stop"] = "message_stop"


@dataclass(frozen=True)
class StreamError:
  """Terminal failure event; `exception` keeps the normalized error for retry decisions."""

  error: str
  exception: LLMProviderError | None = None
  type: Literal["error"] = "error"


StreamEvent = MessageStart | ContentDelta | MessageStop | StreamError


def normalize_stop_reason(raw: str | None) -> StopReason:
  """Collapse backend stop reasons onto the shared set; unknown values become end_turn."""
  if raw in _KNOWN_STOP_REASONS:
    return raw  # type: ignore[return-value]
  return "end_turn"


class LLMProvider(ABC):
  """Abstract base class for LLM providers.

  A provider handle holds no per-call state, so one instance may serve
  concurrent generations. Streams are cooperative: the caller drains one
  stream fully before starting another and cancels by ceasing consumption.
  """

  provider_id: str

  @abstractmethod
  async def generate_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> CompletionResponse:
    """Return one complete response for the conversation."""

  @abstractmethod
  def stream_completion(self, system_prompt: str, messages: Sequence[Message], options: CompletionOptions | None = None) -> AsyncIterator[StreamEvent]:
    """Yield message_start, content deltas, then exactly one terminal event."""

  @abstractmethod
  def is_available(self) -> bool:
    """Return True when credentials are configured; never touches the network."""

  @abstractmethod
  def get_metadata(self) -> ProviderMetadata:
    """Describe the configured backend."""
