"""Provider implementations."""

from app.ai.providers.base import CompletionOptions, CompletionResponse, ContentDelta, LLMProvider, Message, MessageStart, MessageStop, ProviderMetadata, StreamError, StreamEvent, TokenUsage
from app.ai.providers.errors import AuthenticationError, ContextLengthError, LLMProviderError, RateLimitError
from app.ai.providers.factory import ProviderId, create_provider, is_provider_available

__all__ = [
  "AuthenticationError",
  "CompletionOptions",
  "CompletionResponse",
  "ContentDelta",
  "ContextLengthError",
  "LLMProvider",
  "LLMProviderError",
  "Message",
  "MessageStart",
  "MessageStop",
  "ProviderId",
  "ProviderMetadata",
  "RateLimitError",
  "StreamError",
  "StreamEvent",
  "TokenUsage",
  "create_provider",
  "is_provider_available",
]
