"""Normalized error taxonomy shared by every LLM provider."""

from __future__ import annotations

from collections.abc import Iterable

_RATE_LIMIT_HINTS: tuple[str, ...] = ("throttl", "rate limit", "too many requests")
_AUTH_HINTS: tuple[str, ...] = ("access denied", "unauthorized", "forbidden", "credentials", "invalid api key", "security token")
_CONTEXT_HINTS: tuple[str, ...] = ("prompt is too long", "context length", "context window", "input is too long", "too many input tokens")


class LLMProviderError(Exception):
  """Base error raised by providers after mapping a backend failure."""

  def __init__(self, message: str, provider: str, code: str, retryable: bool = False) -> None:
    super().__init__(message)
    self.message = message
    self.provider = provider
    self.code = code
    self.retryable = retryable


class RateLimitError(LLMProviderError):
  """Backend signaled throttling; always retryable."""

  def __init__(self, provider: str, retry_after_ms: int | None = None) -> None:
    super().__init__("Rate limit exceeded", provider, "RATE_LIMIT", True)
    self.retry_after_ms = retry_after_ms


class AuthenticationError(LLMProviderError):
  """Credentials were rejected or are missing."""

  def __init__(self, provider: str) -> None:
    super().__init__("Authentication failed", provider, "AUTH_ERROR", False)


class ContextLengthError(LLMProviderError):
  """Prompt does not fit in the model context window."""

  def __init__(self, provider: str, max_tokens: int) -> None:
    super().__init__(f"Context length exceeded. Maximum: {max_tokens} tokens", provider, "CONTEXT_LENGTH", False)
    self.max_tokens = max_tokens


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def is_rate_limit_message(message: str) -> bool:
  return _match_hint(message.lower(), _RATE_LIMIT_HINTS)


def is_auth_message(message: str) -> bool:
  return _match_hint(message.lower(), _AUTH_HINTS)


def is_context_length_message(message: str) -> bool:
  return _match_hint(message.lower(), _CONTEXT_HINTS)


def classify_message(message: str, *, provider: str, max_context_tokens: int) -> LLMProviderError | None:
  """Map a free-text backend failure onto the taxonomy, or None when nothing matches."""
  # Message hints apply even when the backend supplied no structured status.
  if is_rate_limit_message(message):
    return RateLimitError(provider)
  if is_auth_message(message):
    return AuthenticationError(provider)
  if is_context_length_message(message):
    return ContextLengthError(provider, max_context_tokens)
  return None
