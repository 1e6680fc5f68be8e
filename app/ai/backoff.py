"""Retry logic for transient provider failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.ai.providers.errors import LLMProviderError, RateLimitError

T = TypeVar("T")
logger = logging.getLogger(__name__)

MAX_DELAY_SECONDS = 60.0


def retry_delay(error: LLMProviderError, attempt: int, *, base_delay: float) -> float:
  """
  Return the wait before retry `attempt` (0-based).

  A rate-limit retry-after hint wins over the exponential schedule.
  """
  if isinstance(error, RateLimitError) and error.retry_after_ms is not None:
    return max(error.retry_after_ms / 1000.0, 0.0)
  return min(base_delay * (2**attempt), MAX_DELAY_SECONDS)


async def call_with_retries(
  func: Callable[[], Awaitable[T]],
  *,
  max_retries: int,
  base_delay: float,
  label: str = "provider call",
  sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
  """Run `func`, retrying retryable provider errors up to `max_retries` extra times."""
  attempt = 0
  while True:
    try:
      return await func()
    except LLMProviderError as exc:
      if not exc.retryable or attempt >= max_retries:
        raise
      delay = retry_delay(exc, attempt, base_delay=base_delay)
      attempt += 1
      logger.warning("Retry %s/%s for %s after %s (%s). Retrying in %.2fs...", attempt, max_retries, label, exc.code, exc.provider, delay)
      await sleep(delay)
