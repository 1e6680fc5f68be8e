"""Closed set of provider variants resolved by identifier."""

from __future__ import annotations

import os
from enum import Enum

from app.ai.providers.anthropic_direct import AnthropicDirectProvider
from app.ai.providers.base import LLMProvider
from app.ai.providers.bedrock import BedrockProvider, has_aws_credentials
from app.config import Settings


class ProviderId(str, Enum):
  ANTHROPIC_DIRECT = "anthropic-direct"
  AWS_BEDROCK = "aws-bedrock"
  GOOGLE_VERTEX = "google-vertex"


DEFAULT_PROVIDER_ID = ProviderId.ANTHROPIC_DIRECT
PREMIUM_PROVIDER_ID = ProviderId.AWS_BEDROCK


def parse_provider_id(raw: object) -> ProviderId | None:
  """Return the matching ProviderId, or None for absent and unknown values."""
  if not isinstance(raw, str):
    return None
  try:
    return ProviderId(raw.strip().lower())
  except ValueError:
    return None


def create_provider(provider_id: ProviderId | str, *, api_key: str | None = None, model: str | None = None, region: str | None = None, settings: Settings | None = None) -> LLMProvider:
  """Build a provider handle; explicit arguments win over settings defaults."""
  resolved = ProviderId(provider_id)
  if resolved is ProviderId.ANTHROPIC_DIRECT:
    return AnthropicDirectProvider(api_key=api_key or (settings.anthropic_api_key if settings else None), model=model or (settings.anthropic_model if settings else None))
  if resolved is ProviderId.AWS_BEDROCK:
    return BedrockProvider(region=region or (settings.aws_region if settings else None), model=model or (settings.bedrock_model if settings else None))
  raise NotImplementedError(f"Provider {resolved.value} is not implemented.")


def is_provider_available(provider_id: ProviderId | str) -> bool:
  """Check process credentials for a provider without building SDK clients."""
  resolved = parse_provider_id(provider_id if isinstance(provider_id, str) else provider_id.value)
  if resolved is ProviderId.ANTHROPIC_DIRECT:
    return bool(os.getenv("ANTHROPIC_API_KEY"))
  if resolved is ProviderId.AWS_BEDROCK:
    return has_aws_credentials() and bool(os.getenv("AWS_REGION"))
  return False
