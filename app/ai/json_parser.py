"""Strict decoding of model responses into typed structures."""

from __future__ import annotations

import re
from typing import TypeVar

import msgspec

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class ModelOutputError(ValueError):
  """Model output was not valid JSON of the expected shape."""


def strip_code_fences(text: str) -> str:
  """Remove one surrounding ``` fence (optionally language-tagged) from a response."""
  stripped = text.strip()
  match = _FENCE_RE.match(stripped)
  if match:
    return match.group(1).strip()
  return stripped


def decode_model_json(text: str, type: type[T]) -> T:  # noqa: A002
  """Decode a model response as strict JSON of `type`; no lenient repair is attempted."""
  cleaned = strip_code_fences(text)
  if not cleaned:
    raise ModelOutputError("response was empty")
  try:
    return msgspec.json.decode(cleaned, type=type)
  except msgspec.ValidationError as exc:
    raise ModelOutputError(f"response did not match the expected shape: {exc}") from exc
  except msgspec.DecodeError as exc:
    raise ModelOutputError(f"response was not valid JSON: {exc}") from exc
