"""Identifier and timestamp utilities."""

from __future__ import annotations

import time
import uuid

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def utc_timestamp(epoch_seconds: float | None = None) -> str:
  """Return an ISO-8601 UTC timestamp with second precision."""
  return time.strftime(_DATE_FORMAT, time.gmtime(epoch_seconds))
