"""Local `.env` support for development runs."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VARIABLE = "PROPOSALS_ENV_FILE"


def default_env_path() -> Path:
  """`PROPOSALS_ENV_FILE` when set, else `.env` at the repository root."""
  override = os.getenv(ENV_FILE_VARIABLE)
  if override:
    return Path(override).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
    return value[1:-1]
  return value


def parse_env_text(text: str) -> dict[str, str]:
  """Parse KEY=VALUE lines; comments, blank lines and an `export ` prefix are allowed."""
  values: dict[str, str] = {}
  for raw_line in text.splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    values[key] = _unquote(value.strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Copy the file's variables into the environment; returns the keys that were set."""
  if not path.is_file():
    return []
  applied: list[str] = []
  for key, value in parse_env_text(path.read_text(encoding="utf-8")).items():
    if key in os.environ and not override:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
