"""Exception handlers that keep request payloads and internals out of responses and logs."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from app.config import get_settings
from app.core.json import DecimalJSONResponse
from app.jobs.queue import ENQUEUE_FAILED_MESSAGE, EnqueueError

logger = logging.getLogger("uvicorn.error")

_REDACTED_DETAIL_KEYS = frozenset({"input", "body", "payload", "content"})


def _json_safe(value: Any) -> Any:
  # Containers recurse so nested exceptions and objects end up as strings.
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _respond(request: Request, status_code: int, detail: Any, *, headers: dict[str, str] | None = None, **extra: Any) -> DecimalJSONResponse:
  content: dict[str, Any] = {"detail": detail, **extra}
  # Echo the request id so callers can quote it when reporting a failure.
  request_id = _request_id(request)
  if request_id:
    content["requestId"] = request_id
  return DecimalJSONResponse(status_code=status_code, content=content, headers=headers)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop the offending input values (top level and inside ctx) from pydantic errors."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    # Pydantic echoes the rejected value under "input", at the top level and in ctx.
    entry = {key: value for key, value in error.items() if key != "input"}
    ctx = entry.get("ctx")
    if isinstance(ctx, dict):
      entry["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    sanitized.append(_json_safe(entry))
  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  # Payload-shaped keys are removed at any depth.
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in _REDACTED_DETAIL_KEYS}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", _request_id(request), request.url.path, request.method, errors)
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """5xx details are logged but replaced for the caller; 4xx details pass through."""
  # Server errors keep their detail in the log only.
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, exc.detail, exc_info=True)
    return _respond(request, exc.status_code, "Internal Server Error")

  # Client errors are logged only when enabled, with payload keys stripped.
  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))
  return _respond(request, exc.status_code, exc.detail, headers=exc.headers)


async def enqueue_exception_handler(request: Request, exc: EnqueueError) -> DecimalJSONResponse:
  """503 with the proposal id; the proposal row is already marked as errored."""
  logger.error("Enqueue failure request_id=%s path=%s proposal_id=%s", _request_id(request), request.url.path, exc.proposal_id)
  return _respond(request, status.HTTP_503_SERVICE_UNAVAILABLE, ENQUEUE_FAILED_MESSAGE, proposalId=exc.proposal_id)
