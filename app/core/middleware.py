import json
import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import get_settings

logger = logging.getLogger("app.core.middleware")

# Prompt text and deal notes can carry customer data, so they are redacted with credentials.
_SENSITIVE_KEYS = frozenset({"password", "token", "key", "apikey", "authorization", "cookie", "secret", "email", "full_name", "fullname", "prompt", "rawcontent", "raw_content", "description"})


def _redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys from a dictionary or list recursively."""
  if isinstance(data, dict):
    return {k: ("***" if k.lower() in _SENSITIVE_KEYS else _redact_sensitive_keys(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact_sensitive_keys(item) for item in data]
  return data


def _header(scope_or_message: Scope | Message, name: str) -> str | None:
  # Header names arrive as raw bytes in any case.
  for key, value in scope_or_message.get("headers", []):
    if key.decode("latin-1").lower() == name:
      return value.decode("latin-1")
  return None


def _build_request_url(scope: Scope) -> str:
  """Build a readable URL path for logging without relying on Request bodies."""
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


def _is_json(content_type: str | None) -> bool:
  if not content_type:
    return False
  normalized = content_type.lower()
  return "application/json" in normalized or normalized.endswith("+json")


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Format a request/response body for logging with redaction."""
  # Spell out empty bodies so log lines stay unambiguous.
  if not body:
    return "<empty>"
  # Binary payloads are summarized by size only.
  if not _is_json(content_type) and not (content_type or "").lower().startswith("text/"):
    return f"<non-text body {len(body)} bytes>"
  # Avoid parsing truncated JSON to prevent misleading logs.
  if len(body) > max_bytes:
    return f"{body[:max_bytes].decode('utf-8', errors='replace')}...(truncated)"
  text = body.decode("utf-8", errors="replace")
  if _is_json(content_type):
    try:
      return json.dumps(_redact_sensitive_keys(json.loads(text)), ensure_ascii=True)
    except json.JSONDecodeError:
      return text
  return text


async def _drain_request_body(receive: Receive) -> bytes:
  chunks: list[bytes] = []
  # Read every http.request chunk until the client signals the end of the body.
  while True:
    message = await receive()
    if message.get("type") != "http.request":
      break
    chunks.append(message.get("body", b""))
    if not message.get("more_body", False):
      break
  return b"".join(chunks)


def _replay_receive(body: bytes) -> Receive:
  """A receive callable that hands the already-read body to the app exactly once."""
  delivered = False

  async def receive() -> Message:
    nonlocal delivered
    chunk = b"" if delivered else body
    delivered = True
    return {"type": "http.request", "body": chunk, "more_body": False}

  return receive


class RequestLoggingMiddleware:
  """Log request/response details while preserving body streams for downstream handlers."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    # Websocket and lifespan scopes pass straight through.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    settings = get_settings()
    log_bodies = settings.log_http_bodies
    max_bytes = settings.log_http_body_bytes

    # Generate a request id and store it for downstream handlers and exception logging.
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.time()
    method = scope.get("method", "UNKNOWN")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, _build_request_url(scope))

    # Buffer the request body only when body logging is enabled, then replay it downstream.
    receive_wrapper = receive
    if log_bodies:
      request_body = await _drain_request_body(receive)
      receive_wrapper = _replay_receive(request_body)
      if request_body:
        logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(request_body, _header(scope, "content-type"), max_bytes))

    # Response status and a capped body sample are captured as messages pass through.
    status_code: int | None = None
    response_content_type: str | None = None
    streaming = False
    captured: list[bytes] = []
    captured_size = 0

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code, response_content_type, streaming, captured_size
      if message["type"] == "http.response.start":
        status_code = message.get("status")
        headers = MutableHeaders(scope=message)
        if "x-request-id" not in headers:
          headers["x-request-id"] = request_id
        response_content_type = headers.get("content-type")
        # Event streams stay open for minutes; never buffer them.
        streaming = (response_content_type or "").startswith("text/event-stream")
      elif message["type"] == "http.response.body" and log_bodies and not streaming and captured_size <= max_bytes:
        chunk = message.get("body", b"")
        captured.append(chunk[: max_bytes + 1 - captured_size])
        captured_size += len(chunk)
      await send(message)

    await self.app(scope, receive_wrapper, send_wrapper)

    # Report status and latency once the downstream handler has finished.
    elapsed_ms = (time.time() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, elapsed_ms)
    if log_bodies and captured:
      logger.info("Response body request_id=%s status=%s body=%s", request_id, status_code or 0, _format_body_for_log(b"".join(captured), response_content_type, max_bytes))


class SecurityHeadersMiddleware:
  """Middleware to strip sensitive headers from responses."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Drop server identification headers from every response.
    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in ("x-powered-by", "server"):
          if name in headers:
            del headers[name]
      await send(message)

    await self.app(scope, receive, send_wrapper)
