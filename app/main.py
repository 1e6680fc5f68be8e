from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import opportunities, organizations, proposals, tasks
from app.config import Settings, get_settings
from app.core.exceptions import enqueue_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from app.core.json import DecimalJSONResponse
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.jobs.queue import EnqueueError

API_VERSION = "0.1.0"


def create_app(settings: Settings) -> FastAPI:
  """Build the API application with interactive docs disabled."""
  api = FastAPI(title="Proposals API", version=API_VERSION, default_response_class=DecimalJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

  # Starlette runs the last added middleware first.
  api.add_middleware(RequestLoggingMiddleware)
  api.add_middleware(SecurityHeadersMiddleware)
  api.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["content-type", "authorization"],
    expose_headers=["content-length", "x-request-id"],
  )

  api.add_exception_handler(Exception, global_exception_handler)
  api.add_exception_handler(HTTPException, http_exception_handler)
  api.add_exception_handler(RequestValidationError, request_validation_exception_handler)
  api.add_exception_handler(EnqueueError, enqueue_exception_handler)

  api.include_router(proposals.router, prefix="/v1/proposals", tags=["proposals"])
  api.include_router(opportunities.router, prefix="/v1/opportunities", tags=["opportunities"])
  api.include_router(organizations.router, prefix="/v1/organizations", tags=["organizations"])
  api.include_router(tasks.router, prefix="/internal", tags=["tasks"])

  @api.get("/health", include_in_schema=False)
  async def health_check() -> dict[str, str]:
    return {"status": "ok", "version": API_VERSION}

  return api


app = create_app(get_settings())
