"""Firebase Admin wiring for verifying caller ID tokens."""

from __future__ import annotations

import logging
from typing import Any

import firebase_admin
from firebase_admin import auth, credentials

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

_TOKEN_ERRORS = (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError, auth.UserDisabledError, auth.CertificateFetchError, ValueError)


def initialize_firebase(settings: Settings | None = None) -> bool:
  """Initialize the default Firebase app once; returns False when no project is configured."""
  if firebase_admin._apps:
    return True

  settings = settings or get_settings()
  if not settings.firebase_project_id:
    logger.warning("FIREBASE_PROJECT_ID is not set; bearer tokens cannot be verified.")
    return False

  options = {"projectId": settings.firebase_project_id}
  if settings.firebase_service_account_json_path:
    firebase_admin.initialize_app(credentials.Certificate(settings.firebase_service_account_json_path), options)
  else:
    # Application Default Credentials on Cloud Run.
    firebase_admin.initialize_app(options=options)
  logger.info("Firebase Admin initialized project=%s", settings.firebase_project_id)
  return True


def verify_id_token(id_token: str) -> dict[str, Any] | None:
  """Return decoded claims, or None when the token is rejected."""
  if not initialize_firebase():
    return None
  try:
    return auth.verify_id_token(id_token)
  except _TOKEN_ERRORS as exc:
    logger.info("Rejected ID token: %s", type(exc).__name__)
    return None
