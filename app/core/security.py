from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.database import get_db
from app.core.firebase import verify_id_token
from app.services.users import get_user_by_firebase_uid

security_scheme = HTTPBearer(auto_error=False)

_ADMIN_ROLES = frozenset({"owner", "admin"})


@dataclass(frozen=True)
class CurrentMember:
  """Authenticated user scoped to one organization."""

  user_id: str
  organization_id: str
  role: str

  @property
  def is_admin(self) -> bool:
    return self.role in _ADMIN_ROLES


def _unauthorized(detail: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_current_member(token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)], db: AsyncSession = Depends(get_db)) -> CurrentMember:  # noqa: B008
  """Verify the Firebase ID token and resolve the caller's organization membership."""
  if token is None or not token.credentials:
    raise _unauthorized("Not authenticated")

  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise _unauthorized("Invalid authentication credentials")

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise _unauthorized("Invalid token claims")

  user = await get_user_by_firebase_uid(db, firebase_uid)
  if user is None:
    # Users must sign up before calling the API.
    raise _unauthorized("User not found")

  if user.org_id is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not a member of an organization")

  return CurrentMember(user_id=str(user.id), organization_id=str(user.org_id), role=user.role)


async def get_current_admin(member: CurrentMember = Depends(get_current_member)) -> CurrentMember:  # noqa: B008
  """Require an owner or admin role for organization settings changes."""
  if not member.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
  return member
