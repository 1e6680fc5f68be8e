"""Async engine, session factory and declarative base for the proposals schema."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_database_settings

logger = logging.getLogger(__name__)

# Deterministic constraint names keep autogenerated migrations stable.
NAMING_CONVENTION = {
  "ix": "ix_%(column_0_label)s",
  "uq": "uq_%(table_name)s_%(column_0_name)s",
  "ck": "ck_%(table_name)s_%(constraint_name)s",
  "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
  "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
  metadata = MetaData(naming_convention=NAMING_CONVENTION)


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_database_url(dsn: str | None) -> str | None:
  """Point plain postgres DSNs at the asyncpg driver."""
  if not dsn:
    return None
  for prefix in ("postgres://", "postgresql://"):
    if dsn.startswith(prefix):
      return "postgresql+asyncpg://" + dsn[len(prefix) :]
  return dsn


def get_db_engine() -> AsyncEngine | None:
  global _engine
  if _engine is None:
    settings = get_database_settings()
    url = async_database_url(settings.pg_dsn)
    if url is None:
      return None
    _engine = create_async_engine(url, echo=settings.debug, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global _session_factory
  if _session_factory is None:
    engine = get_db_engine()
    if engine is not None:
      _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory


async def dispose_engine() -> None:
  """Close pooled connections; the next session call rebuilds the engine."""
  global _engine, _session_factory
  if _engine is None:
    return
  await _engine.dispose()
  _engine = None
  _session_factory = None
  logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession]:
  """Dependency to get a database session."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (PROPOSALS_PG_DSN is missing).")

  async with session_factory() as session:
    yield session
