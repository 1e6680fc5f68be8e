"""Alembic environment for the proposals schema (async engine, asyncpg driver)."""

import asyncio
import logging
import sys
from logging.config import fileConfig
from pathlib import Path
from time import perf_counter

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

config = context.config
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Model modules register their tables on Base.metadata at import.
import app.schema.jobs  # noqa: E402, F401
import app.schema.sql  # noqa: E402, F401
from app.config import get_database_settings  # noqa: E402
from app.core.database import Base, async_database_url  # noqa: E402

logger = logging.getLogger("alembic.runtime.migration")


class _RevisionTimer:
  """Logs how long each applied revision took."""

  def __init__(self) -> None:
    self.started = perf_counter()

  def __call__(self, *, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
    revision = getattr(step, "up_revision_id", None) or getattr(step, "down_revision_id", None) or "unknown"
    now = perf_counter()
    logger.info("Applied %s in %.3fs", revision, now - self.started)
    self.started = now


def _database_url() -> str:
  url = async_database_url(get_database_settings().pg_dsn)
  if not url:
    raise RuntimeError("PROPOSALS_PG_DSN (or DATABASE_URL) must be set to run migrations.")
  return url


def _context_options() -> dict[str, object]:
  return {"target_metadata": Base.metadata, "compare_type": True, "compare_server_default": True, "on_version_apply": _RevisionTimer()}


def run_migrations_offline() -> None:
  context.configure(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"}, **_context_options())
  with context.begin_transaction():
    context.run_migrations()


def _run_sync(connection: Connection) -> None:
  context.configure(connection=connection, **_context_options())
  migration_context = context.get_context()
  heads = migration_context.script.get_heads() if migration_context.script else []
  logger.info("Migrating proposals schema from %s to %s", migration_context.get_current_revision() or "base", ", ".join(heads) or "none")
  with context.begin_transaction():
    context.run_migrations()


async def run_migrations_online() -> None:
  section = config.get_section(config.config_ini_section) or {}
  section["sqlalchemy.url"] = _database_url()
  engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
  try:
    async with engine.connect() as connection:
      await connection.run_sync(_run_sync)
  finally:
    await engine.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_migrations_online())
