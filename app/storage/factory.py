from app.config import Settings
from app.storage.jobs_repo import JobsRepository
from app.storage.knowledge_repo import KnowledgeRepository
from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.organizations_repo import OrganizationsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.postgres_knowledge_repo import PostgresKnowledgeRepository
from app.storage.postgres_organizations_repo import PostgresOrganizationsRepository
from app.storage.postgres_proposals_repo import PostgresProposalsRepository
from app.storage.proposals_repo import ProposalsRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("PROPOSALS_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_dsn(settings)
  return PostgresJobsRepository()


def _get_proposals_repo(settings: Settings) -> ProposalsRepository:
  """Return the active proposals repository."""
  _require_dsn(settings)
  return PostgresProposalsRepository()


def _get_organizations_repo(settings: Settings) -> OrganizationsRepository:
  """Return the active organizations repository."""
  _require_dsn(settings)
  return PostgresOrganizationsRepository()


def _get_knowledge_repo(settings: Settings) -> KnowledgeRepository:
  """Return the active knowledge-base repository."""
  _require_dsn(settings)
  return PostgresKnowledgeRepository()


def _get_opportunities_repo(settings: Settings) -> OpportunitiesRepository:
  """Return the active opportunities repository."""
  _require_dsn(settings)
  return PostgresKnowledgeRepository()
