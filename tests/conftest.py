"""Test configuration: environment defaults and shared fixtures."""

from __future__ import annotations

import os

os.environ.setdefault("PROPOSALS_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("PROPOSALS_TASK_SERVICE_PROVIDER", "none")

import pytest  # noqa: E402

from app.config import Settings  # noqa: E402
from tests.fakes import OPPORTUNITY_ID, InMemoryJobsRepo, InMemoryKnowledgeRepo, InMemoryProposalsRepo, make_opportunity, make_settings  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return make_settings()


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def knowledge_repo() -> InMemoryKnowledgeRepo:
  return InMemoryKnowledgeRepo(opportunities={OPPORTUNITY_ID: make_opportunity()})


@pytest.fixture
def proposals_repo(knowledge_repo: InMemoryKnowledgeRepo) -> InMemoryProposalsRepo:
  return InMemoryProposalsRepo(opportunities=knowledge_repo.opportunities)
