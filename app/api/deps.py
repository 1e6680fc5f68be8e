"""Shared FastAPI dependencies for repositories, dispatch and provider selection."""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from app.ai.selector import ProviderSelector, build_provider_selector
from app.config import Settings, get_settings
from app.services.tasks.factory import get_task_enqueuer
from app.services.tasks.interface import TaskEnqueuer
from app.storage.factory import _get_jobs_repo, _get_opportunities_repo, _get_organizations_repo, _get_proposals_repo
from app.storage.jobs_repo import JobsRepository
from app.storage.opportunities_repo import OpportunitiesRepository
from app.storage.organizations_repo import OrganizationsRepository
from app.storage.proposals_repo import ProposalsRepository

logger = logging.getLogger(__name__)


def get_provider_selector(request: Request, settings: Settings = Depends(get_settings)) -> ProviderSelector:  # noqa: B008
  """Return the process-wide selector, building it on first use."""
  selector = getattr(request.app.state, "provider_selector", None)
  if selector is None:
    selector = build_provider_selector(settings)
    request.app.state.provider_selector = selector
    logger.info("Provider selector initialized")
  return selector


def get_jobs_repo(settings: Settings = Depends(get_settings)) -> JobsRepository:  # noqa: B008
  return _get_jobs_repo(settings)


def get_proposals_repo(settings: Settings = Depends(get_settings)) -> ProposalsRepository:  # noqa: B008
  return _get_proposals_repo(settings)


def get_organizations_repo(settings: Settings = Depends(get_settings)) -> OrganizationsRepository:  # noqa: B008
  return _get_organizations_repo(settings)


def get_opportunities_repo(settings: Settings = Depends(get_settings)) -> OpportunitiesRepository:  # noqa: B008
  return _get_opportunities_repo(settings)


def get_enqueuer(settings: Settings = Depends(get_settings)) -> TaskEnqueuer | None:  # noqa: B008
  return get_task_enqueuer(settings)
