"""Assemble a token-budgeted generation prompt from organization and deal data."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from app.ai.prompts import build_system_prompt
from app.ai.providers.base import ProviderMetadata
from app.ai.providers.errors import ContextLengthError
from app.ai.relevance import select_relevant
from app.config import Settings
from app.storage.knowledge_repo import BattlecardRecord, CompanyProfileRecord, DealContextRecord, KnowledgeRepository, OpportunityRecord, ProductRecord

logger = logging.getLogger(__name__)

TOKENS_PER_CHAR = 0.25
# Headroom for the per-step user messages (outline listing, field shapes).
STEP_PROMPT_RESERVE_TOKENS = 1024

_BRAND_FIELDS = (("tone", "TONE"), ("formality", "FORMALITY"), ("contentStyle", "CONTENT STYLE"), ("positioning", "POSITIONING"))


class ContextAssemblyError(Exception):
  """Raised when generation context cannot be gathered."""


@dataclass(frozen=True)
class AssembledContext:
  context_text: str
  system_prompt: str
  token_estimate: int
  truncated: bool = False
  truncation_warnings: list[str] = field(default_factory=list)
  dropped_deal_items: int = 0


def estimate_tokens(text: str) -> int:
  """Approximate token count for budgeting (one token per four characters)."""
  return math.ceil(len(text) * TOKENS_PER_CHAR)


def _render_company_profile(profile: CompanyProfileRecord | None) -> str | None:
  if profile is None:
    return None
  lines = ["=== ABOUT YOUR COMPANY ==="]
  if profile.summary:
    lines.append(profile.summary)
  if profile.value_proposition:
    lines.append(f"VALUE PROPOSITION: {profile.value_proposition}")
  if profile.target_customers:
    lines.append(f"TARGET CUSTOMERS: {profile.target_customers}")
  if profile.key_differentiators:
    lines.append("KEY DIFFERENTIATORS:")
    lines.extend(f"- {item}" for item in profile.key_differentiators)
  return "\n".join(lines) if len(lines) > 1 else None


def _render_brand(guidelines: dict[str, Any] | None) -> str | None:
  if not guidelines:
    return None
  lines = ["=== BRAND GUIDELINES ==="]
  for key, label in _BRAND_FIELDS:
    value = guidelines.get(key)
    if value:
      lines.append(f"{label}: {value}")
  messages = guidelines.get("keyMessages") or []
  if messages:
    lines.append("KEY MESSAGES:")
    lines.extend(f"- {message}" for message in messages)
  return "\n".join(lines) if len(lines) > 1 else None


def _render_products(products: Sequence[ProductRecord]) -> str | None:
  if not products:
    return None
  lines = ["=== RELEVANT PRODUCTS ==="]
  for index, product in enumerate(products, start=1):
    lines.append(f"[{index}] {product.name}")
    if product.category:
      lines.append(f"Category: {product.category}")
    if product.description:
      lines.append(product.description)
  return "\n".join(lines)


def _as_lines(value: Any) -> list[str]:
  if isinstance(value, list):
    return [str(item) for item in value if item]
  if value:
    return [str(value)]
  return []


def _product_text(product: ProductRecord) -> str:
  return " ".join(part for part in (product.name, product.category, product.description) if part)


def _battlecard_text(card: BattlecardRecord) -> str:
  values = [item for key in ("weaknesses", "ourDifferentiators", "strengths") for item in _as_lines(card.structured_content.get(key))]
  return " ".join([card.competitor_name, *values])


def _render_battlecards(battlecards: Sequence[BattlecardRecord]) -> str | None:
  if not battlecards:
    return None
  lines = ["=== COMPETITIVE INTELLIGENCE ==="]
  for card in battlecards:
    lines.append(f"COMPETITOR: {card.competitor_name}")
    weaknesses = _as_lines(card.structured_content.get("weaknesses"))
    if weaknesses:
      lines.append("Their Weaknesses:")
      lines.extend(f"- {item}" for item in weaknesses)
    differentiators = _as_lines(card.structured_content.get("ourDifferentiators"))
    if differentiators:
      lines.append("Our Differentiators vs Them:")
      lines.extend(f"- {item}" for item in differentiators)
  return "\n".join(lines)


def _render_deal_item(index: int, item: DealContextRecord) -> str:
  source_name = item.source_metadata.get("fileName") or item.source_metadata.get("name")
  label = item.source_type.upper()
  if source_name:
    label = f"{label} ({source_name})"
  return f"[{index}] {label} - {item.created_at.date().isoformat()}:\n{item.raw_content.strip()}"


def _render_deal_context(items: Sequence[DealContextRecord]) -> str | None:
  if not items:
    return None
  lines = ["=== DEAL CONTEXT ==="]
  lines.extend(_render_deal_item(index, item) for index, item in enumerate(items, start=1))
  return "\n\n".join(lines)


def _render_opportunity(opportunity: OpportunityRecord) -> str:
  lines = ["=== OPPORTUNITY ===", f"NAME: {opportunity.name}"]
  if opportunity.description:
    lines.append(f"DESCRIPTION: {opportunity.description}")
  if opportunity.amount is not None:
    lines.append(f"AMOUNT: ${opportunity.amount:,.2f}")
  if opportunity.close_date is not None:
    lines.append(f"EXPECTED CLOSE: {opportunity.close_date.isoformat()}")
  lines.append(f"STAGE: {opportunity.stage}")
  if opportunity.deal_summary:
    lines.append(f"DEAL SUMMARY: {json.dumps(opportunity.deal_summary, separators=(',', ':'), default=str)}")
  return "\n".join(lines)


class ContextAssembler:
  """Gather organization knowledge and deal data into a bounded system prompt."""

  def __init__(self, *, knowledge_repo: KnowledgeRepository, settings: Settings) -> None:
    self._repo = knowledge_repo
    self._settings = settings

  async def assemble(self, *, organization_id: str, opportunity_id: str, prompt: str, metadata: ProviderMetadata) -> AssembledContext:
    try:
      organization_name, brand, profile, products, battlecards, opportunity, deal_items = await asyncio.gather(
        self._repo.get_organization_name(organization_id),
        self._repo.get_brand_guidelines(organization_id),
        self._repo.get_company_profile(organization_id),
        self._repo.list_active_products(organization_id),
        self._repo.list_active_battlecards(organization_id),
        self._repo.get_opportunity(organization_id, opportunity_id),
        self._repo.list_deal_context(opportunity_id, limit=self._settings.deal_context_limit),
      )
    except Exception as exc:
      logger.error("Context lookup failed org_id=%s opportunity_id=%s", organization_id, opportunity_id, exc_info=True)
      raise ContextAssemblyError("Failed to load generation context.") from exc

    if organization_name is None:
      raise ContextAssemblyError(f"Organization {organization_id} not found.")
    if opportunity is None:
      raise ContextAssemblyError(f"Opportunity {opportunity_id} not found.")

    # Only the catalog entries closest to the prompt reach the model.
    products = select_relevant(prompt, products, _product_text, limit=self._settings.context_product_limit, min_similarity=self._settings.context_min_similarity)
    battlecards = select_relevant(prompt, battlecards, _battlecard_text, limit=self._settings.context_battlecard_limit, min_similarity=self._settings.context_min_similarity)

    budget = self._budget(prompt, metadata)
    leading = [_render_company_profile(profile), _render_brand(brand), _render_products(products), _render_battlecards(battlecards)]
    opportunity_block = _render_opportunity(opportunity)

    # Deal items arrive newest first, so trimming from the tail drops the oldest.
    kept = list(deal_items)
    while True:
      blocks = [*leading, _render_deal_context(kept), opportunity_block]
      context_text = "\n\n".join(block for block in blocks if block)
      system_prompt = build_system_prompt(organization_name, context_text)
      token_estimate = estimate_tokens(system_prompt)
      if token_estimate <= budget or not kept:
        break
      kept.pop()

    if token_estimate > budget:
      logger.error("Foundational context exceeds budget org_id=%s tokens=%s budget=%s", organization_id, token_estimate, budget)
      raise ContextLengthError(metadata.name, metadata.max_context_tokens)

    dropped = len(deal_items) - len(kept)
    warnings: list[str] = []
    if dropped:
      warnings.append(f"Dropped {dropped} oldest deal context item(s) to fit the {budget}-token budget.")
      logger.warning("Context truncated org_id=%s opportunity_id=%s dropped=%s budget=%s", organization_id, opportunity_id, dropped, budget)

    return AssembledContext(
      context_text=context_text,
      system_prompt=system_prompt,
      token_estimate=token_estimate,
      truncated=bool(dropped),
      truncation_warnings=warnings,
      dropped_deal_items=dropped,
    )

  def _budget(self, prompt: str, metadata: ProviderMetadata) -> int:
    window = int(metadata.max_context_tokens * self._settings.context_budget_ratio)
    return window - self._settings.generation_max_tokens - estimate_tokens(prompt) - STEP_PROMPT_RESERVE_TOKENS
