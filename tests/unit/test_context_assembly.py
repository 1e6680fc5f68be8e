"""Context assembly order, truncation and failure behavior."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from app.ai.context_assembly import ContextAssembler, ContextAssemblyError, estimate_tokens
from app.ai.providers.base import ProviderMetadata
from app.ai.providers.errors import ContextLengthError
from app.storage.knowledge_repo import BattlecardRecord, CompanyProfileRecord, DealContextRecord, ProductRecord
from tests.fakes import OPPORTUNITY_ID, ORG_ID, InMemoryKnowledgeRepo, make_opportunity, make_settings

_PROMPT = "Create a proposal for Acme Corp, 50 users, annual billing"


def _metadata(max_context_tokens: int = 200_000) -> ProviderMetadata:
  return ProviderMetadata(name="Anthropic Direct", model="claude-test", supports_streaming=True, supports_system_prompt=True, max_context_tokens=max_context_tokens)


def _deal_item(index: int, *, chars: int = 200) -> DealContextRecord:
  created = datetime.datetime(2026, 1, 1, tzinfo=datetime.UTC) + datetime.timedelta(days=index)
  return DealContextRecord(id=f"item-{index}", source_type="call_transcript", raw_content=f"note-{index} " + "x" * chars, created_at=created, source_metadata={"fileName": f"call-{index}.txt"})


def _full_repo(**overrides) -> InMemoryKnowledgeRepo:  # noqa: ANN003
  values = {
    "brand": {"tone": "Confident", "formality": "Professional", "keyMessages": ["Fast onboarding"]},
    "profile": CompanyProfileRecord(summary="We build CRM tooling.", value_proposition="Close deals faster", key_differentiators=["Native AI"]),
    "products": [ProductRecord(name="Acme CRM", category="Software", description="Pipeline management")],
    "battlecards": [BattlecardRecord(competitor_name="Globex", structured_content={"weaknesses": ["Slow support"], "ourDifferentiators": ["24/7 support"]})],
    "opportunities": {OPPORTUNITY_ID: make_opportunity(amount=Decimal("125000"), close_date=datetime.date(2026, 12, 31), deal_summary={"seats": 50})},
    # Newest first, as the repository returns them.
    "deal_items": [_deal_item(3), _deal_item(2), _deal_item(1)],
  }
  values.update(overrides)
  return InMemoryKnowledgeRepo(**values)


def test_estimate_tokens_rounds_up() -> None:
  assert estimate_tokens("") == 0
  assert estimate_tokens("abcd") == 1
  assert estimate_tokens("abcde") == 2


@pytest.mark.anyio
async def test_sections_are_rendered_in_fixed_order() -> None:
  assembler = ContextAssembler(knowledge_repo=_full_repo(), settings=make_settings())
  context = await assembler.assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata())

  headers = ["=== ABOUT YOUR COMPANY ===", "=== BRAND GUIDELINES ===", "=== RELEVANT PRODUCTS ===", "=== COMPETITIVE INTELLIGENCE ===", "=== DEAL CONTEXT ===", "=== OPPORTUNITY ==="]
  positions = [context.context_text.index(header) for header in headers]
  assert positions == sorted(positions)
  assert "AMOUNT: $125,000.00" in context.context_text
  assert "EXPECTED CLOSE: 2026-12-31" in context.context_text
  assert "CALL_TRANSCRIPT (call-3.txt) - 2026-01-04" in context.context_text
  assert "Acme Software" in context.system_prompt
  assert "[ENTER VALUE]" in context.system_prompt
  assert context.truncated is False
  assert context.token_estimate == estimate_tokens(context.system_prompt)


@pytest.mark.anyio
async def test_missing_sections_are_omitted() -> None:
  repo = InMemoryKnowledgeRepo(opportunities={OPPORTUNITY_ID: make_opportunity()})
  context = await ContextAssembler(knowledge_repo=repo, settings=make_settings()).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata())
  assert "=== BRAND GUIDELINES ===" not in context.context_text
  assert "=== DEAL CONTEXT ===" not in context.context_text
  assert context.context_text.startswith("=== OPPORTUNITY ===")


@pytest.mark.anyio
async def test_oldest_deal_items_are_dropped_to_fit_budget() -> None:
  settings = make_settings(generation_max_tokens=1000, context_budget_ratio=1.0)
  baseline = await ContextAssembler(knowledge_repo=_full_repo(deal_items=[]), settings=settings).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata())

  repo = _full_repo(deal_items=[_deal_item(index, chars=4000) for index in (5, 4, 3, 2, 1)])
  # Each item costs roughly 1010 tokens, so the headroom fits two of them.
  metadata = _metadata(max_context_tokens=1000 + 1024 + estimate_tokens(_PROMPT) + baseline.token_estimate + 2600)

  context = await ContextAssembler(knowledge_repo=repo, settings=settings).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=metadata)

  assert context.truncated is True
  assert context.dropped_deal_items == 3
  assert "note-5" in context.context_text
  assert "note-4" in context.context_text
  assert "note-3" not in context.context_text
  assert "note-1" not in context.context_text
  assert context.truncation_warnings
  assert context.token_estimate <= metadata.max_context_tokens - 1000 - 1024 - estimate_tokens(_PROMPT)


@pytest.mark.anyio
async def test_oversized_foundational_context_raises_context_length() -> None:
  repo = _full_repo(products=[ProductRecord(name=f"Product {index}", description="y" * 4000) for index in range(20)])
  settings = make_settings(generation_max_tokens=500, context_budget_ratio=1.0)
  with pytest.raises(ContextLengthError):
    await ContextAssembler(knowledge_repo=repo, settings=settings).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata(max_context_tokens=4000))


@pytest.mark.anyio
async def test_lookup_failures_raise_assembly_error() -> None:
  with pytest.raises(ContextAssemblyError):
    await ContextAssembler(knowledge_repo=_full_repo(fail_with=ConnectionError("db down")), settings=make_settings()).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata())

  with pytest.raises(ContextAssemblyError):
    await ContextAssembler(knowledge_repo=_full_repo(), settings=make_settings()).assemble(organization_id=ORG_ID, opportunity_id="99999999-9999-9999-9999-999999999999", prompt=_PROMPT, metadata=_metadata())


@pytest.mark.anyio
async def test_products_and_battlecards_are_ranked_against_the_prompt() -> None:
  products = [ProductRecord(name=f"Filler {index}", category="Hardware", description="Rack mounted storage") for index in range(6)]
  products.insert(3, ProductRecord(name="Insight Analytics", category="Software", description="Revenue dashboards and forecasting"))
  products.append(ProductRecord(name="Forecast Pro", description="Revenue forecasting for finance teams"))
  battlecards = [BattlecardRecord(competitor_name=name) for name in ("Initech", "Hooli", "Umbrella", "Globex")]
  repo = _full_repo(products=products, battlecards=battlecards)
  settings = make_settings(context_product_limit=5, context_battlecard_limit=3, context_min_similarity=0.2)
  prompt = "Pitch revenue forecasting dashboards to Acme, they are evaluating Globex"

  context = await ContextAssembler(knowledge_repo=repo, settings=settings).assemble(organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=prompt, metadata=_metadata())

  assert "[1] Insight Analytics" in context.context_text
  assert "[2] Forecast Pro" in context.context_text
  assert "Filler" not in context.context_text
  assert "COMPETITOR: Globex" in context.context_text
  assert "Hooli" not in context.context_text


@pytest.mark.anyio
async def test_unmatched_catalog_falls_back_to_stored_order_within_limits() -> None:
  products = [ProductRecord(name=f"Product {index}") for index in range(8)]
  battlecards = [BattlecardRecord(competitor_name=f"Rival {index}") for index in range(5)]
  settings = make_settings(context_product_limit=5, context_battlecard_limit=3)

  context = await ContextAssembler(knowledge_repo=_full_repo(products=products, battlecards=battlecards), settings=settings).assemble(
    organization_id=ORG_ID, opportunity_id=OPPORTUNITY_ID, prompt=_PROMPT, metadata=_metadata()
  )

  assert "[5] Product 4" in context.context_text
  assert "Product 5" not in context.context_text
  assert "COMPETITOR: Rival 2" in context.context_text
  assert "Rival 3" not in context.context_text
