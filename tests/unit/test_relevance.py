"""Prompt similarity scoring for knowledge-base entries."""

from __future__ import annotations

from app.ai.relevance import key_terms, select_relevant, similarity


def test_key_terms_drop_short_words_and_stopwords() -> None:
  assert key_terms("Create a proposal for the Acme CRM, 50 seats!") == {"acme", "crm", "seats"}


def test_similarity_is_bounded_and_symmetric_in_overlap() -> None:
  assert similarity({"revenue", "dashboards"}, {"revenue", "dashboards"}) == 1.0
  assert similarity({"revenue"}, set()) == 0.0
  assert 0.0 < similarity({"revenue", "dashboards", "acme"}, {"revenue", "storage"}) < 1.0


def test_select_relevant_orders_by_score_then_stored_order() -> None:
  items = ["rack storage", "revenue dashboards", "revenue", "revenue dashboards"]
  selected = select_relevant("revenue dashboards", items, str, limit=2, min_similarity=0.2)
  assert selected == ["revenue dashboards", "revenue dashboards"]
  assert select_relevant("unrelated words", items, str, limit=2, min_similarity=0.2) == ["rack storage", "revenue dashboards"]
