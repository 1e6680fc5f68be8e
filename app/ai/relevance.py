"""Rank knowledge-base entries by lexical similarity to the generation prompt."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

_TERM_PATTERN = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
  {"the", "and", "for", "with", "from", "into", "that", "this", "are", "our", "your", "their", "them", "they", "will", "was", "were", "has", "have", "had", "not", "but", "can", "all", "any", "per", "about", "over", "after", "within", "without", "create", "proposal"}
)


def key_terms(text: str) -> set[str]:
  """Lowercased words of three or more characters, minus stopwords."""
  return {term for term in _TERM_PATTERN.findall(text.lower()) if len(term) > 2 and term not in _STOPWORDS}


def similarity(prompt_terms: set[str], item_terms: set[str]) -> float:
  """Jaccard overlap boosted by the better one-sided coverage, in [0, 1]."""
  if not prompt_terms or not item_terms:
    return 0.0
  shared = prompt_terms & item_terms
  jaccard = len(shared) / len(prompt_terms | item_terms)
  coverage = max(len(shared) / len(prompt_terms), len(shared) / len(item_terms))
  return (jaccard + coverage) / 2


def select_relevant(prompt: str, items: Sequence[T], text_of: Callable[[T], str], *, limit: int, min_similarity: float) -> list[T]:
  """Return at most ``limit`` items, best match first.

  Items scoring below ``min_similarity`` are left out. When nothing clears the
  threshold the first ``limit`` items are kept in their stored order so the
  catalog still informs generation.
  """
  prompt_terms = key_terms(prompt)
  scored = [(similarity(prompt_terms, key_terms(text_of(item))), index, item) for index, item in enumerate(items)]
  matched = [entry for entry in scored if entry[0] >= min_similarity and entry[0] > 0.0]
  if not matched:
    return list(items[:limit])
  # Ties keep the stored order.
  matched.sort(key=lambda entry: (-entry[0], entry[1]))
  return [item for _, _, item in matched[:limit]]
