"""Slide shapes produced by proposal generation."""

from __future__ import annotations

from typing import Annotated, Any, Literal

import msgspec

SlideType = Literal["title", "executive_summary", "solution", "investment", "next_steps", "custom"]
TableCell = str | int | float

CONTENT_FIELDS: tuple[str, ...] = ("heading", "subheading", "bullets", "body", "table", "callout")

# Content fields each slide type may carry; custom slides may use any of them.
ALLOWED_CONTENT_FIELDS: dict[str, tuple[str, ...]] = {
  "title": ("heading", "subheading", "body"),
  "executive_summary": ("heading", "bullets", "body", "callout"),
  "solution": ("heading", "subheading", "bullets", "body", "callout"),
  "investment": ("heading", "body", "table", "bullets", "callout"),
  "next_steps": ("heading", "bullets", "body", "callout"),
  "custom": CONTENT_FIELDS,
}


class SlideTable(msgspec.Struct, forbid_unknown_fields=True, omit_defaults=True):
  headers: Annotated[list[str], msgspec.Meta(min_length=1, description="Header row")]
  rows: Annotated[list[list[TableCell]], msgspec.Meta(description="Data rows, each as long as the header row")]
  footer: str | None = None

  def __post_init__(self) -> None:
    width = len(self.headers)
    for index, row in enumerate(self.rows, start=1):
      if len(row) != width:
        raise ValueError(f"table row {index} has {len(row)} cells, expected {width}")


class SlideContent(msgspec.Struct, forbid_unknown_fields=True, omit_defaults=True):
  heading: str | None = None
  subheading: str | None = None
  bullets: list[str] | None = None
  body: str | None = None
  table: SlideTable | None = None
  callout: str | None = None

  def present_fields(self) -> list[str]:
    return [name for name in CONTENT_FIELDS if getattr(self, name) is not None]


class OutlineEntry(msgspec.Struct, forbid_unknown_fields=True):
  title: Annotated[str, msgspec.Meta(min_length=1)]
  type: SlideType


class SlideDraft(msgspec.Struct, forbid_unknown_fields=True):
  """One slide as returned by the model, before numbering."""

  title: Annotated[str, msgspec.Meta(min_length=1)]
  content: SlideContent


class Slide(msgspec.Struct, rename="camel", omit_defaults=True):
  slide_number: int
  type: SlideType
  title: str
  content: SlideContent


def content_violations(slide_type: str, content: SlideContent) -> list[str]:
  """Return human-readable problems with a slide's content for its type."""
  present = content.present_fields()
  if not present:
    return ["content is empty"]
  allowed = ALLOWED_CONTENT_FIELDS[slide_type]
  return [f"field '{name}' is not allowed on {slide_type} slides" for name in present if name not in allowed]


def slides_to_builtins(slides: list[Slide]) -> list[dict[str, Any]]:
  """Convert slides to JSON-ready dicts (camelCase keys, unset fields omitted)."""
  return msgspec.to_builtins(slides)
