from __future__ import annotations

import pytest

from app.ai.json_parser import ModelOutputError, decode_model_json, strip_code_fences
from app.schema.slides import OutlineEntry, Slide, SlideContent, SlideDraft, content_violations, slides_to_builtins


def test_strip_code_fences_removes_one_tagged_fence() -> None:
  assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
  assert strip_code_fences('  ```\n[1, 2]\n```  ') == "[1, 2]"
  assert strip_code_fences('{"plain": true}') == '{"plain": true}'


def test_decode_outline_accepts_fenced_json() -> None:
  outline = decode_model_json('```json\n[{"title": "Welcome", "type": "title"}, {"title": "Next", "type": "next_steps"}]\n```', list[OutlineEntry])
  assert [(entry.title, entry.type) for entry in outline] == [("Welcome", "title"), ("Next", "next_steps")]


@pytest.mark.parametrize(
  ("text", "fragment"),
  [
    ("", "empty"),
    ("Sure! Here is your outline: [", "not valid JSON"),
    ('[{"title": "Welcome", "type": "appendix"}]', "expected shape"),
    ('[{"title": "", "type": "title"}]', "expected shape"),
    ('[{"title": "Welcome", "type": "title", "notes": "x"}]', "expected shape"),
  ],
)
def test_decode_rejects_invalid_outlines(text: str, fragment: str) -> None:
  with pytest.raises(ModelOutputError, match=fragment):
    decode_model_json(text, list[OutlineEntry])


def test_table_rows_must_match_header_width() -> None:
  draft = decode_model_json('{"title": "Pricing", "content": {"table": {"headers": ["Item", "Price"], "rows": [["Seats", "[ENTER VALUE]"]]}}}', SlideDraft)
  assert draft.content.table is not None
  assert draft.content.table.rows == [["Seats", "[ENTER VALUE]"]]

  with pytest.raises(ModelOutputError):
    decode_model_json('{"title": "Pricing", "content": {"table": {"headers": ["Item", "Price"], "rows": [["Seats"]]}}}', SlideDraft)


def test_unknown_content_fields_are_rejected() -> None:
  with pytest.raises(ModelOutputError):
    decode_model_json('{"title": "Intro", "content": {"heading": "Hi", "image": "logo.png"}}', SlideDraft)


def test_content_violations_check_fields_per_slide_type() -> None:
  assert content_violations("title", SlideContent()) == ["content is empty"]
  assert content_violations("title", SlideContent(heading="Acme", bullets=["one"])) == ["field 'bullets' is not allowed on title slides"]
  assert content_violations("investment", SlideContent(heading="Investment", table=None, body="See table")) == []
  assert content_violations("custom", SlideContent(callout="Anything goes", subheading="Really")) == []


def test_slides_to_builtins_uses_camel_case_and_omits_unset_fields() -> None:
  slides = [Slide(slide_number=1, type="title", title="Proposal for Acme", content=SlideContent(heading="Proposal for Acme"))]
  assert slides_to_builtins(slides) == [{"slideNumber": 1, "type": "title", "title": "Proposal for Acme", "content": {"heading": "Proposal for Acme"}}]
