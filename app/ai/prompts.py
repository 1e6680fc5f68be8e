"""Prompt text for proposal generation."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

SLIDE_TYPES: tuple[str, ...] = ("title", "executive_summary", "solution", "investment", "next_steps", "custom")

GENERATION_INSTRUCTIONS = """=== OUTPUT FORMAT ===
Every response must be valid JSON. Do not include any text before or after the JSON value.
Slide types: "title", "executive_summary", "solution", "investment", "next_steps", "custom".

=== GUIDELINES ===
- Be concise and impactful
- Use active voice
- Focus on benefits, not features
- Reference our company differentiators when relevant
- Use competitive insights when appropriate (without naming competitors negatively)
- Never invent company names, prices or specific claims; use placeholders like [COMPANY NAME] or [PROSPECT NAME]

=== CRITICAL PRICING RULES (MUST FOLLOW) ===
- NEVER perform math or calculations on prices
- NEVER derive per-user, per-month, or unit prices from totals
- ONLY use exact dollar amounts that appear verbatim in the provided context
- For ANY calculated, derived, or uncertain price: use [ENTER VALUE] placeholder
- When in doubt, use [ENTER VALUE] - it's better to ask than to guess wrong"""

_CONTENT_FIELD_SHAPES = {
  "heading": '"heading": string',
  "subheading": '"subheading": string',
  "bullets": '"bullets": array of strings',
  "body": '"body": string',
  "table": '"table": {"headers": [string], "rows": [[string]] with every row as long as headers, "footer": optional string}',
  "callout": '"callout": short string',
}


def build_system_prompt(organization_name: str, context_text: str) -> str:
  """Wrap the assembled context with the fixed generation instructions."""
  header = f"You are an expert sales proposal writer for {organization_name}.\nYour job is to generate professional, compelling sales proposals."
  return f"{header}\n\n{context_text}\n\n{GENERATION_INSTRUCTIONS}"


def render_outline_request(prompt: str, *, max_slides: int) -> str:
  types = ", ".join(f'"{slide_type}"' for slide_type in SLIDE_TYPES)
  return (
    "Plan a sales proposal for the following request:\n\n"
    f"{prompt}\n\n"
    f"Respond with a JSON array of 1 to {max_slides} entries, one per slide, in presentation order. "
    f'Each entry is an object with "title" (string) and "type" (one of {types}). '
    'Open with a "title" slide and close with "next_steps" where it fits the request.'
  )


def render_slide_request(prompt: str, *, outline: Sequence[tuple[str, str]], index: int, allowed_fields: Iterable[str]) -> str:
  """Ask for one slide; `index` is 1-based."""
  listing = "\n".join(f"{number}. {title} ({slide_type})" for number, (title, slide_type) in enumerate(outline, start=1))
  title, slide_type = outline[index - 1]
  fields = "\n".join(f"- {_CONTENT_FIELD_SHAPES[name]}" for name in allowed_fields)
  return (
    f"Request:\n{prompt}\n\n"
    f"Proposal outline:\n{listing}\n\n"
    f'Write slide {index} of {len(outline)}: "{title}" (type: {slide_type}).\n'
    'Respond with a JSON object {"title": string, "content": object}. '
    f"The content object may only use these fields:\n{fields}"
  )
