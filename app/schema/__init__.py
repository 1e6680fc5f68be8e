"""Schema package exports."""

from .slides import ALLOWED_CONTENT_FIELDS, OutlineEntry, Slide, SlideContent, SlideDraft, SlideTable, SlideType, content_violations, slides_to_builtins

__all__ = ["ALLOWED_CONTENT_FIELDS", "OutlineEntry", "Slide", "SlideContent", "SlideDraft", "SlideTable", "SlideType", "content_violations", "slides_to_builtins"]
