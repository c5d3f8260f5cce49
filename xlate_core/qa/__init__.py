"""Advisory QA checks and text sanitization for provider output."""

from xlate_core.qa.postprocess import PostprocessResult, postprocess_item
from xlate_core.qa.sanitize import clean_text, has_control_chars, strip_control_chars

__all__ = [
    "PostprocessResult",
    "clean_text",
    "has_control_chars",
    "postprocess_item",
    "strip_control_chars",
]
