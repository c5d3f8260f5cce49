from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import re

from xlate_core.translation.types import GlossaryPair


@dataclass(slots=True, frozen=True)
class PostprocessResult:
    translated: str
    applied_glossary_terms: list[GlossaryPair] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _word_pattern(value: str) -> re.Pattern[str]:
    prefix = r"\b" if re.match(r"\w", value[0]) else ""
    suffix = r"\b" if re.match(r"\w", value[-1]) else ""
    return re.compile(f"{prefix}{re.escape(value)}{suffix}", re.IGNORECASE)


def _contains_word(text: str, value: str) -> bool:
    if not value or not text:
        return False
    return _word_pattern(value).search(text) is not None


def postprocess_item(
    *,
    source_text: str,
    translated: str,
    placeholders: Sequence[str] = (),
    glossary: Sequence[GlossaryPair] = (),
) -> PostprocessResult:
    """Report glossary usage and missing placeholders; never alters ``translated``."""

    applied: list[GlossaryPair] = []
    warnings: list[str] = []

    for pair in glossary:
        if not pair.term:
            continue
        if _contains_word(translated, pair.replacement):
            applied.append(pair)
            continue
        if _contains_word(source_text, pair.term) and not _contains_word(translated, pair.term):
            warnings.append(f"glossary_not_applied:{pair.term}")

    for token in placeholders:
        if token and token not in translated:
            warnings.append(f"placeholder_missing:{token}")

    return PostprocessResult(
        translated=translated,
        applied_glossary_terms=applied,
        warnings=warnings,
    )
