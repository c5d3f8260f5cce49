from __future__ import annotations

from collections.abc import Sequence

from xlate_core.constants import GLOSSARY_PROMPT_LIMIT
from xlate_core.translation.types import GlossaryPair

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful translation assistant. Return structured JSON following the provided "
    "function schema. Important: all returned translation strings MUST be valid UTF-8 text and "
    "MUST NOT contain NUL (\\u0000) or other control characters. If a control character would "
    "otherwise appear in the translation, replace it with a single space. Do NOT include any "
    "non-printable control characters in your output. Preserve HTML tags, placeholders and "
    "variables. Return only the JSON matching the function schema when called via function-calling."
)

REPAIR_SYSTEM_PROMPT = (
    "You are a translation cleaner. Receive JSON with id+translated values and return a JSON "
    "object {results:[{id,translated}, ...]} where each 'translated' string contains no NUL or "
    "control characters. Replace control chars with a single space. Preserve other text unchanged."
)

TRANSLATE_BATCH_FUNCTION_NAME = "translate_batch"

TRANSLATE_BATCH_FUNCTION: dict[str, object] = {
    "name": TRANSLATE_BATCH_FUNCTION_NAME,
    "description": "Return translations for every submitted item, echoing each item id.",
    "parameters": {
        "type": "object",
        "properties": {
            "request_id": {"type": "string"},
            "results": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "translated": {"type": "string"},
                        "applied_glossary_terms": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "term": {"type": "string"},
                                    "applied": {"type": "string"},
                                },
                            },
                        },
                        "confidence": {"type": "number"},
                    },
                    "required": ["id", "translated"],
                },
            },
        },
        "required": ["request_id", "results"],
    },
}


def build_glossary_instruction(glossary: Sequence[GlossaryPair]) -> str:
    pairs: list[str] = []
    for pair in glossary:
        if not pair.term:
            continue
        pairs.append(f"{pair.term} => {pair.replacement}")
        if len(pairs) >= GLOSSARY_PROMPT_LIMIT:
            break

    if not pairs:
        return ""

    return (
        "Glossary (use these terms when translating; you may inflect them to match grammar/tense):\n"
        + "\n".join(pairs)
        + "\n"
        + "When you use or inflect a glossary term, include an entry in applied_glossary_terms "
        "with keys 'term' (original) and 'applied' (the exact string used in the translation)."
    )


def build_system_message(system_prompt: str | None, glossary: Sequence[GlossaryPair]) -> str:
    prompt = (system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT
    return f"{prompt}\n\n{build_glossary_instruction(glossary)}"
