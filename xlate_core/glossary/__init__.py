from xlate_core.glossary.glossary_store import (
    GlossaryRecord,
    get_pairs_for_language_pair,
    lookup_glossary,
    save_glossary_translation,
)

__all__ = [
    "GlossaryRecord",
    "get_pairs_for_language_pair",
    "lookup_glossary",
    "save_glossary_translation",
]
