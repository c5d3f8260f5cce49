from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import replace

from xlate_core.errors import ProviderError
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.qa.postprocess import postprocess_item
from xlate_core.translation.types import (
    BatchOptions,
    BatchOutcome,
    BatchRequest,
    GlossaryPair,
    ItemResult,
    TranslationItem,
)

logger = logging.getLogger(__name__)


def assign_wire_ids(items: Sequence[TranslationItem]) -> list[TranslationItem]:
    """Return ``items`` with wire ids that are unique within the batch.

    Items whose bare key is shared fall back to their caller id, then to a
    positional suffix.
    """

    counts = Counter(item.wire_id for item in items)
    taken: set[str] = set()
    assigned: list[TranslationItem] = []
    for index, item in enumerate(items):
        wire = item.wire_id
        if counts[wire] > 1 and item.id:
            wire = item.id
        if wire in taken:
            wire = f"{wire}#{index}"
        taken.add(wire)
        assigned.append(item if wire == item.wire_id else replace(item, alias=wire))
    return assigned


def _positions_by_id(
    sent: Sequence[TranslationItem],
    items: Sequence[TranslationItem],
) -> dict[str, int]:
    # Wire ids first, then caller ids, then keys that are unambiguous.
    positions = {wire_item.wire_id: index for index, wire_item in enumerate(sent)}
    for index, item in enumerate(items):
        positions.setdefault(item.id, index)
    key_counts = Counter(item.key for item in items if item.key)
    for index, item in enumerate(items):
        if item.key and key_counts[item.key] == 1:
            positions.setdefault(item.key, index)
    return positions


def translate_batch(
    *,
    provider: TranslationProvider,
    request_id: str,
    source_lang: str,
    target_lang: str,
    items: Sequence[TranslationItem],
    glossary: Sequence[GlossaryPair] = (),
    options: BatchOptions | None = None,
) -> BatchOutcome:
    """Translate one batch into one target language.

    Provider failures come back as ``ok=False`` with the error code; this layer
    never retries.
    """

    items = list(items)
    request = BatchRequest(
        request_id=request_id,
        source_lang=source_lang,
        target_lang=target_lang,
        items=assign_wire_ids(items),
        glossary=list(glossary),
        options=options or BatchOptions(),
    )

    try:
        reply = provider.translate(request)
    except ProviderError as exc:
        logger.warning(
            "Batch %s (%s->%s) failed: %s",
            request_id,
            source_lang,
            target_lang,
            exc,
        )
        return BatchOutcome(ok=False, errors=[exc.code], error_detail=exc.detail)

    positions = _positions_by_id(request.items, items)
    bound: set[int] = set()

    results: list[ItemResult] = []
    for raw in reply.results:
        position = positions.get(raw.id)
        original = None
        if position is not None:
            if position in bound:
                logger.warning("Batch %s: duplicate result for %s ignored", request_id, raw.id)
                continue
            bound.add(position)
            original = items[position]
        checked = postprocess_item(
            source_text=original.source_text if original else "",
            translated=raw.translated,
            placeholders=original.placeholders if original else (),
            glossary=request.glossary,
        )
        results.append(
            ItemResult(
                id=raw.id,
                translated=checked.translated,
                applied_glossary_terms=list(checked.applied_glossary_terms),
                warnings=list(checked.warnings),
                confidence=raw.confidence,
                model_tokens=raw.model_tokens,
                item=original,
            )
        )

    return BatchOutcome(ok=True, results=results, meta=reply.meta)
