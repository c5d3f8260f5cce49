"""Ad-hoc item batches queued for translation outside a course job."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

from xlate_core.db.schema import initialize_database
from xlate_core.glossary.glossary_store import get_pairs_for_language_pair
from xlate_core.jobs.queue import TASK_KIND_BATCH, WorkQueue
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.site.paths import site_db_path
from xlate_core.store.keys import save_key_with_translation
from xlate_core.translation.batch import translate_batch
from xlate_core.translation.types import BatchOptions, GlossaryPair, TranslationItem

logger = logging.getLogger(__name__)


def _item_from_mapping(raw: Mapping[str, Any]) -> TranslationItem | None:
    component = str(raw.get("component") or "").strip() or None
    key = str(raw.get("key") or raw.get("xkey") or "").strip() or None
    item_id = str(raw.get("id") or "").strip()
    if not item_id and key:
        item_id = f"{component}:{key}" if component else key
    if not item_id:
        return None

    placeholders = raw.get("placeholders") or ()
    return TranslationItem(
        id=item_id,
        source_text=str(raw.get("source_text", raw.get("source")) or ""),
        context=str(raw.get("context") or ""),
        placeholders=tuple(str(token) for token in placeholders),
        component=component,
        key=key,
        course_id=int(raw.get("courseid", raw.get("course_id")) or 0),
    )


def _item_to_dict(item: TranslationItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "source_text": item.source_text,
        "context": item.context,
        "placeholders": list(item.placeholders),
        "component": item.component,
        "key": item.key,
        "courseid": item.course_id,
    }


@dataclass(slots=True)
class BatchTaskPayload:
    request_id: str
    source_lang: str
    target_langs: list[str]
    items: list[TranslationItem]
    glossary: list[GlossaryPair] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "requestid": self.request_id,
            "sourcelang": self.source_lang,
            "targetlangs": list(self.target_langs),
            "items": [_item_to_dict(item) for item in self.items],
        }
        if self.glossary is not None:
            payload["glossary"] = [pair.to_dict() for pair in self.glossary]
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.model:
            payload["model"] = self.model
        return payload

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BatchTaskPayload:
        targets = raw.get("targetlangs") or raw.get("target_langs") or raw.get("targetlang") or []
        if isinstance(targets, str):
            targets = [targets]

        items = [
            item
            for item in (
                _item_from_mapping(entry) for entry in raw.get("items") or [] if isinstance(entry, Mapping)
            )
            if item is not None
        ]

        glossary_raw = raw.get("glossary")
        glossary: list[GlossaryPair] | None = None
        if isinstance(glossary_raw, list):
            glossary = [
                GlossaryPair(term=str(entry["term"]), replacement=str(entry["replacement"]))
                for entry in glossary_raw
                if isinstance(entry, Mapping) and entry.get("term") and entry.get("replacement")
            ]

        temperature = raw.get("temperature")
        max_tokens = raw.get("max_tokens")
        return cls(
            request_id=str(raw.get("requestid", raw.get("request_id")) or f"rb_{uuid4().hex[:13]}"),
            source_lang=str(raw.get("sourcelang", raw.get("source_lang")) or "en").strip(),
            target_langs=[str(lang).strip() for lang in targets if str(lang).strip()],
            items=items,
            glossary=glossary,
            temperature=float(temperature) if temperature is not None else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
            model=str(raw["model"]) if raw.get("model") else None,
        )


@dataclass(slots=True, frozen=True)
class EnqueuedBatch:
    request_id: str
    task_id: str


@dataclass(slots=True)
class BatchTaskSummary:
    request_id: str
    saved: dict[str, int] = field(default_factory=dict)
    failed_languages: dict[str, str] = field(default_factory=dict)
    unmatched: int = 0


def enqueue_batch_task(
    *,
    queue: WorkQueue,
    payload: BatchTaskPayload | Mapping[str, Any],
) -> EnqueuedBatch:
    """Queue an item batch for translation into one or more languages."""

    resolved = payload if isinstance(payload, BatchTaskPayload) else BatchTaskPayload.from_mapping(payload)
    if not resolved.items:
        raise ValueError("Batch has no translatable items")
    if not resolved.target_langs:
        raise ValueError("Batch has no target languages")

    task_id = queue.enqueue(resolved.request_id, kind=TASK_KIND_BATCH, payload=resolved.to_dict())
    logger.info(
        "Queued batch %s: %d items into %s",
        resolved.request_id,
        len(resolved.items),
        ",".join(resolved.target_langs),
    )
    return EnqueuedBatch(request_id=resolved.request_id, task_id=task_id)


def run_batch_task(
    *,
    site_path: Path,
    payload: BatchTaskPayload,
    provider: TranslationProvider,
) -> BatchTaskSummary:
    """Translate a queued item batch and store results for keyed items.

    A provider error skips that language only. Items without a component and
    key are translated but have nowhere to be stored.
    """

    db_path = site_db_path(Path(site_path))
    summary = BatchTaskSummary(request_id=payload.request_id)
    if not payload.items:
        return summary

    for target_lang in payload.target_langs:
        glossary = payload.glossary
        if glossary is None:
            glossary = get_pairs_for_language_pair(
                db_path=db_path,
                source_lang=payload.source_lang,
                target_lang=target_lang,
            )

        outcome = translate_batch(
            provider=provider,
            request_id=payload.request_id,
            source_lang=payload.source_lang,
            target_lang=target_lang,
            items=payload.items,
            glossary=glossary,
            options=BatchOptions(
                temperature=payload.temperature,
                max_tokens=payload.max_tokens,
                model=payload.model,
            ),
        )
        if not outcome.ok:
            summary.failed_languages[target_lang] = ",".join(outcome.errors)
            logger.warning(
                "Batch %s skipped %s: %s",
                payload.request_id,
                target_lang,
                summary.failed_languages[target_lang],
            )
            continue

        saved = 0
        engine = initialize_database(db_path)
        try:
            with engine.begin() as connection:
                for result in outcome.results:
                    item = result.item
                    if item is None or not item.component or not item.key or not result.translated:
                        summary.unmatched += 1
                        continue
                    save_key_with_translation(
                        connection=connection,
                        component=item.component,
                        xkey=item.key,
                        source=item.source_text,
                        lang=target_lang,
                        translation=result.translated,
                        reviewed=0,
                        course_id=item.course_id,
                        context=item.context,
                    )
                    saved += 1
        finally:
            engine.dispose()
        summary.saved[target_lang] = saved

    logger.info("Batch %s saved %s", payload.request_id, summary.saved)
    return summary
