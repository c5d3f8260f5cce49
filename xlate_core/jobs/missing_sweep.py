from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from sqlalchemy import text

from xlate_core.db.schema import initialize_database
from xlate_core.glossary.glossary_store import get_pairs_for_language_pair
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.site.config import read_config
from xlate_core.site.paths import site_config_path, site_db_path
from xlate_core.store.courses import get_course_config, list_associated_courses
from xlate_core.store.keys import save_key_with_translation
from xlate_core.translation.batch import translate_batch
from xlate_core.translation.types import TranslationItem

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepSummary:
    enabled: bool
    courses_scanned: int = 0
    batches: int = 0
    translated: int = 0
    skipped_courses: list[int] = field(default_factory=list)
    errors: dict[str, list[str]] = field(default_factory=dict)


def _missing_rows(*, db_path: Path, course_id: int, target_lang: str, limit: int) -> list[dict[str, object]]:
    engine = initialize_database(db_path)
    try:
        with engine.connect() as connection:
            rows = connection.execute(
                text(
                    """
                    SELECT k.id, k.component, k.xkey, k.source
                    FROM xlate_key_course kc
                    JOIN xlate_keys k ON k.id = kc.key_id
                    LEFT JOIN xlate_translations t ON t.key_id = k.id AND t.lang = :target_lang
                    WHERE kc.course_id = :course_id
                      AND (t.id IS NULL OR t.status <> 1)
                    ORDER BY k.id
                    LIMIT :limit
                    """
                ),
                {"course_id": course_id, "target_lang": target_lang, "limit": limit},
            ).mappings().all()
    finally:
        engine.dispose()
    return [dict(row) for row in rows]


def _sweep_language(
    *,
    db_path: Path,
    provider: TranslationProvider,
    course_id: int,
    source_lang: str,
    target_lang: str,
    batch_size: int,
    summary: SweepSummary,
) -> None:
    glossary = get_pairs_for_language_pair(
        db_path=db_path,
        source_lang=source_lang,
        target_lang=target_lang,
    )
    seen_key_ids: set[int] = set()

    while True:
        rows = _missing_rows(db_path=db_path, course_id=course_id, target_lang=target_lang, limit=batch_size)
        if not rows:
            return
        fresh = [row for row in rows if int(row["id"]) not in seen_key_ids]
        if not fresh:
            logger.warning("Course %d: no progress translating into %s; stopping", course_id, target_lang)
            return
        seen_key_ids.update(int(row["id"]) for row in rows)

        items = [
            TranslationItem(
                id=f"{row['component']}:{row['xkey']}",
                source_text=str(row["source"] or ""),
                component=str(row["component"]),
                key=str(row["xkey"]),
                course_id=course_id,
            )
            for row in rows
        ]
        outcome = translate_batch(
            provider=provider,
            request_id=f"course-auto-{course_id}-{target_lang}-{uuid4().hex[:12]}",
            source_lang=source_lang,
            target_lang=target_lang,
            items=items,
            glossary=glossary,
        )
        summary.batches += 1
        if not outcome.ok or not outcome.results:
            summary.errors.setdefault(f"{course_id}:{target_lang}", []).extend(outcome.errors)
            logger.warning(
                "Course %d: provider error for %s: %s",
                course_id,
                target_lang,
                ",".join(outcome.errors),
            )
            return

        engine = initialize_database(db_path)
        try:
            with engine.begin() as connection:
                for result in outcome.results:
                    item = result.item
                    if item is None or not item.component or not item.key or not result.translated:
                        continue
                    save_key_with_translation(
                        connection=connection,
                        component=item.component,
                        xkey=item.key,
                        source=item.source_text,
                        lang=target_lang,
                        translation=result.translated,
                        course_id=course_id,
                    )
                    summary.translated += 1
        finally:
            engine.dispose()

        if len(rows) < batch_size:
            return


def sweep_missing_translations(*, site_path: Path, provider: TranslationProvider) -> SweepSummary:
    """Translate course keys that have no active translation yet."""

    site_path = Path(site_path)
    config = read_config(site_config_path(site_path))
    summary = SweepSummary(enabled=config.autotranslate_task_enabled)
    if not config.autotranslate_task_enabled:
        logger.info("Missing-translation sweep is disabled in site config")
        return summary

    db_path = site_db_path(site_path)
    for course_id in list_associated_courses(db_path=db_path):
        course_config = get_course_config(db_path=db_path, course_id=course_id)
        if course_config is None:
            summary.skipped_courses.append(course_id)
            logger.info("Skipping course %d: no language configuration", course_id)
            continue

        targets = [lang for lang in course_config.target_langs if lang and lang != course_config.source_lang]
        if not targets:
            summary.skipped_courses.append(course_id)
            continue

        summary.courses_scanned += 1
        for target_lang in targets:
            _sweep_language(
                db_path=db_path,
                provider=provider,
                course_id=course_id,
                source_lang=course_config.source_lang,
                target_lang=target_lang,
                batch_size=config.autotranslate_task_batchsize,
                summary=summary,
            )

    logger.info("Missing-translation sweep translated %d keys in %d batches", summary.translated, summary.batches)
    return summary
