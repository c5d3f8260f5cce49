from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Connection

from xlate_core.db.schema import initialize_database
from xlate_core.glossary.glossary_store import get_pairs_for_language_pair
from xlate_core.jobs.queue import WorkQueue
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.site.config import read_config
from xlate_core.site.paths import site_config_path, site_db_path
from xlate_core.store.courses import get_course_config
from xlate_core.store.keys import count_course_keys, save_key_with_translation
from xlate_core.translation.batch import translate_batch
from xlate_core.translation.types import BatchOptions, GlossaryPair, TranslationItem

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETE.value, JobStatus.FAILED.value)


@dataclass(slots=True)
class CourseJobOptions:
    source_lang: str
    target_langs: list[str] = field(default_factory=list)
    batch_size: int = 0
    glossary: list[GlossaryPair] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None

    def to_json(self) -> str:
        payload: dict[str, Any] = {
            "sourcelang": self.source_lang,
            "targetlangs": list(self.target_langs),
            "batchsize": self.batch_size,
        }
        if self.glossary is not None:
            payload["glossary"] = [pair.to_dict() for pair in self.glossary]
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.model:
            payload["model"] = self.model
        return json.dumps(payload, ensure_ascii=False)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> CourseJobOptions:
        targets = raw.get("targetlangs", raw.get("target_langs"))
        if targets is None:
            targets = raw.get("targetlang", [])
        if isinstance(targets, str):
            targets = [targets]

        glossary_raw = raw.get("glossary")
        glossary: list[GlossaryPair] | None = None
        if isinstance(glossary_raw, list):
            glossary = [
                GlossaryPair(term=str(entry["term"]), replacement=str(entry["replacement"]))
                for entry in glossary_raw
                if isinstance(entry, dict) and entry.get("term") and entry.get("replacement")
            ]

        temperature = raw.get("temperature")
        max_tokens = raw.get("max_tokens")
        return cls(
            source_lang=str(raw.get("sourcelang", raw.get("source_lang")) or "").strip(),
            target_langs=[str(lang).strip() for lang in targets if str(lang).strip()],
            batch_size=int(raw.get("batchsize", raw.get("batch_size")) or 0),
            glossary=glossary,
            temperature=float(temperature) if temperature is not None else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
            model=str(raw["model"]) if raw.get("model") else None,
        )

    @classmethod
    def from_json(cls, raw_value: str | None) -> CourseJobOptions:
        try:
            parsed = json.loads(raw_value or "{}")
        except (TypeError, ValueError):
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}
        return cls.from_mapping(parsed)


@dataclass(slots=True, frozen=True)
class EnqueuedJob:
    job_id: str
    task_id: str


@dataclass(slots=True)
class JobStepSummary:
    job_id: str
    status: str
    total: int
    processed: int
    cursor: int
    rows: int = 0
    requeued: bool = False
    failed_languages: dict[str, int] = field(default_factory=dict)


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _parse_counts(raw_value: object) -> dict[str, int]:
    if not isinstance(raw_value, str) or not raw_value.strip():
        return {}
    try:
        parsed = json.loads(raw_value)
    except (TypeError, ValueError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(key): int(value) for key, value in parsed.items()}


def enqueue_course_job(
    *,
    site_path: Path,
    course_id: int,
    queue: WorkQueue,
    options: CourseJobOptions | dict[str, Any] | None = None,
    user_id: int = 0,
) -> EnqueuedJob:
    """Create a pending job for a course and schedule its first step."""

    site_path = Path(site_path)
    db_path = site_db_path(site_path)
    course_config = get_course_config(db_path=db_path, course_id=course_id)
    if course_config is None:
        raise LookupError(f"Course {course_id} has no language configuration")

    if options is None:
        resolved = CourseJobOptions(source_lang="")
    elif isinstance(options, dict):
        resolved = CourseJobOptions.from_mapping(options)
    else:
        resolved = options

    if not resolved.source_lang:
        resolved.source_lang = course_config.source_lang
    if not resolved.target_langs:
        resolved.target_langs = [
            lang for lang in course_config.target_langs if lang != resolved.source_lang
        ]
    if resolved.batch_size <= 0:
        resolved.batch_size = read_config(site_config_path(site_path)).default_batch_size

    job_id = str(uuid4())
    now = _utc_now_iso()
    engine = initialize_database(db_path)
    try:
        with engine.begin() as connection:
            total = count_course_keys(course_id=course_id, connection=connection)
            connection.execute(
                text(
                    """
                    INSERT INTO xlate_course_jobs(
                        id, course_id, user_id, status, total, processed, batch_size,
                        options_json, last_id, failed_languages_json, last_error, ctime, mtime
                    ) VALUES (
                        :id, :course_id, :user_id, :status, :total, 0, :batch_size,
                        :options_json, 0, '{}', NULL, :now, :now
                    )
                    """
                ),
                {
                    "id": job_id,
                    "course_id": course_id,
                    "user_id": user_id,
                    "status": JobStatus.PENDING.value,
                    "total": total,
                    "batch_size": resolved.batch_size,
                    "options_json": resolved.to_json(),
                    "now": now,
                },
            )
    finally:
        engine.dispose()

    task_id = queue.enqueue(job_id)
    logger.info(
        "Enqueued course job %s for course %d (%d keys, targets=%s)",
        job_id,
        course_id,
        total,
        ",".join(resolved.target_langs),
    )
    return EnqueuedJob(job_id=job_id, task_id=task_id)


def _load_job(connection: Connection, job_id: str) -> dict[str, Any]:
    row = connection.execute(
        text(
            """
            SELECT id, course_id, status, total, processed, batch_size,
                   options_json, last_id, failed_languages_json, last_error
            FROM xlate_course_jobs
            WHERE id = :job_id
            """
        ),
        {"job_id": job_id},
    ).mappings().first()
    if row is None:
        raise LookupError(f"Course job not found: {job_id}")
    return dict(row)


def _update_job(connection: Connection, job_id: str, **values: Any) -> None:
    values["mtime"] = _utc_now_iso()
    assignments = ", ".join(f"{column} = :{column}" for column in values)
    connection.execute(
        text(f"UPDATE xlate_course_jobs SET {assignments} WHERE id = :job_id"),
        {**values, "job_id": job_id},
    )


def _set_job_fields(db_path: Path, job_id: str, **values: Any) -> None:
    engine = initialize_database(db_path)
    try:
        with engine.begin() as connection:
            _update_job(connection, job_id, **values)
    finally:
        engine.dispose()


def _fetch_page(
    connection: Connection,
    *,
    course_id: int,
    last_id: int,
    limit: int,
) -> list[dict[str, Any]]:
    rows = connection.execute(
        text(
            """
            SELECT kc.id AS kc_id, kc.key_id, k.component, k.xkey, k.source
            FROM xlate_key_course kc
            JOIN xlate_keys k ON k.id = kc.key_id
            WHERE kc.course_id = :course_id AND kc.id > :last_id
            ORDER BY kc.id
            LIMIT :limit
            """
        ),
        {"course_id": course_id, "last_id": last_id, "limit": limit},
    ).mappings().all()
    return [dict(row) for row in rows]


def _summary(job_id: str, job: dict[str, Any], **extra: Any) -> JobStepSummary:
    return JobStepSummary(
        job_id=job_id,
        status=str(job["status"]),
        total=int(job["total"]),
        processed=int(job["processed"]),
        cursor=int(job["last_id"]),
        failed_languages=_parse_counts(job.get("failed_languages_json")),
        **extra,
    )


def run_course_job_step(
    *,
    site_path: Path,
    job_id: str,
    provider: TranslationProvider,
    queue: WorkQueue,
) -> JobStepSummary:
    """Process one page of a course job and requeue it while rows remain.

    Any exception leaves the job ``pending`` with its cursor unchanged and is
    re-raised so the queue runner can retry the step.
    """

    db_path = site_db_path(Path(site_path))
    engine = initialize_database(db_path)
    try:
        with engine.begin() as connection:
            job = _load_job(connection, job_id)
            if job["status"] in TERMINAL_STATUSES:
                return _summary(job_id, job)

            batch_size = max(1, int(job["batch_size"] or 1))
            # One extra row tells us whether another page exists.
            page = _fetch_page(
                connection,
                course_id=int(job["course_id"]),
                last_id=int(job["last_id"]),
                limit=batch_size + 1,
            )
            if not page:
                total = max(int(job["total"]), int(job["processed"]))
                _update_job(
                    connection,
                    job_id,
                    status=JobStatus.COMPLETE.value,
                    total=total,
                    processed=total,
                )
                job.update(status=JobStatus.COMPLETE.value, total=total, processed=total)
                return _summary(job_id, job)

            _update_job(connection, job_id, status=JobStatus.IN_PROGRESS.value)
    finally:
        engine.dispose()

    has_more = len(page) > batch_size
    page = page[:batch_size]
    options = CourseJobOptions.from_json(job["options_json"])
    source_lang = options.source_lang or "en"
    course_id = int(job["course_id"])
    failed_languages = _parse_counts(job.get("failed_languages_json"))
    last_error = job.get("last_error")

    items = [
        TranslationItem(
            id=f"{row['component']}:{row['xkey']}",
            source_text=str(row["source"] or ""),
            context="",
            component=str(row["component"]),
            key=str(row["xkey"]),
            course_id=course_id,
        )
        for row in page
    ]
    cursor = max(int(job["last_id"]), *(int(row["kc_id"]) for row in page))

    if not options.target_langs:
        total = max(int(job["total"]), int(job["processed"]) + len(page))
        _set_job_fields(
            db_path,
            job_id,
            status=JobStatus.COMPLETE.value,
            total=total,
            processed=total,
            last_id=cursor,
        )
        job.update(status=JobStatus.COMPLETE.value, total=total, processed=total, last_id=cursor)
        logger.info("Course job %s has no target languages; marking complete", job_id)
        return _summary(job_id, job, rows=len(page))

    try:
        for target_lang in options.target_langs:
            glossary = options.glossary
            if glossary is None:
                glossary = get_pairs_for_language_pair(
                    db_path=db_path,
                    source_lang=source_lang,
                    target_lang=target_lang,
                )

            outcome = translate_batch(
                provider=provider,
                request_id=f"coursejob_{job_id}",
                source_lang=source_lang,
                target_lang=target_lang,
                items=items,
                glossary=glossary,
                options=BatchOptions(
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                    model=options.model,
                    job_id=job_id,
                ),
            )
            if not outcome.ok:
                failed_languages[target_lang] = failed_languages.get(target_lang, 0) + 1
                last_error = f"{target_lang}: {','.join(outcome.errors)}"
                logger.warning("Course job %s skipped %s for this batch: %s", job_id, target_lang, last_error)
                continue

            saved = 0
            engine = initialize_database(db_path)
            try:
                with engine.begin() as connection:
                    for result in outcome.results:
                        original = result.item
                        if original is None or not original.component or not original.key:
                            logger.debug("Course job %s ignoring unmatched result id %s", job_id, result.id)
                            continue
                        save_key_with_translation(
                            connection=connection,
                            component=original.component,
                            xkey=original.key,
                            source=original.source_text,
                            lang=target_lang,
                            translation=result.translated,
                            reviewed=0,
                            course_id=original.course_id,
                            context=original.context,
                        )
                        saved += 1
            finally:
                engine.dispose()
            logger.debug("Course job %s saved %d %s translations", job_id, saved, target_lang)
    except Exception:
        _set_job_fields(db_path, job_id, status=JobStatus.PENDING.value)
        raise

    processed = int(job["processed"]) + len(page)
    total = int(job["total"])
    if has_more:
        status = JobStatus.PENDING.value
    else:
        status = JobStatus.COMPLETE.value
        total = max(total, processed)
        processed = total

    _set_job_fields(
        db_path,
        job_id,
        status=status,
        total=total,
        processed=processed,
        last_id=cursor,
        failed_languages_json=json.dumps(failed_languages, sort_keys=True),
        last_error=last_error,
    )

    if has_more:
        queue.enqueue(job_id)

    logger.info(
        "Course job %s processed %d rows (%d/%d), status=%s",
        job_id,
        len(page),
        processed,
        total,
        status,
    )
    return JobStepSummary(
        job_id=job_id,
        status=status,
        total=total,
        processed=processed,
        cursor=cursor,
        rows=len(page),
        requeued=has_more,
        failed_languages=failed_languages,
    )


def mark_job_failed(*, db_path: Path, job_id: str, error: str) -> None:
    _set_job_fields(
        Path(db_path),
        job_id,
        status=JobStatus.FAILED.value,
        last_error=error,
    )
