from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from sqlmodel import Session, select

from xlate_core.db.models import CourseJob, Translation, TranslationKey
from xlate_core.db.session import session_for_db
from xlate_core.qa.sanitize import clean_text


@dataclass(slots=True, frozen=True)
class JobProgress:
    id: str
    course_id: int
    status: str
    total: int
    processed: int
    batch_size: int
    cursor: int
    ctime: str
    mtime: str
    failed_languages: dict[str, int] = field(default_factory=dict)
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class ItemProgress:
    id: str
    translated: bool
    translation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _failed_languages(raw_value: str | None) -> dict[str, int]:
    try:
        parsed = json.loads(raw_value or "{}")
    except (TypeError, ValueError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(key): int(value) for key, value in parsed.items()}


def get_job_progress(*, db_path: Path, job_id: str) -> JobProgress | None:
    with session_for_db(Path(db_path)) as session:
        job = session.get(CourseJob, job_id)
        if job is None:
            return None
        return JobProgress(
            id=job.id,
            course_id=job.course_id,
            status=job.status,
            total=job.total,
            processed=job.processed,
            batch_size=job.batch_size,
            cursor=job.last_id,
            ctime=job.ctime,
            mtime=job.mtime,
            failed_languages=_failed_languages(job.failed_languages_json),
            last_error=job.last_error,
        )


def _resolve_key(session: Session, item_id: str) -> TranslationKey | None:
    if ":" in item_id:
        component, xkey = item_id.split(":", 1)
        exact = session.exec(
            select(TranslationKey).where(
                TranslationKey.component == component,
                TranslationKey.xkey == xkey,
            )
        ).first()
        if exact is not None:
            return exact
    else:
        xkey = item_id

    return session.exec(
        select(TranslationKey).where(TranslationKey.xkey == xkey).order_by(TranslationKey.id)
    ).first()


def get_item_progress(
    *,
    db_path: Path,
    target_lang: str,
    item_ids: Sequence[str],
) -> list[ItemProgress]:
    """Report whether each item has an active translation in ``target_lang``.

    Item ids may be a bare key or ``component:key``.
    """

    output: list[ItemProgress] = []
    with session_for_db(Path(db_path)) as session:
        for raw_id in item_ids:
            item_id = str(raw_id).strip()
            key = _resolve_key(session, item_id) if item_id else None
            if key is None:
                output.append(ItemProgress(id=item_id, translated=False))
                continue

            translation = session.exec(
                select(Translation).where(
                    Translation.key_id == key.id,
                    Translation.lang == target_lang,
                    Translation.status == 1,
                )
            ).first()
            if translation is None:
                output.append(ItemProgress(id=item_id, translated=False))
                continue

            output.append(
                ItemProgress(
                    id=item_id,
                    translated=True,
                    translation=clean_text(translation.text),
                )
            )
    return output
