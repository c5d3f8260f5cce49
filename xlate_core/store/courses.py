from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection

from xlate_core.db.schema import initialize_database


@dataclass(slots=True, frozen=True)
class CourseLanguageConfig:
    course_id: int
    source_lang: str
    target_langs: list[str] = field(default_factory=list)


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _parse_langs(raw_value: object) -> list[str]:
    if not isinstance(raw_value, str) or not raw_value.strip():
        return []
    try:
        parsed = json.loads(raw_value)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item).strip() for item in parsed if str(item).strip()]


def set_course_config(
    *,
    db_path: Path,
    course_id: int,
    source_lang: str,
    target_langs: list[str],
) -> CourseLanguageConfig:
    source_lang = str(source_lang or "").strip()
    if course_id <= 0:
        raise ValueError("course_id must be positive")
    if not source_lang:
        raise ValueError("source_lang must not be empty")

    targets: list[str] = []
    for lang in target_langs:
        normalized = str(lang).strip()
        if normalized and normalized != source_lang and normalized not in targets:
            targets.append(normalized)

    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    INSERT INTO xlate_course_config(course_id, source_lang, target_langs_json, mtime)
                    VALUES(:course_id, :source_lang, :target_langs_json, :mtime)
                    ON CONFLICT(course_id) DO UPDATE SET
                        source_lang = excluded.source_lang,
                        target_langs_json = excluded.target_langs_json,
                        mtime = excluded.mtime
                    """
                ),
                {
                    "course_id": course_id,
                    "source_lang": source_lang,
                    "target_langs_json": json.dumps(targets),
                    "mtime": _utc_now_iso(),
                },
            )
    finally:
        engine.dispose()

    return CourseLanguageConfig(course_id=course_id, source_lang=source_lang, target_langs=targets)


def _get_course_config_on_connection(
    connection: Connection,
    *,
    course_id: int,
) -> CourseLanguageConfig | None:
    row = connection.execute(
        text(
            """
            SELECT course_id, source_lang, target_langs_json
            FROM xlate_course_config
            WHERE course_id = :course_id
            """
        ),
        {"course_id": course_id},
    ).mappings().first()
    if row is None:
        return None
    return CourseLanguageConfig(
        course_id=int(row["course_id"]),
        source_lang=str(row["source_lang"]),
        target_langs=_parse_langs(row["target_langs_json"]),
    )


def get_course_config(
    *,
    course_id: int,
    db_path: Path | None = None,
    connection: Connection | None = None,
) -> CourseLanguageConfig | None:
    if connection is not None:
        return _get_course_config_on_connection(connection, course_id=course_id)

    if db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as local_connection:
            return _get_course_config_on_connection(local_connection, course_id=course_id)
    finally:
        engine.dispose()


def list_associated_courses(*, db_path: Path) -> list[int]:
    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as connection:
            rows = connection.execute(
                text(
                    """
                    SELECT DISTINCT course_id
                    FROM xlate_key_course
                    WHERE course_id > 0
                    ORDER BY course_id
                    """
                )
            ).all()
    finally:
        engine.dispose()
    return [int(row[0]) for row in rows]
